"""
Game Catalog - Definitions of the built-in photo hunts.

Hand-authored. Location ids are strings and are only unique within a
game (every game numbers its locations from "1").
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from ..core.models import CompletedLocation, GameProgressEntry


class GameStatus(Enum):
    """Display status of a game for one player."""
    NEW = "NEW"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class GameLocation:
    """A location the player must find."""
    id: str
    name: str
    description: str
    points: int
    keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class GameDefinition:
    """A photo hunt: an ordered list of locations."""
    id: str
    name: str
    description: str
    difficulty: str
    locations: tuple[GameLocation, ...] = ()

    @property
    def location_ids(self) -> frozenset[str]:
        return frozenset(loc.id for loc in self.locations)

    @property
    def total_points(self) -> int:
        return sum(loc.points for loc in self.locations)

    def get_location(self, location_id: str) -> GameLocation | None:
        for loc in self.locations:
            if loc.id == location_id:
                return loc
        return None

    def is_complete(self, completed_ids: Iterable[str]) -> bool:
        """
        True when every location of the game has been found.

        A game with no locations is never complete.
        """
        if not self.locations:
            return False
        return self.location_ids.issubset(set(completed_ids))


@dataclass
class GameCatalog:
    """
    Lookup of games by id.

    Usage:
        catalog = default_catalog()
        game = catalog.get("historic")
        catalog.known_location_ids("historic")
    """
    games: dict[str, GameDefinition] = field(default_factory=dict)

    def add(self, game: GameDefinition):
        self.games[game.id] = game

    def get(self, game_id: str) -> GameDefinition | None:
        return self.games.get(game_id)

    def list_games(self) -> list[GameDefinition]:
        return list(self.games.values())

    def known_location_ids(self, game_id: str) -> frozenset[str]:
        """Location ids defined for a game; empty for unknown games."""
        game = self.games.get(game_id)
        return game.location_ids if game else frozenset()

    def is_complete(self, game_id: str, completed_ids: Iterable[str]) -> bool:
        game = self.games.get(game_id)
        return game.is_complete(completed_ids) if game else False


def default_catalog() -> GameCatalog:
    """The three built-in Cluj-Napoca hunts."""
    catalog = GameCatalog()
    catalog.add(GameDefinition(
        id="historic",
        name="Historic Cluj",
        description="Discover the historical landmarks of Cluj-Napoca",
        difficulty="Medium",
        locations=(
            GameLocation(
                id="1",
                name="Saint Michael's Church",
                description="Gothic-style Roman Catholic church in the heart of Cluj-Napoca",
                points=100,
                keywords=("gothic", "church", "catholic", "saint michael", "medieval", "spire", "tower"),
            ),
            GameLocation(
                id="2",
                name="Matthias Corvinus Statue",
                description="Equestrian statue of King Matthias Corvinus",
                points=75,
                keywords=("statue", "equestrian", "king", "matthias", "horse", "bronze"),
            ),
            GameLocation(
                id="3",
                name="Union Square",
                description="Main square of Cluj-Napoca",
                points=50,
                keywords=("square", "plaza", "center", "piata unirii", "buildings", "historic"),
            ),
        ),
    ))
    catalog.add(GameDefinition(
        id="cultural",
        name="Cultural Venues",
        description="Explore the cultural and artistic venues of the city",
        difficulty="Easy",
        locations=(
            GameLocation(
                id="1",
                name="Cluj-Napoca National Theatre",
                description="Neo-baroque style theatre building",
                points=100,
                keywords=("theatre", "theater", "opera", "baroque", "performance", "cultural"),
            ),
            GameLocation(
                id="2",
                name="Art Museum",
                description="Banffy Palace housing the Art Museum",
                points=75,
                keywords=("museum", "palace", "art", "baroque", "banffy", "exhibition"),
            ),
            GameLocation(
                id="3",
                name="Puck Puppet Theatre",
                description="Famous puppet theatre of Cluj",
                points=50,
                keywords=("puppet", "theatre", "theater", "children", "performance"),
            ),
        ),
    ))
    catalog.add(GameDefinition(
        id="modern",
        name="Modern Cluj",
        description="Capture the contemporary side of Cluj-Napoca",
        difficulty="Hard",
        locations=(
            GameLocation(
                id="1",
                name="Central Park Casino",
                description="Modern building in Central Park",
                points=100,
                keywords=("casino", "park", "modern", "glass", "contemporary"),
            ),
            GameLocation(
                id="2",
                name="The Office Cluj-Napoca",
                description="Modern office building complex",
                points=75,
                keywords=("office", "business", "modern", "glass", "corporate"),
            ),
            GameLocation(
                id="3",
                name="VIVO! Cluj-Napoca",
                description="Modern shopping mall",
                points=50,
                keywords=("mall", "shopping", "modern", "retail", "commercial"),
            ),
        ),
    ))
    return catalog


# =============================================================================
# Progress arithmetic
# =============================================================================

def calculate_game_completion(completed_count: int, total_locations: int) -> float:
    """Percentage of locations found, 0 when the game has no locations."""
    if not completed_count or not total_locations:
        return 0.0
    return min(100.0, completed_count / total_locations * 100)


def calculate_total_score(
    game: GameDefinition,
    completed_locations: Iterable[CompletedLocation],
) -> int:
    """Sum of points of the game's locations that have been found."""
    found = {loc.location_id for loc in completed_locations}
    return sum(loc.points for loc in game.locations if loc.id in found)


def get_game_status(entry: GameProgressEntry | None) -> GameStatus:
    if entry is None:
        return GameStatus.NEW
    if entry.completed:
        return GameStatus.COMPLETED
    if entry.completed_locations:
        return GameStatus.IN_PROGRESS
    return GameStatus.NEW
