"""
Games Module - Built-in photo hunts.

Each game is a fixed list of locations the player must photograph.
The sync engine uses the catalog to decide when a game is completed.
"""

from .catalog import (
    GameLocation,
    GameDefinition,
    GameStatus,
    GameCatalog,
    default_catalog,
    calculate_game_completion,
    calculate_total_score,
    get_game_status,
)

__all__ = [
    "GameLocation",
    "GameDefinition",
    "GameStatus",
    "GameCatalog",
    "default_catalog",
    "calculate_game_completion",
    "calculate_total_score",
    "get_game_status",
]
