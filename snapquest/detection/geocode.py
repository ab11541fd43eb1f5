"""
Geocode Resolver - Place name to coordinates.

Best effort. Coordinates are an enrichment, not a requirement: every
failure (timeout, HTTP error, empty result, malformed body) resolves
to None and is only logged.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Optional
import asyncio
import logging

import aiohttp

from ..core.models import Coordinates

logger = logging.getLogger(__name__)


class GeocodeResolver(ABC):
    """Abstract base class for geocoders. resolve() never raises."""

    @abstractmethod
    async def resolve(self, query: str) -> Coordinates | None:
        pass

    async def close(self):
        """Release network resources, if any."""


class NominatimResolver(GeocodeResolver):
    """
    OpenStreetMap Nominatim search.

    One GET per query, limit=1, bounded by `timeout` seconds.
    """

    DEFAULT_URL = "https://nominatim.openstreetmap.org/search"

    def __init__(
        self,
        base_url: str = DEFAULT_URL,
        timeout: float = 5.0,
        user_agent: str = "snapquest/0.1",
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.user_agent = user_agent
        self._session: Optional[aiohttp.ClientSession] = None
        self._session_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        async with self._session_lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                    headers={"User-Agent": self.user_agent},
                )
            return self._session

    async def close(self):
        async with self._session_lock:
            if self._session and not self._session.closed:
                await self._session.close()
            self._session = None

    async def _fetch(self, query: str) -> Any:
        session = await self._get_session()
        params = {"q": query, "format": "json", "limit": "1"}
        async with session.get(self.base_url, params=params) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    async def resolve(self, query: str) -> Coordinates | None:
        if not query or not query.strip():
            return None
        try:
            data = await asyncio.wait_for(self._fetch(query), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Geocoding timed out after {self.timeout}s for {query!r}")
            return None
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning(f"Geocoding failed for {query!r}: {e}")
            return None
        return parse_nominatim_result(data, query)


def parse_nominatim_result(data: Any, query: str = "") -> Coordinates | None:
    """First hit of a Nominatim search body, or None."""
    if not isinstance(data, list) or not data:
        logger.info(f"No geocoding result for {query!r}")
        return None
    first = data[0]
    if not isinstance(first, dict):
        return None
    coordinates = Coordinates.from_dict(first)
    if coordinates is None:
        logger.warning(f"Malformed geocoding result for {query!r}: {first!r}")
    return coordinates


class StaticGeocodeResolver(GeocodeResolver):
    """
    Resolver backed by a fixed table.

    Lookup is case-insensitive; unknown queries resolve to None.
    """

    def __init__(self, table: dict[str, Coordinates] | None = None):
        self.table = {k.lower(): v for k, v in (table or {}).items()}
        self.queries: list[str] = []

    async def resolve(self, query: str) -> Coordinates | None:
        self.queries.append(query)
        return self.table.get((query or "").lower())


class NullGeocodeResolver(GeocodeResolver):
    """Resolver used when geocoding is disabled."""

    async def resolve(self, query: str) -> Coordinates | None:
        return None
