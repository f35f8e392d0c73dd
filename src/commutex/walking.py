"""Walking-time providers."""

import logging
from typing import Dict, Mapping, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

DEFAULT_WALK_MINUTES = 10


class WalkingTimeProvider(Protocol):
    """Anything that can estimate walking minutes between an address and a station."""

    async def walking_minutes(self, address: str, station: str) -> int:
        ...


class StaticWalkingTimeProvider:
    """
    Walking times from a fixed table.

    Lookups are symmetric: (address, station) and (station, address) share an entry.
    """

    def __init__(self, table: Optional[Mapping[Tuple[str, str], int]] = None, default: int = DEFAULT_WALK_MINUTES):
        self._table: Dict[Tuple[str, str], int] = {}
        for (a, b), minutes in (table or {}).items():
            if minutes < 0:
                raise ValueError(f"Walking time from {a} to {b} cannot be negative")
            self._table[(a, b)] = int(minutes)
        self.default = default

    async def walking_minutes(self, address: str, station: str) -> int:
        minutes = self._table.get((address, station))
        if minutes is None:
            minutes = self._table.get((station, address))
        if minutes is None:
            logger.warning(f"No walking time for {address} <-> {station}, assuming {self.default} min")
            return self.default
        return minutes
