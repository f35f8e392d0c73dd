"""Static segment travel times keyed by (line, from station, to station)."""

import logging
from typing import Dict, Mapping, Optional, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

FALLBACK_TRAVEL_MINUTES = 10

# Scheduled running times from the MTA static timetable, in minutes
DEFAULT_TRAVEL_TIMES: Dict[Tuple[str, str, str], int] = {
    ("F", "Carroll St", "23 St"): 18,
    ("F", "23 St", "Carroll St"): 18,
    ("F", "Carroll St", "Jay St-MetroTech"): 7,
    ("F", "Jay St-MetroTech", "Carroll St"): 7,
    ("C", "Jay St-MetroTech", "23 St-8 Av"): 11,
    ("C", "23 St-8 Av", "Jay St-MetroTech"): 11,
    ("A", "Jay St-MetroTech", "14 St-8 Av"): 8,
    ("A", "14 St-8 Av", "Jay St-MetroTech"): 8,
    ("C", "14 St-8 Av", "23 St-8 Av"): 2,
    ("C", "23 St-8 Av", "14 St-8 Av"): 2,
}

TravelKey = Tuple[str, str, str]


class TravelTimeTable:
    """
    Lookup of ride times between two stations on one line.

    Pairs missing from the table get FALLBACK_TRAVEL_MINUTES; is_known() tells
    callers which case applied so they can flag the estimate.
    """

    def __init__(
        self,
        times: Optional[Mapping[TravelKey, int]] = None,
        fallback_minutes: int = FALLBACK_TRAVEL_MINUTES,
    ):
        if times is None:
            times = DEFAULT_TRAVEL_TIMES
        self._times: Dict[TravelKey, int] = {
            (line.upper(), from_station, to_station): int(minutes)
            for (line, from_station, to_station), minutes in times.items()
        }
        self.fallback_minutes = fallback_minutes

    @classmethod
    def from_csv(cls, source, fallback_minutes: int = FALLBACK_TRAVEL_MINUTES) -> "TravelTimeTable":
        """Load from a CSV with line, from_station, to_station and minutes columns."""
        frame = pd.read_csv(source, dtype={"line": str, "from_station": str, "to_station": str})
        frame = frame.dropna(subset=["line", "from_station", "to_station", "minutes"])
        times = {
            (row.line.strip(), row.from_station.strip(), row.to_station.strip()): int(row.minutes)
            for row in frame.itertuples(index=False)
        }
        logger.info(f"Loaded {len(times)} segment travel times from {source}")
        return cls(times, fallback_minutes=fallback_minutes)

    def is_known(self, line: str, from_station: str, to_station: str) -> bool:
        return (line.upper(), from_station, to_station) in self._times

    def minutes_for(self, line: str, from_station: str, to_station: str) -> int:
        minutes = self._times.get((line.upper(), from_station, to_station))
        if minutes is None:
            logger.debug(
                f"No travel time for {line} {from_station} -> {to_station}, "
                f"using {self.fallback_minutes} min"
            )
            return self.fallback_minutes
        return minutes
