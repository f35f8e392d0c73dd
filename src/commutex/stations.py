"""Read-only station directory: canonical station names to per-line stop IDs."""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

import pandas as pd

from .exceptions import StationNotFoundError

logger = logging.getLogger(__name__)

# Canonical station name -> {line: base stop ID}, from MTA GTFS static stops.txt.
# Stop IDs here are authoritative; the same complex shares one ID across
# lines where the static feed does (e.g. the F, A and C at Jay St-MetroTech).
DEFAULT_STATIONS: Dict[str, Dict[str, str]] = {
    "Bergen St": {"F": "F20", "G": "F20"},
    "Carroll St": {"F": "F21", "G": "F21"},
    "Smith-9 Sts": {"F": "F22", "G": "F22"},
    "Jay St-MetroTech": {"A": "A41", "C": "A41", "F": "A41", "R": "R29"},
    "W 4 St-Wash Sq": {"A": "A32", "C": "A32", "E": "A32", "B": "D20", "D": "D20", "F": "D20", "M": "D20"},
    "14 St-8 Av": {"A": "A31", "C": "A31", "E": "A31", "L": "L01"},
    "23 St-8 Av": {"C": "A30", "E": "A30"},
    "23 St": {"F": "D18", "M": "D18"},
}

# Alternate spellings accepted by resolve()
DEFAULT_SYNONYMS: Dict[str, str] = {
    "23rd St": "23 St",
    "23rd St-6th Ave": "23 St",
    "23rd St-8th Ave": "23 St-8 Av",
    "14th St-8th Ave": "14 St-8 Av",
    "14th St": "14 St-8 Av",
    "Jay St": "Jay St-MetroTech",
    "Jay St-Metrotech": "Jay St-MetroTech",
    "Smith-9th Sts": "Smith-9 Sts",
    "W 4th St": "W 4 St-Wash Sq",
    "West 4th St": "W 4 St-Wash Sq",
}


class StationCatalog:
    """Resolves station names to line-specific stop IDs."""

    def __init__(
        self,
        stations: Optional[Mapping[str, Mapping[str, str]]] = None,
        synonyms: Optional[Mapping[str, str]] = None,
    ):
        """
        Initialize the catalog.

        Args:
            stations: Canonical station name -> {line: stop ID}. Defaults to DEFAULT_STATIONS.
            synonyms: Alternate name -> canonical name. Defaults to DEFAULT_SYNONYMS.
        """
        if stations is None:
            stations = DEFAULT_STATIONS
        if synonyms is None:
            synonyms = DEFAULT_SYNONYMS

        self._stations: Dict[str, Dict[str, str]] = {
            name: {line.upper(): stop_id for line, stop_id in lines.items()}
            for name, lines in stations.items()
        }
        self._names: Dict[str, str] = {name.lower(): name for name in self._stations}
        for alias, canonical in synonyms.items():
            if canonical not in self._stations:
                logger.warning(f"Ignoring synonym {alias!r} for unknown station {canonical!r}")
                continue
            self._names.setdefault(alias.lower(), canonical)

        # stop ID -> {(station, line)} for reverse lookups
        self._by_stop: Dict[str, Set[Tuple[str, str]]] = {}
        for name, lines in self._stations.items():
            for line, stop_id in lines.items():
                self._by_stop.setdefault(stop_id, set()).add((name, line))

    @classmethod
    def from_csv(cls, source, synonyms: Optional[Mapping[str, str]] = None) -> "StationCatalog":
        """
        Load a catalog from a CSV with station, line and stop_id columns.

        Args:
            source: Path or file-like object.
            synonyms: Optional alternate name -> canonical name mapping.
        """
        frame = pd.read_csv(source, dtype=str).dropna(subset=["station", "line", "stop_id"])
        stations: Dict[str, Dict[str, str]] = {}
        for row in frame.itertuples(index=False):
            stations.setdefault(row.station.strip(), {})[row.line.strip()] = row.stop_id.strip()
        logger.info(f"Loaded {len(stations)} stations from {source}")
        return cls(stations, synonyms=synonyms if synonyms is not None else {})

    def resolve(self, name: str) -> str:
        """Return the canonical name for a station name or synonym."""
        canonical = self._names.get(name.strip().lower())
        if canonical is None:
            raise StationNotFoundError(f"Station '{name}' not found")
        return canonical

    def stop_id_for(self, station: str, line: str) -> str:
        """
        Get the base stop ID (no direction suffix) of a line at a station.

        Raises:
            StationNotFoundError: If the station is unknown or the line does not stop there.
        """
        canonical = self.resolve(station)
        stop_id = self._stations[canonical].get(line.upper())
        if stop_id is None:
            raise StationNotFoundError(f"Line {line} does not stop at {canonical}")
        return stop_id

    def find_stop_id(self, station: str, line: str) -> Optional[str]:
        """Like stop_id_for() but returns None instead of raising."""
        try:
            return self.stop_id_for(station, line)
        except StationNotFoundError:
            return None

    def stop_ids_at(self, station: str) -> List[str]:
        """All base stop IDs at a station, across lines."""
        canonical = self.resolve(station)
        return sorted(set(self._stations[canonical].values()))

    def lines_at(self, station: str) -> List[str]:
        canonical = self.resolve(station)
        return sorted(self._stations[canonical])

    def stations_for_stop(self, stop_id: str) -> List[str]:
        """Reverse lookup; accepts a directional stop ID."""
        base = self._by_stop.get(stop_id)
        if base is None and stop_id[-1:].upper() in ("N", "S"):
            base = self._by_stop.get(stop_id[:-1])
        return sorted({name for name, _ in base or ()})

    def stop_ids_for_stations(self, stations: Iterable[str]) -> Set[str]:
        """Base stop IDs for every known station in stations; unknown names are skipped."""
        stop_ids: Set[str] = set()
        for station in stations:
            try:
                stop_ids.update(self.stop_ids_at(station))
            except StationNotFoundError:
                logger.debug(f"No stop IDs for station {station!r}")
        return stop_ids

    def __contains__(self, name: str) -> bool:
        return name.strip().lower() in self._names

    def __len__(self) -> int:
        return len(self._stations)
