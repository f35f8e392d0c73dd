"""Data models for the CommuteX route engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar, List, Optional, Tuple, Union


class Direction(Enum):
    """Direction of travel on a subway line."""

    NORTHBOUND = "northbound"
    SOUTHBOUND = "southbound"

    @property
    def stop_suffix(self) -> str:
        """Suffix appended to a base stop ID for this direction (e.g. "F21N")."""
        return "N" if self is Direction.NORTHBOUND else "S"

    @property
    def direction_id(self) -> int:
        """GTFS direction_id: 1 = northbound/uptown, 0 = southbound/downtown."""
        return 1 if self is Direction.NORTHBOUND else 0

    @classmethod
    def from_stop_id(cls, stop_id: str) -> Optional["Direction"]:
        """Derive direction from a directional stop ID suffix, if it has one."""
        suffix = stop_id[-1:].upper()
        if suffix == "N":
            return cls.NORTHBOUND
        if suffix == "S":
            return cls.SOUTHBOUND
        return None


class DataSource(Enum):
    REALTIME = "realtime"
    ESTIMATE = "estimate"
    FIXED = "fixed"


class Confidence(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    SEVERE = "severe"

    @property
    def rank(self) -> int:
        """Sort rank, most severe first."""
        return {"severe": 0, "warning": 1, "info": 2}[self.value]


class StepKind(Enum):
    WALK = "walk"
    WAIT = "wait"
    TRANSIT = "transit"
    TRANSFER = "transfer"


@dataclass
class StopTimeUpdate:
    """A single predicted stop event for one trip, decoded from a realtime feed."""
    stop_id: str
    stop_sequence: int
    arrival_time: Optional[int] = None  # Unix timestamp
    departure_time: Optional[int] = None  # Unix timestamp
    delay: Optional[int] = None  # Seconds
    trip_id: Optional[str] = None
    route_id: Optional[str] = None

    @property
    def departure_epoch(self) -> Optional[int]:
        """Departure time if the feed gave one, else arrival time."""
        if self.departure_time is not None:
            return self.departure_time
        return self.arrival_time


@dataclass(frozen=True)
class LineSegment:
    """One ride on one line between two stations."""
    line: str
    direction: Direction
    from_station: str
    to_station: str
    feed_url: str
    from_stop_id: str
    to_stop_id: str

    @property
    def directional_stop_id(self) -> str:
        return f"{self.from_stop_id}{self.direction.stop_suffix}"


@dataclass(frozen=True)
class TransferPoint:
    """A station where the rider changes from one line to another."""
    station: str
    transfer_minutes: int  # 0 for a cross-platform transfer
    from_line: str
    to_line: str
    from_stop_id: str
    to_stop_id: str


@dataclass
class WalkStep:
    duration: int
    from_station: Optional[str] = None
    to_station: Optional[str] = None
    data_source: DataSource = DataSource.FIXED
    kind: ClassVar[StepKind] = StepKind.WALK


@dataclass
class WaitStep:
    duration: int
    station: str
    line: str
    direction: Direction
    data_source: DataSource = DataSource.REALTIME
    kind: ClassVar[StepKind] = StepKind.WAIT


@dataclass
class TransitStep:
    duration: int
    line: str
    from_station: str
    to_station: str
    departure_time: int  # Unix timestamp the train leaves from_station
    data_source: DataSource = DataSource.REALTIME
    kind: ClassVar[StepKind] = StepKind.TRANSIT


@dataclass
class TransferStep:
    duration: int
    station: str
    from_line: str
    to_line: str
    data_source: DataSource = DataSource.FIXED
    kind: ClassVar[StepKind] = StepKind.TRANSFER


# Tagged union of the step variants; StepKind is the tag.
RouteStep = Union[WalkStep, WaitStep, TransitStep, TransferStep]


def step_stations(step: RouteStep) -> List[str]:
    """Station names a step touches, in travel order."""
    if isinstance(step, WalkStep):
        return [s for s in (step.from_station, step.to_station) if s is not None]
    if isinstance(step, WaitStep):
        return [step.station]
    if isinstance(step, TransitStep):
        return [step.from_station, step.to_station]
    if isinstance(step, TransferStep):
        return [step.station]
    raise TypeError(f"Unknown route step: {step!r}")


def step_lines(step: RouteStep) -> List[str]:
    """Lines a step rides or waits for."""
    if isinstance(step, WalkStep):
        return []
    if isinstance(step, WaitStep):
        return [step.line]
    if isinstance(step, TransitStep):
        return [step.line]
    if isinstance(step, TransferStep):
        return [step.from_line, step.to_line]
    raise TypeError(f"Unknown route step: {step!r}")


@dataclass
class InformedEntity:
    """Selector naming what a service alert applies to."""
    agency_id: Optional[str] = None
    route_id: Optional[str] = None
    route_type: Optional[int] = None
    direction_id: Optional[int] = None
    stop_id: Optional[str] = None
    trip_id: Optional[str] = None


@dataclass
class ActivePeriod:
    """Time range an alert is in effect; a missing bound is open-ended."""
    start: Optional[int] = None  # Unix timestamp
    end: Optional[int] = None  # Unix timestamp

    def covers(self, now: float) -> bool:
        if self.start is not None and now < self.start:
            return False
        if self.end is not None and now > self.end:
            return False
        return True

    def overlaps(self, window_start: float, window_end: float) -> bool:
        if self.start is not None and self.start > window_end:
            return False
        if self.end is not None and self.end < window_start:
            return False
        return True


@dataclass
class ServiceAlert:
    """Represents a service alert decoded from the alerts feed."""
    id: str
    header_text: str
    description_text: str
    affected_routes: List[str]
    severity: Severity
    informed_entities: List[InformedEntity] = field(default_factory=list)
    active_period: Optional[ActivePeriod] = None

    @property
    def text(self) -> str:
        return f"{self.header_text} {self.description_text}".strip()


@dataclass
class AlertCheck:
    """Alert summary for a single route."""
    has_alerts: bool
    severity: Optional[Severity]
    alerts: List[ServiceAlert]


@dataclass
class Route:
    """A fully described trip option, recomputed per request."""
    id: int
    arrival_time: int  # Unix timestamp at the destination
    departure_time: int  # Unix timestamp the first train leaves
    leave_by: int  # Unix timestamp the rider must leave the origin
    duration: int  # Minutes from request time to arrival
    steps: List[RouteStep]
    transfers: int
    confidence: Confidence
    is_realtime: bool
    starting_station: str
    ending_station: str
    lines: Tuple[str, ...]
    transfer_stations: Tuple[str, ...] = ()
    wait_time: int = 0
    walking_to_transit: int = 0
    final_walking_time: int = 0
    transit_time: int = 0
    arrives_by_target: Optional[bool] = None
    alert_severity: Optional[Severity] = None
    has_alerts: bool = False
    alerts: List[ServiceAlert] = field(default_factory=list)

    @property
    def arrival_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.arrival_time)

    @property
    def departure_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.departure_time)

    @property
    def leave_by_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.leave_by)


@dataclass(frozen=True)
class FeedFailure:
    """A segment fetch that failed during route computation."""
    line: Optional[str]
    feed_url: Optional[str]
    message: str
