"""The known line segments and transfer points of the supported commutes."""

from dataclasses import dataclass
from typing import Tuple

from .config import feed_url_for_line
from .models import Direction, LineSegment, TransferPoint
from .stations import StationCatalog

DIRECT = "direct"
TRANSFER = "transfer"
DOUBLE_TRANSFER = "double_transfer"


@dataclass(frozen=True)
class ChainPlan:
    """An ordered chain of segments joined by transfer points."""
    name: str
    segments: Tuple[LineSegment, ...]
    transfer_points: Tuple[TransferPoint, ...]

    @property
    def first_station(self) -> str:
        return self.segments[0].from_station

    @property
    def last_station(self) -> str:
        return self.segments[-1].to_station

    @property
    def lines(self) -> Tuple[str, ...]:
        return tuple(segment.line for segment in self.segments)


@dataclass(frozen=True)
class CommutePlan:
    """Direct, one-transfer and two-transfer chains for one direction of travel."""
    direction: Direction
    direct: ChainPlan
    transfer: ChainPlan
    double_transfer: ChainPlan

    @property
    def chains(self) -> Tuple[ChainPlan, ...]:
        return (self.direct, self.transfer, self.double_transfer)


def make_segment(
    catalog: StationCatalog, line: str, direction: Direction, from_station: str, to_station: str
) -> LineSegment:
    """Build a segment with stop IDs from the catalog and the line's feed URL."""
    from_station = catalog.resolve(from_station)
    to_station = catalog.resolve(to_station)
    return LineSegment(
        line=line,
        direction=direction,
        from_station=from_station,
        to_station=to_station,
        feed_url=feed_url_for_line(line),
        from_stop_id=catalog.stop_id_for(from_station, line),
        to_stop_id=catalog.stop_id_for(to_station, line),
    )


def make_transfer(
    catalog: StationCatalog, station: str, from_line: str, to_line: str, transfer_minutes: int = 0
) -> TransferPoint:
    station = catalog.resolve(station)
    return TransferPoint(
        station=station,
        transfer_minutes=transfer_minutes,
        from_line=from_line,
        to_line=to_line,
        from_stop_id=catalog.stop_id_for(station, from_line),
        to_stop_id=catalog.stop_id_for(station, to_line),
    )


def _chain(catalog: StationCatalog, name: str, direction: Direction, hops, transfer_minutes: int = 0) -> ChainPlan:
    # hops: [(line, from_station, to_station), ...]; consecutive hops share a station
    segments = tuple(make_segment(catalog, line, direction, a, b) for line, a, b in hops)
    transfers = tuple(
        make_transfer(catalog, previous.to_station, previous.line, following.line, transfer_minutes)
        for previous, following in zip(segments, segments[1:])
    )
    return ChainPlan(name=name, segments=segments, transfer_points=transfers)


def morning_commute(catalog: StationCatalog) -> CommutePlan:
    """Carroll St to Chelsea, northbound."""
    direction = Direction.NORTHBOUND
    return CommutePlan(
        direction=direction,
        direct=_chain(catalog, DIRECT, direction, [("F", "Carroll St", "23 St")]),
        transfer=_chain(
            catalog,
            TRANSFER,
            direction,
            [("F", "Carroll St", "Jay St-MetroTech"), ("C", "Jay St-MetroTech", "23 St-8 Av")],
        ),
        double_transfer=_chain(
            catalog,
            DOUBLE_TRANSFER,
            direction,
            [
                ("F", "Carroll St", "Jay St-MetroTech"),
                ("A", "Jay St-MetroTech", "14 St-8 Av"),
                ("C", "14 St-8 Av", "23 St-8 Av"),
            ],
        ),
    )


def afternoon_commute(catalog: StationCatalog) -> CommutePlan:
    """Chelsea back to Carroll St, southbound."""
    direction = Direction.SOUTHBOUND
    return CommutePlan(
        direction=direction,
        direct=_chain(catalog, DIRECT, direction, [("F", "23 St", "Carroll St")]),
        transfer=_chain(
            catalog,
            TRANSFER,
            direction,
            [("C", "23 St-8 Av", "Jay St-MetroTech"), ("F", "Jay St-MetroTech", "Carroll St")],
        ),
        double_transfer=_chain(
            catalog,
            DOUBLE_TRANSFER,
            direction,
            [
                ("C", "23 St-8 Av", "14 St-8 Av"),
                ("A", "14 St-8 Av", "Jay St-MetroTech"),
                ("F", "Jay St-MetroTech", "Carroll St"),
            ],
        ),
    )


def commute_plan(catalog: StationCatalog, direction: Direction) -> CommutePlan:
    if direction is Direction.NORTHBOUND:
        return morning_commute(catalog)
    return afternoon_commute(catalog)
