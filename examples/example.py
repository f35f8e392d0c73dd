"""Example usage of RouteOrchestrator."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add src to path so we can import commutex
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from commutex import (
    CommuteError,
    Direction,
    EngineContext,
    RouteOrchestrator,
    StaticWalkingTimeProvider,
)
from commutex.models import TransferStep, TransitStep, WaitStep, WalkStep

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

HOME = "Home"
WORK = "Work"

WALKING_TIMES = {
    (HOME, "Carroll St"): 12,
    (WORK, "23 St"): 8,
    (WORK, "23 St-8 Av"): 5,
}


def describe_step(step) -> str:
    if isinstance(step, WalkStep):
        target = step.to_station or "destination"
        return f"Walk {step.duration} min to {target}"
    if isinstance(step, WaitStep):
        return f"Wait {step.duration} min for the {step.line} at {step.station}"
    if isinstance(step, TransitStep):
        return f"Ride the {step.line} {step.from_station} → {step.to_station} ({step.duration} min)"
    if isinstance(step, TransferStep):
        return f"Transfer {step.from_line} → {step.to_line} at {step.station}"
    raise TypeError(f"Unknown route step: {step!r}")


async def print_routes(direction: Direction):
    """
    Compute and display routes and alerts for one commute.

    Args:
        direction: NORTHBOUND for the morning commute, SOUTHBOUND for the afternoon.
    """
    origin, destination = (HOME, WORK) if direction is Direction.NORTHBOUND else (WORK, HOME)

    print(f"\n{'='*70}")
    print(f"Routes from {origin} to {destination} ({direction.value})")
    print(f"{'='*70}\n")

    context = EngineContext.create()
    async with RouteOrchestrator(context, walking_provider=StaticWalkingTimeProvider(WALKING_TIMES)) as engine:
        routes = await engine.compute_all_routes(origin, destination, direction=direction)

        if not routes:
            print("  No routes found")
        for route in routes:
            lines = " → ".join(route.lines)
            print(
                f"Route {route.id}: {lines}  leave {route.leave_by_datetime:%H:%M}  "
                f"arrive {route.arrival_datetime:%H:%M}  ({route.duration} min, {route.confidence.value})"
            )
            for step in route.steps:
                print(f"    {describe_step(step)}")
            if route.has_alerts:
                print(f"    ⚠ {route.alert_severity.value}: {route.alerts[0].header_text}")
            print()

        # Display alerts
        print("=" * 70)
        print("SERVICE ALERTS:")
        print("-" * 70)
        alerts = await engine.alert_correlator.get_prioritized_alerts_for_commute(
            sorted({line for route in routes for line in route.lines}) or [context.settings.home_line], direction
        )
        if alerts:
            for alert in alerts:
                print(f"\n{', '.join(alert.affected_routes)} [{alert.severity.value}]:")
                print(f"  {alert.header_text}")
        else:
            print("  No service alerts")
        print("\n" + "=" * 70 + "\n")


def main():
    parser = argparse.ArgumentParser(description="Show live commute routes")
    parser.add_argument("commute", nargs="?", choices=["morning", "afternoon"], default="morning")
    args = parser.parse_args()

    direction = Direction.NORTHBOUND if args.commute == "morning" else Direction.SOUTHBOUND
    try:
        asyncio.run(print_routes(direction))
    except CommuteError as e:
        logger.error(f"Failed to compute routes: {e}")
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
