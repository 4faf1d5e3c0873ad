"""Replay a simulated ride along the sample route and print each snapshot."""

import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Add src to path so we can import stoptrack
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stoptrack import (
    JourneySnapshot,
    JourneyTracker,
    PositionFix,
    ReplayPositionSource,
    RouteDirection,
    StationCatalog,
)
from stoptrack import geodesy
from stoptrack.eta import format_distance, format_eta

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

DATA_FILE = Path(__file__).parent / "data" / "stations.json"


def simulate_ride(catalog, direction, destination_id, speed=8.0, step_m=200.0):
    """
    Build fixes along straight lines between consecutive stations.

    Args:
        catalog: Loaded StationCatalog
        direction: RouteDirection of travel
        destination_id: Last station of the ride
        speed: Simulated speed in m/s
        step_m: Approximate spacing between fixes in meters

    Returns:
        List of PositionFix ending at the destination
    """
    stations = catalog.stations_by_direction(direction)
    ids = [s.id for s in stations]
    stations = stations[:ids.index(destination_id) + 1]

    clock = datetime.now()
    fixes = []
    for start, end in zip(stations, stations[1:]):
        leg = geodesy.distance(start.lat, start.lng, end.lat, end.lng)
        steps = max(int(leg // step_m), 1)
        for i in range(steps):
            fraction = i / steps
            fixes.append(PositionFix(
                latitude=start.lat + (end.lat - start.lat) * fraction,
                longitude=start.lng + (end.lng - start.lng) * fraction,
                accuracy=8.0,
                timestamp=clock,
            ))
            clock += timedelta(seconds=leg / steps / speed)

    last = stations[-1]
    fixes.append(PositionFix(latitude=last.lat, longitude=last.lng, accuracy=8.0, timestamp=clock))
    return fixes


def print_snapshot(snapshot: JourneySnapshot):
    if snapshot.location is None:
        return
    progression = snapshot.progression
    eta = snapshot.eta
    next_name = progression.next_station.name if progression.next_station else "-"
    print(
        f"{snapshot.location.timestamp.strftime('%H:%M:%S')}  "
        f"{snapshot.location.speed_kmh:5.1f} km/h  "
        f"next: {next_name:<14} "
        f"({format_distance(eta.distance_to_next_station)}, {format_eta(eta.eta_to_next_station)})  "
        f"passed {progression.passed_count}/{progression.passed_count + progression.remaining_count}  "
        f"{eta.status}"
    )
    for warning in snapshot.warnings:
        print(f"    ! {warning.title}: {warning.message}")
    if snapshot.alert is not None:
        print(f"\n*** {snapshot.alert.title} {snapshot.alert.body} ***\n")


def main(destination_id: str = "ayala", direction_name: str = None):
    catalog = StationCatalog()
    catalog.load_from_json(str(DATA_FILE))

    try:
        destination = catalog.get_station(destination_id)
    except ValueError as e:
        print(f"Error: {e}")
        matching = catalog.find_stations_by_name(destination_id)
        if matching:
            print("\nDid you mean:")
            for station in matching[:5]:
                print(f"  - {station.name} ({station.id})")
        sys.exit(1)

    direction = RouteDirection(direction_name) if direction_name else None
    ride_direction = direction or RouteDirection.NORTHBOUND
    fixes = simulate_ride(catalog, ride_direction, destination.id)

    print(f"\n{'='*70}")
    print(f"Riding {ride_direction.display_name} to {destination.name} ({len(fixes)} fixes)")
    if direction is None:
        print("Direction will be inferred from movement")
    print(f"{'='*70}\n")

    tracker = JourneyTracker(catalog, source=ReplayPositionSource(fixes))
    tracker.add_listener(print_snapshot)
    try:
        tracker.start_journey(destination, direction, alert_threshold=2)
        if not tracker.start_tracking():
            print("Error: position source unavailable")
            sys.exit(1)
        print(f"\nArrived: {tracker.progression.has_arrived}")
    finally:
        tracker.cleanup()


if __name__ == "__main__":
    main(*sys.argv[1:3])
