"""Station progression state machine."""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional

from . import geodesy
from .catalog import StationCatalog
from .config import TrackerConfig
from .models import (
    RouteDirection,
    Station,
    StationPassRecord,
    StationProgressionState,
    StationStatus,
)

logger = logging.getLogger(__name__)


class StationProgressionEngine:
    """
    Tracks which stations of a journey are upcoming, approaching, occupied,
    passed or skipped.

    States are immutable; every operation returns a new StationProgressionState.
    Passed and skipped are final for a record, so a fix that wanders back
    toward a station already left does not reopen it.

    Station lifecycle per record:
    1. upcoming -> approaching when within approach radius
    2. upcoming/approaching -> at_station when within station radius
    3. at_station -> passed once back out in the approach band, or once a
       later station comes within approach radius
    4. anything ahead -> passed/skipped when the vehicle reaches a later
       station; passed only if the record ever came within exit radius
    """

    def __init__(
        self,
        catalog: StationCatalog,
        config: Optional[TrackerConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.catalog = catalog
        self.clock = clock
        config = config or TrackerConfig()
        self.station_radius = config.station_radius_m
        self.approach_radius = config.approach_radius_m
        self.exit_radius = config.exit_radius_m
        self.max_missed_stations = config.max_missed_stations

    def initialize_journey(self, direction: RouteDirection, destination: Station) -> StationProgressionState:
        """
        Create upcoming records from the route start up to the destination.

        Returns:
            A fresh state, or an empty state if the destination is not on the route.
        """
        stations = self.catalog.stations_by_direction(direction)
        dest_index = next((i for i, s in enumerate(stations) if s.id == destination.id), None)
        if dest_index is None:
            logger.warning(f"Destination {destination.id} is not in the station catalog")
            return StationProgressionState()

        records = tuple(StationPassRecord(station=s) for s in stations[:dest_index + 1])
        logger.info(
            f"Journey initialized {direction.value} to {destination.name} ({len(records)} stations)"
        )
        return StationProgressionState(
            station_records=records,
            next_station=records[0].station,
            destination=destination,
            passed_count=0,
            remaining_count=len(records),
        )

    def update_progression(
        self,
        state: StationProgressionState,
        latitude: float,
        longitude: float,
        direction: Optional[RouteDirection] = None,
    ) -> StationProgressionState:
        """
        Advance the journey with one location fix.

        Returns the input state unchanged when no journey is active or the
        destination has already been reached.
        """
        if not state.station_records or state.has_arrived:
            return state

        now = self.clock()
        records: List[StationPassRecord] = list(state.station_records)
        distances = [
            geodesy.distance(latitude, longitude, r.station.lat, r.station.lng) for r in records
        ]

        current_index = next(
            (i for i, d in enumerate(distances) if d <= self.station_radius), None
        )

        has_arrived = False
        for i, record in enumerate(records):
            dist = distances[i]
            min_distance = dist if record.min_distance_seen is None else min(record.min_distance_seen, dist)
            status = record.status
            entered_at = record.entered_at
            exited_at = record.exited_at

            if current_index is not None and i < current_index:
                if not record.is_resolved:
                    if min_distance <= self.exit_radius:
                        status = StationStatus.PASSED
                        exited_at = exited_at or now
                    else:
                        status = StationStatus.SKIPPED
            elif record.is_resolved:
                # A destination marked passed by hand still counts as reached on entry
                if record.station == state.destination and dist <= self.station_radius:
                    has_arrived = True
            elif dist <= self.station_radius:
                status = StationStatus.AT_STATION
                entered_at = entered_at or now
                if record.station == state.destination:
                    has_arrived = True
            elif dist <= self.approach_radius:
                if record.status is StationStatus.UPCOMING:
                    status = StationStatus.APPROACHING
                elif record.status is StationStatus.AT_STATION:
                    status = StationStatus.PASSED
                    exited_at = exited_at or now
            elif record.status in (StationStatus.AT_STATION, StationStatus.APPROACHING):
                if self._later_station_within_approach(distances, i):
                    status = StationStatus.PASSED
                    exited_at = exited_at or now

            if (status is not record.status or entered_at != record.entered_at
                    or exited_at != record.exited_at or min_distance != record.min_distance_seen):
                if status is not record.status:
                    logger.debug(f"{record.station.name}: {record.status.value} -> {status.value}")
                records[i] = replace(
                    record,
                    status=status,
                    entered_at=entered_at,
                    exited_at=exited_at,
                    min_distance_seen=min_distance,
                )

        next_station = self._find_next_station(records)
        self._heal_gaps(records, current_index, now)

        if has_arrived:
            logger.info(f"Arrived at destination {state.destination.name}")

        return self._with_counts(
            state,
            records,
            current_station=records[current_index].station if current_index is not None else None,
            next_station=next_station,
            has_arrived=has_arrived,
        )

    def mark_station_passed(self, state: StationProgressionState, station_id: str) -> StationProgressionState:
        """
        Manual correction: mark a station passed and every earlier unvisited one skipped.

        Raises:
            ValueError: If the station is not part of the journey.
        """
        index = next(
            (i for i, r in enumerate(state.station_records) if r.station.id == station_id), None
        )
        if index is None:
            raise ValueError(f"Station {station_id} is not part of the current journey")
        if state.has_arrived:
            return state

        now = self.clock()
        records = list(state.station_records)
        records[index] = replace(
            records[index], status=StationStatus.PASSED, exited_at=records[index].exited_at or now
        )
        for i in range(index):
            if records[i].status is not StationStatus.PASSED:
                records[i] = replace(records[i], status=StationStatus.SKIPPED)

        logger.info(f"Station {records[index].station.name} marked passed manually")
        current = state.current_station
        if current is not None and not any(
                r.station == current and not r.is_resolved for r in records):
            current = None
        return self._with_counts(
            state,
            records,
            current_station=current,
            next_station=self._find_next_station(records),
            has_arrived=state.has_arrived,
        )

    def _later_station_within_approach(self, distances: List[float], index: int) -> bool:
        return any(d <= self.approach_radius for d in distances[index + 1:])

    @staticmethod
    def _find_next_station(records: List[StationPassRecord]) -> Optional[Station]:
        for record in records:
            if record.is_ahead:
                return record.station
        return None

    def _heal_gaps(self, records: List[StationPassRecord], current_index: Optional[int], now: datetime) -> None:
        """Resolve everything behind the current station, in place."""
        if current_index is None:
            return

        # Short runs sandwiched between two passed stations were skipped
        last_passed = -1
        for i in range(current_index):
            if records[i].status is not StationStatus.PASSED:
                continue
            gap = i - last_passed - 1
            if last_passed >= 0 and 0 < gap <= self.max_missed_stations:
                for j in range(last_passed + 1, i):
                    if records[j].status is not StationStatus.PASSED:
                        records[j] = replace(records[j], status=StationStatus.SKIPPED)
            last_passed = i

        for i in range(current_index):
            record = records[i]
            if not record.is_ahead:
                continue
            if record.min_distance_seen is not None and record.min_distance_seen <= self.exit_radius:
                records[i] = replace(record, status=StationStatus.PASSED, exited_at=record.exited_at or now)
            else:
                records[i] = replace(record, status=StationStatus.SKIPPED)

    @staticmethod
    def _with_counts(state, records, current_station, next_station, has_arrived) -> StationProgressionState:
        passed_count = sum(1 for r in records if r.is_resolved)
        return replace(
            state,
            station_records=tuple(records),
            current_station=current_station,
            next_station=next_station,
            passed_count=passed_count,
            remaining_count=len(records) - passed_count,
            has_arrived=has_arrived,
        )
