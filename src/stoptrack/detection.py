"""Nearest-station detection: at a station, or which segment the vehicle is in."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from . import geodesy
from .catalog import StationCatalog
from .config import STATION_RADIUS_M
from .models import RouteDirection, Station

logger = logging.getLogger(__name__)


class StationProximity(Enum):
    AT_STATION = "at_station"
    BETWEEN_STATIONS = "between_stations"
    BEFORE_ROUTE = "before_route"
    AFTER_ROUTE = "after_route"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class StationDetectionResult:
    """Where the vehicle is relative to the direction-ordered stations."""
    proximity: StationProximity
    current_station: Optional[Station] = None
    previous_station: Optional[Station] = None
    next_station: Optional[Station] = None
    distance_to_next: Optional[float] = None  # meters
    distance_to_current: Optional[float] = None  # meters, to the nearest station
    stations_to_destination: int = -1
    destination: Optional[Station] = None

    @property
    def is_at_station(self) -> bool:
        return self.proximity is StationProximity.AT_STATION

    @property
    def has_reached_destination(self) -> bool:
        return (self.is_at_station and self.current_station is not None
                and self.current_station == self.destination)


@dataclass(frozen=True)
class StationWithDistance:
    station: Station
    distance: float  # meters

    @property
    def formatted_distance(self) -> str:
        if self.distance < 1000:
            return f"{self.distance:.0f}m"
        return f"{self.distance / 1000:.1f}km"


class StationDetector:
    """Stateless nearest-station classification over the catalog."""

    def __init__(self, catalog: StationCatalog, station_radius: float = STATION_RADIUS_M):
        self.catalog = catalog
        self.station_radius = station_radius

    def detect_station(
        self,
        latitude: float,
        longitude: float,
        direction: RouteDirection,
        destination: Station,
    ) -> StationDetectionResult:
        stations = self.catalog.stations_by_direction(direction)
        if not stations:
            return StationDetectionResult(proximity=StationProximity.UNKNOWN)

        distances: Dict[str, float] = {
            s.id: geodesy.distance(latitude, longitude, s.lat, s.lng) for s in stations
        }
        nearest = min(stations, key=lambda s: distances[s.id])
        nearest_distance = distances[nearest.id]

        if nearest_distance > self.station_radius:
            return self._find_segment(stations, distances, direction, destination)

        index = stations.index(nearest)
        next_station = stations[index + 1] if index < len(stations) - 1 else None
        return StationDetectionResult(
            proximity=StationProximity.AT_STATION,
            current_station=nearest,
            previous_station=stations[index - 1] if index > 0 else None,
            next_station=next_station,
            distance_to_current=nearest_distance,
            distance_to_next=distances[next_station.id] if next_station else None,
            stations_to_destination=self._stations_to_destination(nearest, destination, direction),
            destination=destination,
        )

    def _find_segment(
        self,
        stations: List[Station],
        distances: Dict[str, float],
        direction: RouteDirection,
        destination: Station,
    ) -> StationDetectionResult:
        """
        Place the vehicle between its two nearest stations.

        The first/last-station checks are a loose heuristic: being past the
        first station toward the second still reads as between stations,
        and before_route is never produced here.
        """
        by_distance = sorted(stations, key=lambda s: distances[s.id])
        if len(by_distance) < 2:
            nearest = by_distance[0]
            return StationDetectionResult(
                proximity=StationProximity.UNKNOWN,
                current_station=nearest,
                distance_to_current=distances[nearest.id],
                destination=destination,
            )

        nearest1, nearest2 = by_distance[0], by_distance[1]
        if nearest1.order(direction) < nearest2.order(direction):
            previous_station, next_station = nearest1, nearest2
        else:
            previous_station, next_station = nearest2, nearest1

        first, last = stations[0], stations[-1]
        if (next_station.id == last.id and previous_station.id != first.id
                and distances[last.id] < distances[previous_station.id]):
            proximity = StationProximity.AFTER_ROUTE
        else:
            proximity = StationProximity.BETWEEN_STATIONS

        # +1 because next_station itself has not been reached yet
        stations_to_destination = self._stations_to_destination(next_station, destination, direction) + 1

        return StationDetectionResult(
            proximity=proximity,
            previous_station=previous_station,
            next_station=next_station,
            distance_to_next=distances[next_station.id],
            distance_to_current=distances[nearest1.id],
            stations_to_destination=stations_to_destination,
            destination=destination,
        )

    @staticmethod
    def _stations_to_destination(from_station: Station, destination: Station, direction: RouteDirection) -> int:
        from_order = from_station.order(direction)
        dest_order = destination.order(direction)
        if from_order >= dest_order:
            return 0
        return dest_order - from_order

    def stations_with_distances(
        self, latitude: float, longitude: float, direction: RouteDirection
    ) -> List[StationWithDistance]:
        return [
            StationWithDistance(station=s, distance=geodesy.distance(latitude, longitude, s.lat, s.lng))
            for s in self.catalog.stations_by_direction(direction)
        ]
