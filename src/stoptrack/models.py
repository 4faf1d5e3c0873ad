"""Data models for StopTrack."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple


class RouteDirection(Enum):
    """Direction of travel along the route."""
    NORTHBOUND = "northbound"
    SOUTHBOUND = "southbound"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def opposite(self) -> "RouteDirection":
        if self is RouteDirection.NORTHBOUND:
            return RouteDirection.SOUTHBOUND
        return RouteDirection.NORTHBOUND


@dataclass(frozen=True, eq=False)
class Station:
    """Represents a station on the route. Identity is by id."""
    id: str
    name: str
    lat: float
    lng: float
    north_order: int
    south_order: int
    is_terminal: bool = False
    full_name: Optional[str] = None
    landmarks: Tuple[str, ...] = ()

    def order(self, direction: RouteDirection) -> int:
        """Rank of this station in the given direction."""
        if direction is RouteDirection.NORTHBOUND:
            return self.north_order
        return self.south_order

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "fullName": self.full_name or self.name,
            "latitude": self.lat,
            "longitude": self.lng,
            "northboundOrder": self.north_order,
            "southboundOrder": self.south_order,
            "isTerminal": self.is_terminal,
            "landmarks": list(self.landmarks),
        }

    def __eq__(self, other) -> bool:
        return isinstance(other, Station) and other.id == self.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"Station(id={self.id!r}, name={self.name!r}, lat={self.lat}, lng={self.lng})"


@dataclass(frozen=True)
class PositionFix:
    """A raw fix from the position source. Speed may be missing or negative."""
    latitude: float
    longitude: float
    accuracy: float  # meters
    timestamp: datetime
    speed: Optional[float] = None  # m/s as reported by the device


@dataclass(frozen=True)
class LocationUpdate:
    """A normalized location sample with smoothed speed."""
    latitude: float
    longitude: float
    raw_speed: float  # m/s
    smoothed_speed: float  # m/s, recency-weighted average
    accuracy: float  # meters
    timestamp: datetime

    @property
    def speed_kmh(self) -> float:
        return self.smoothed_speed * 3.6

    @property
    def raw_speed_kmh(self) -> float:
        return self.raw_speed * 3.6


class StationStatus(Enum):
    """Status of a station within the active journey."""
    UPCOMING = "upcoming"
    APPROACHING = "approaching"  # within approach radius
    AT_STATION = "at_station"  # within station radius
    PASSED = "passed"
    SKIPPED = "skipped"  # bypassed without a confirmed visit


@dataclass(frozen=True)
class StationPassRecord:
    """Record of a station visit or pass for the active journey."""
    station: Station
    status: StationStatus = StationStatus.UPCOMING
    entered_at: Optional[datetime] = None
    exited_at: Optional[datetime] = None
    min_distance_seen: Optional[float] = None  # meters

    @property
    def was_visited(self) -> bool:
        return self.status in (StationStatus.PASSED, StationStatus.AT_STATION)

    @property
    def is_resolved(self) -> bool:
        """True once the station is behind the vehicle (passed or skipped)."""
        return self.status in (StationStatus.PASSED, StationStatus.SKIPPED)

    @property
    def is_ahead(self) -> bool:
        return self.status in (StationStatus.UPCOMING, StationStatus.APPROACHING)


@dataclass(frozen=True)
class StationProgressionState:
    """Aggregate progression of a journey toward its destination."""
    station_records: Tuple[StationPassRecord, ...] = ()
    current_station: Optional[Station] = None
    next_station: Optional[Station] = None
    destination: Optional[Station] = None
    passed_count: int = 0
    remaining_count: int = 0
    has_arrived: bool = False

    def get_by_status(self, status: StationStatus) -> List[StationPassRecord]:
        return [r for r in self.station_records if r.status is status]

    @property
    def passed_stations(self) -> List[Station]:
        return [r.station for r in self.station_records if r.status is StationStatus.PASSED]

    @property
    def is_active(self) -> bool:
        return bool(self.station_records)


@dataclass(frozen=True)
class DirectionInferenceResult:
    """Result of inferring the direction of travel."""
    inferred_direction: Optional[RouteDirection] = None
    confidence: float = 0.0  # 0.0 to 1.0
    bearing: float = 0.0  # degrees from north, [0, 360)
    reasoning: str = ""
    should_override: bool = False

    @property
    def is_confident(self) -> bool:
        return self.confidence >= 0.7

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence >= 0.85

    def __str__(self) -> str:
        direction = self.inferred_direction.value if self.inferred_direction else None
        return (
            f"DirectionInference(direction: {direction}, "
            f"confidence: {self.confidence * 100:.0f}%, bearing: {self.bearing:.0f}°)"
        )


@dataclass(frozen=True)
class ETAResult:
    """Distance and time estimates toward the next station and destination."""
    distance_to_next_station: float = 0.0  # meters
    distance_to_destination: float = 0.0  # meters
    eta_to_next_station: Optional[timedelta] = None
    eta_to_destination: Optional[timedelta] = None
    current_speed: float = 0.0  # m/s
    average_speed: float = 0.0  # m/s
    next_station: Optional[Station] = None
    destination: Optional[Station] = None
    is_stationary: bool = True
    status: str = "Calculating..."
    computed_at: Optional[datetime] = None

    @property
    def current_speed_kmh(self) -> float:
        return self.current_speed * 3.6

    @property
    def average_speed_kmh(self) -> float:
        return self.average_speed * 3.6

    @property
    def arrival_time_to_next(self) -> Optional[datetime]:
        if self.eta_to_next_station is None or self.computed_at is None:
            return None
        return self.computed_at + self.eta_to_next_station

    @property
    def arrival_time_to_destination(self) -> Optional[datetime]:
        if self.eta_to_destination is None or self.computed_at is None:
            return None
        return self.computed_at + self.eta_to_destination


@dataclass
class AlertState:
    """Which alerts have fired for the current journey."""
    triggered_thresholds: set = field(default_factory=set)
    arrival_notified: bool = False
    last_alert_time: Optional[datetime] = None

    def has_triggered(self, remaining: int) -> bool:
        return remaining in self.triggered_thresholds


@dataclass(frozen=True)
class ProximityAlert:
    """Fired when the destination is a configured number of stations away."""
    station_name: str
    stations_away: int
    eta: Optional[str] = None

    @property
    def title(self) -> str:
        if self.stations_away <= 1:
            return "PREPARE TO ALIGHT!"
        if self.stations_away == 2:
            return "Almost There!"
        return "Approaching Destination"

    @property
    def body(self) -> str:
        if self.stations_away <= 1:
            return f"{self.station_name} is the next stop!"
        suffix = f" (~{self.eta})" if self.eta else ""
        return f"{self.station_name} is {self.stations_away} stations away{suffix}"


@dataclass(frozen=True)
class ArrivalAlert:
    """Fired once when the destination is reached."""
    station_name: str

    @property
    def title(self) -> str:
        return "You have arrived!"

    @property
    def body(self) -> str:
        return f"You are now at {self.station_name}."


class EdgeCaseType(Enum):
    GPS_LOST = "gps_lost"
    GPS_WEAK_SIGNAL = "gps_weak_signal"
    LOW_SPEED = "low_speed"
    STATIONARY = "stationary"
    WRONG_DIRECTION = "wrong_direction"
    OFF_ROUTE = "off_route"


class WarningSeverity(Enum):
    INFO = 0
    WARNING = 1
    CRITICAL = 2


@dataclass(frozen=True)
class EdgeCaseWarning:
    """An active warning about degraded tracking conditions."""
    type: EdgeCaseType
    severity: WarningSeverity
    title: str
    message: str
    timestamp: datetime
    is_dismissible: bool = True
