"""Distance and time-to-arrival estimates."""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from . import geodesy
from .config import (
    AVERAGE_SPEED_WEIGHT,
    CURRENT_SPEED_WEIGHT,
    ETA_SPEED_SAMPLES,
    GOOD_TRAFFIC_SPEED_MPS,
    MIN_SAMPLES_FOR_AVERAGE,
    ROUTE_SLOWDOWN_FACTOR,
    SLOW_TRAFFIC_SPEED_MPS,
    STATIONARY_SPEED_MPS,
)
from .models import ETAResult, StationProgressionState
from .speed import SpeedSmoother

logger = logging.getLogger(__name__)


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{meters:.0f} m"
    return f"{meters / 1000:.1f} km"


def format_eta(duration: Optional[timedelta]) -> str:
    if duration is None:
        return "--"
    total_minutes = int(duration.total_seconds() // 60)
    if total_minutes < 1:
        return "< 1 min"
    if total_minutes < 60:
        return f"{total_minutes} min"
    hours, minutes = divmod(total_minutes, 60)
    if minutes == 0:
        return f"{hours} hr"
    return f"{hours} hr {minutes} min"


class ETAEngine:
    """
    Projects arrival times from the vehicle's speed and the remaining stations.

    Keeps its own rolling speed average, separate from the location tracker's.
    """

    def __init__(self, speed_samples: int = ETA_SPEED_SAMPLES, clock: Callable[[], datetime] = datetime.now):
        self._speeds = SpeedSmoother(speed_samples)
        self.clock = clock
        self.last_result = ETAResult()

    @property
    def average_speed(self) -> float:
        return self._speeds.smoothed_speed

    @property
    def sample_count(self) -> int:
        return len(self._speeds)

    def add_speed_sample(self, speed: float) -> None:
        if speed >= 0:
            self._speeds.add_sample(speed)

    def clear_history(self) -> None:
        self._speeds.clear()
        self.last_result = ETAResult()

    def effective_speed(self, current_speed: float) -> float:
        """Blend current and average speed; 0 means stationary."""
        if self.sample_count >= MIN_SAMPLES_FOR_AVERAGE and self.average_speed > STATIONARY_SPEED_MPS:
            return current_speed * CURRENT_SPEED_WEIGHT + self.average_speed * AVERAGE_SPEED_WEIGHT
        if current_speed > STATIONARY_SPEED_MPS:
            return current_speed
        return 0.0

    def calculate_eta(
        self,
        latitude: float,
        longitude: float,
        current_speed: float,
        progression: StationProgressionState,
    ) -> ETAResult:
        """
        Compute a fresh estimate and remember it as last_result.

        Args:
            latitude: Current latitude.
            longitude: Current longitude.
            current_speed: Speed of this sample in m/s.
            progression: Current journey progression.

        Returns:
            ETAResult. ETAs are None, not zero, while the vehicle is stationary.
        """
        self.add_speed_sample(current_speed)
        now = self.clock()

        destination = progression.destination
        if destination is None:
            result = ETAResult(status="No destination set", computed_at=now)
        elif progression.has_arrived:
            result = ETAResult(
                destination=destination,
                distance_to_destination=0.0,
                current_speed=current_speed,
                average_speed=self.average_speed,
                is_stationary=True,
                status="Arrived!",
                computed_at=now,
            )
        else:
            result = self._estimate(latitude, longitude, current_speed, progression, now)

        self.last_result = result
        return result

    def _estimate(self, latitude, longitude, current_speed, progression, now) -> ETAResult:
        next_station = progression.next_station
        distance_to_next = 0.0
        if next_station is not None:
            distance_to_next = geodesy.distance(latitude, longitude, next_station.lat, next_station.lng)
        distance_to_dest = self.route_distance(latitude, longitude, progression)

        speed = self.effective_speed(current_speed)
        is_stationary = speed < STATIONARY_SPEED_MPS

        eta_to_next = None
        eta_to_dest = None
        if not is_stationary and distance_to_next > 0:
            eta_to_next = timedelta(seconds=round(distance_to_next / speed))
        if not is_stationary and distance_to_dest > 0:
            eta_to_dest = timedelta(seconds=round(distance_to_dest / (speed / ROUTE_SLOWDOWN_FACTOR)))

        if is_stationary:
            if self.sample_count < MIN_SAMPLES_FOR_AVERAGE:
                status = "Gathering speed data..."
            else:
                status = "Vehicle stopped"
        elif speed < SLOW_TRAFFIC_SPEED_MPS:
            status = "Slow traffic"
        elif speed > GOOD_TRAFFIC_SPEED_MPS:
            status = "Good traffic flow"
        else:
            status = "Normal traffic"

        logger.debug(
            f"ETA: next {format_distance(distance_to_next)} in {format_eta(eta_to_next)}, "
            f"dest {format_distance(distance_to_dest)} in {format_eta(eta_to_dest)} ({status})"
        )
        return ETAResult(
            distance_to_next_station=distance_to_next,
            distance_to_destination=distance_to_dest,
            eta_to_next_station=eta_to_next,
            eta_to_destination=eta_to_dest,
            current_speed=current_speed,
            average_speed=self.average_speed,
            next_station=next_station,
            destination=progression.destination,
            is_stationary=is_stationary,
            status=status,
            computed_at=now,
        )

    @staticmethod
    def route_distance(latitude: float, longitude: float, progression: StationProgressionState) -> float:
        """Distance along the remaining stations: fix -> first ahead -> ... -> last ahead."""
        ahead = [r.station for r in progression.station_records if r.is_ahead]
        if not ahead:
            dest = progression.destination
            if dest is None:
                return 0.0
            return geodesy.distance(latitude, longitude, dest.lat, dest.lng)

        total = geodesy.distance(latitude, longitude, ahead[0].lat, ahead[0].lng)
        for current, following in zip(ahead, ahead[1:]):
            total += geodesy.distance(current.lat, current.lng, following.lat, following.lng)
        return total
