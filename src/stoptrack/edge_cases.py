"""Warnings for degraded tracking: GPS loss, slow traffic, wrong direction, off route."""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from . import geodesy
from .config import (
    GPS_LOST_AFTER_S,
    GPS_WEAK_AFTER_S,
    LOW_SPEED_MPS,
    OFF_ROUTE_DISTANCE_M,
    SLOW_UPDATES_BEFORE_WARNING,
    STATIONARY_MPS,
)
from .models import (
    DirectionInferenceResult,
    EdgeCaseType,
    EdgeCaseWarning,
    LocationUpdate,
    RouteDirection,
    Station,
    WarningSeverity,
)

logger = logging.getLogger(__name__)


class EdgeCaseMonitor:
    """
    Raises and clears warnings. At most one warning per type is active;
    raising a type again replaces the previous warning.

    GPS staleness is checked by check_gps_status(), which the owner calls on
    a fixed period. Everything else reacts to location updates.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        off_route_distance: float = OFF_ROUTE_DISTANCE_M,
    ):
        self.clock = clock
        self.off_route_distance = off_route_distance
        self._warnings: Dict[EdgeCaseType, EdgeCaseWarning] = {}
        self.last_gps_update: Optional[datetime] = None
        self.gps_silence: Optional[timedelta] = None
        self.last_known_speed: Optional[float] = None  # m/s
        self.consecutive_slow_updates = 0
        self.is_off_route = False
        self.is_wrong_direction = False

    # ------------------------------------------------------------------
    # Warning bookkeeping
    # ------------------------------------------------------------------

    @property
    def active_warnings(self) -> List[EdgeCaseWarning]:
        """Active warnings, most severe first."""
        return sorted(self._warnings.values(), key=lambda w: w.severity.value, reverse=True)

    def get_warning(self, warning_type: EdgeCaseType) -> Optional[EdgeCaseWarning]:
        return self._warnings.get(warning_type)

    @property
    def has_warnings(self) -> bool:
        return bool(self._warnings)

    @property
    def has_critical_warning(self) -> bool:
        return any(w.severity is WarningSeverity.CRITICAL for w in self._warnings.values())

    @property
    def most_severe_warning(self) -> Optional[EdgeCaseWarning]:
        warnings = self.active_warnings
        return warnings[0] if warnings else None

    def _raise(self, warning_type, severity, title, message, dismissible=True) -> None:
        if warning_type not in self._warnings:
            logger.info(f"Warning raised: {title} - {message}")
        self._warnings[warning_type] = EdgeCaseWarning(
            type=warning_type,
            severity=severity,
            title=title,
            message=message,
            timestamp=self.clock(),
            is_dismissible=dismissible,
        )

    def _clear(self, warning_type: EdgeCaseType) -> None:
        if self._warnings.pop(warning_type, None) is not None:
            logger.info(f"Warning cleared: {warning_type.value}")

    def dismiss_warning(self, warning_type: EdgeCaseType) -> bool:
        """
        Dismiss a warning if it is active and dismissible.

        Returns:
            True if a warning was removed.
        """
        warning = self._warnings.get(warning_type)
        if warning is None:
            logger.debug(f"No active {warning_type.value} warning to dismiss")
            return False
        if not warning.is_dismissible:
            logger.debug(f"{warning_type.value} warning cannot be dismissed")
            return False
        del self._warnings[warning_type]
        return True

    def clear_gps_status(self) -> None:
        """Forget the last fix time so a paused stream is not reported as lost."""
        self.last_gps_update = None
        self.gps_silence = None
        self._clear(EdgeCaseType.GPS_LOST)
        self._clear(EdgeCaseType.GPS_WEAK_SIGNAL)

    def clear_all_warnings(self) -> None:
        self._warnings.clear()

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def process_location_update(self, location: LocationUpdate) -> None:
        """Record a fresh fix: clears GPS warnings and updates the slow-speed counter."""
        now = self.clock()
        self.last_gps_update = now
        self.gps_silence = timedelta(0)
        self._clear(EdgeCaseType.GPS_LOST)
        self._clear(EdgeCaseType.GPS_WEAK_SIGNAL)

        speed = location.smoothed_speed
        self.last_known_speed = speed

        if speed >= LOW_SPEED_MPS:
            self.consecutive_slow_updates = 0
            self._clear(EdgeCaseType.STATIONARY)
            self._clear(EdgeCaseType.LOW_SPEED)
            return

        self.consecutive_slow_updates += 1
        if self.consecutive_slow_updates < SLOW_UPDATES_BEFORE_WARNING:
            return

        if speed < STATIONARY_MPS:
            self._clear(EdgeCaseType.LOW_SPEED)
            self._raise(
                EdgeCaseType.STATIONARY,
                WarningSeverity.INFO,
                "Vehicle Stationary",
                "You appear to be stopped. ETA updates paused.",
            )
        else:
            self._clear(EdgeCaseType.STATIONARY)
            self._raise(
                EdgeCaseType.LOW_SPEED,
                WarningSeverity.INFO,
                "Heavy Traffic",
                f"Moving slowly ({location.speed_kmh:.1f} km/h). ETA may be longer.",
            )

    def check_direction(self, inference: DirectionInferenceResult, active_direction: Optional[RouteDirection]) -> None:
        if active_direction is None or inference.inferred_direction is None:
            return

        if inference.inferred_direction is active_direction:
            self._clear(EdgeCaseType.WRONG_DIRECTION)
            self.is_wrong_direction = False
        elif inference.is_confident and not self.is_wrong_direction:
            self._raise(
                EdgeCaseType.WRONG_DIRECTION,
                WarningSeverity.WARNING,
                "Wrong Direction?",
                f"You appear to be heading {inference.inferred_direction.display_name}. "
                f"Expected: {active_direction.display_name}.",
            )
            self.is_wrong_direction = True

    def check_off_route(self, latitude: float, longitude: float, stations: Iterable[Station]) -> None:
        distances = [geodesy.distance(latitude, longitude, s.lat, s.lng) for s in stations]
        if not distances:
            return

        min_distance = min(distances)
        if min_distance > self.off_route_distance:
            if not self.is_off_route:
                self._raise(
                    EdgeCaseType.OFF_ROUTE,
                    WarningSeverity.WARNING,
                    "Off Route",
                    f"You are {min_distance / 1000:.1f} km from the nearest station.",
                )
                self.is_off_route = True
        else:
            self._clear(EdgeCaseType.OFF_ROUTE)
            self.is_off_route = False

    def check_gps_status(self) -> None:
        """Periodic staleness check against the last accepted update."""
        if self.last_gps_update is None:
            return

        silence = self.clock() - self.last_gps_update
        seconds = silence.total_seconds()

        if seconds > GPS_LOST_AFTER_S:
            self._clear(EdgeCaseType.GPS_WEAK_SIGNAL)
            if EdgeCaseType.GPS_LOST not in self._warnings:
                self._raise(
                    EdgeCaseType.GPS_LOST,
                    WarningSeverity.CRITICAL,
                    "GPS Signal Lost",
                    f"No location updates for {int(seconds)}s. Check GPS settings.",
                    dismissible=False,
                )
            self.gps_silence = silence
        elif seconds > GPS_WEAK_AFTER_S:
            if EdgeCaseType.GPS_WEAK_SIGNAL not in self._warnings:
                self._raise(
                    EdgeCaseType.GPS_WEAK_SIGNAL,
                    WarningSeverity.WARNING,
                    "Weak GPS Signal",
                    "Location updates are delayed. Move to an open area.",
                )
            self.gps_silence = silence

    # ------------------------------------------------------------------
    # Status summaries
    # ------------------------------------------------------------------

    @property
    def gps_status_message(self) -> Optional[str]:
        if self.gps_silence is not None and self.gps_silence.total_seconds() > GPS_WEAK_AFTER_S:
            return f"GPS signal weak - {int(self.gps_silence.total_seconds())}s since last update"
        return None

    @property
    def speed_status_message(self) -> Optional[str]:
        if self.last_known_speed is None:
            return None
        if self.last_known_speed < STATIONARY_MPS:
            return "Vehicle stopped"
        if self.last_known_speed < LOW_SPEED_MPS:
            return f"Heavy traffic ({self.last_known_speed * 3.6:.1f} km/h)"
        return None

    def reset(self) -> None:
        self._warnings.clear()
        self.last_gps_update = None
        self.gps_silence = None
        self.last_known_speed = None
        self.consecutive_slow_updates = 0
        self.is_off_route = False
        self.is_wrong_direction = False
