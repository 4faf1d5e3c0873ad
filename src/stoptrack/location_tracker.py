"""Normalizes raw position fixes into LocationUpdate events."""

import logging
from typing import Callable, List, Optional

from . import geodesy
from .config import LIVE_SPEED_SAMPLES
from .models import LocationUpdate, PositionFix
from .position_feed import PositionSource
from .speed import SpeedSmoother

logger = logging.getLogger(__name__)

UpdateListener = Callable[[LocationUpdate], None]


class LocationTracker:
    """
    Owns the raw position stream and emits LocationUpdate events while active.

    When the source reports no usable speed, speed is derived from the
    distance and time since the previous fix.
    """

    def __init__(self, source: PositionSource, speed_samples: int = LIVE_SPEED_SAMPLES):
        self.source = source
        self._smoother = SpeedSmoother(speed_samples)
        self._listeners: List[UpdateListener] = []
        self._last_fix: Optional[PositionFix] = None
        self._last_update: Optional[LocationUpdate] = None
        self._is_tracking = False

    @property
    def is_tracking(self) -> bool:
        return self._is_tracking

    @property
    def last_location(self) -> Optional[LocationUpdate]:
        return self._last_update

    def add_listener(self, listener: UpdateListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: UpdateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def start(self) -> bool:
        """
        Begin tracking.

        Returns:
            True if tracking is active, False if the source is unavailable.
        """
        if self._is_tracking:
            return True

        if not self.source.is_available():
            logger.warning("Cannot start tracking: position source unavailable")
            return False

        self._smoother.clear()
        self._last_fix = None
        self._is_tracking = True
        logger.info("Location tracking started")
        self.source.start(self.handle_fix)
        return True

    def stop(self) -> None:
        """Stop tracking and discard speed history."""
        if not self._is_tracking:
            return
        self._is_tracking = False
        self.source.stop()
        self._smoother.clear()
        self._last_fix = None
        logger.info("Location tracking stopped")

    def handle_fix(self, fix: PositionFix) -> Optional[LocationUpdate]:
        """Normalize a fix and notify listeners. Ignored while idle."""
        if not self._is_tracking:
            logger.debug("Ignoring fix received while idle")
            return None

        raw_speed = self._derive_speed(fix)
        smoothed_speed = self._smoother.add_sample(raw_speed)

        update = LocationUpdate(
            latitude=fix.latitude,
            longitude=fix.longitude,
            raw_speed=raw_speed,
            smoothed_speed=smoothed_speed,
            accuracy=fix.accuracy,
            timestamp=fix.timestamp,
        )
        self._last_fix = fix
        self._last_update = update

        for listener in list(self._listeners):
            listener(update)
        return update

    def _derive_speed(self, fix: PositionFix) -> float:
        speed = fix.speed
        if speed is None or speed != speed or speed < 0:  # missing, NaN or negative
            speed = 0.0
            if self._last_fix is not None:
                elapsed = (fix.timestamp - self._last_fix.timestamp).total_seconds()
                if elapsed > 0:
                    travelled = geodesy.distance(
                        self._last_fix.latitude, self._last_fix.longitude,
                        fix.latitude, fix.longitude,
                    )
                    speed = travelled / elapsed
        return max(speed, 0.0)
