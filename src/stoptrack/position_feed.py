"""Position sources: GTFS-Realtime vehicle positions and recorded replays."""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import requests

from .models import PositionFix

logger = logging.getLogger(__name__)

FixCallback = Callable[[PositionFix], None]


class PositionSource:
    """
    Interface to the platform's position provider.

    Implementations push PositionFix objects into the callback given to
    start() until stop() is called.
    """

    def is_available(self) -> bool:
        """Whether permission is granted and the service is enabled."""
        return True

    def start(self, callback: FixCallback) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError


class ReplayPositionSource(PositionSource):
    """Replays recorded fixes synchronously, in order, when started."""

    def __init__(self, fixes: Iterable[PositionFix], available: bool = True):
        self.fixes: List[PositionFix] = list(fixes)
        self.available = available
        self._running = False

    def is_available(self) -> bool:
        return self.available

    def start(self, callback: FixCallback) -> None:
        self._running = True
        for fix in self.fixes:
            if not self._running:
                break
            callback(fix)

    def stop(self) -> None:
        self._running = False


class GtfsRealtimePositionSource(PositionSource):
    """
    Polls a GTFS-Realtime VehiclePositions feed for a single vehicle.

    The feed has no accuracy field, so fixes carry `default_accuracy`.
    Fixes whose timestamp has not advanced are dropped.
    """

    def __init__(
        self,
        feed_url: str,
        vehicle_id: str,
        poll_interval: float = 3.0,
        default_accuracy: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.feed_url = feed_url
        self.vehicle_id = vehicle_id
        self.poll_interval = poll_interval
        self.default_accuracy = default_accuracy
        self._session = session or requests.Session()
        if headers:
            self._session.headers.update(headers)
        self._cache: Optional[Tuple[bytes, float]] = None  # (data, fetched_at)
        self._cache_ttl = min(poll_interval, 30.0)
        self._last_timestamp: Optional[datetime] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def is_available(self) -> bool:
        """Probe the feed once; unreachable feeds make tracking fail to start."""
        try:
            self._fetch_feed()
            return True
        except requests.RequestException as e:
            logger.warning(f"Position feed {self.feed_url} unavailable: {e}")
            return False

    def start(self, callback: FixCallback) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop, args=(callback,), name="gtfs-rt-poller", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.poll_interval + 1)
        self._thread = None
        self._last_timestamp = None
        self.clear_cache()

    def _poll_loop(self, callback: FixCallback) -> None:
        while not self._stop_event.is_set():
            fix = self.poll_once()
            if fix is not None:
                callback(fix)
            self._stop_event.wait(self.poll_interval)

    def poll_once(self) -> Optional[PositionFix]:
        """Fetch the feed and return a new fix for the vehicle, if any."""
        try:
            feed_data = self._fetch_feed()
        except requests.RequestException as e:
            logger.warning(f"Failed to fetch feed {self.feed_url}: {e}")
            return None

        fix = self._parse_vehicle_position(feed_data)
        if fix is None:
            return None
        if self._last_timestamp is not None and fix.timestamp <= self._last_timestamp:
            logger.debug(f"Vehicle {self.vehicle_id} position unchanged since {self._last_timestamp}")
            return None
        self._last_timestamp = fix.timestamp
        return fix

    def _fetch_feed(self) -> bytes:
        """
        Fetch and cache the raw feed.

        Returns:
            Raw protobuf bytes.
        """
        now = time.time()
        if self._cache is not None:
            data, fetched_at = self._cache
            if now - fetched_at < self._cache_ttl:
                logger.debug(f"Using cached data for {self.feed_url}")
                return data

        logger.debug(f"Fetching {self.feed_url}")
        response = self._session.get(self.feed_url, timeout=10)
        response.raise_for_status()
        data = response.content
        self._cache = (data, now)
        return data

    def clear_cache(self) -> None:
        self._cache = None

    def _parse_vehicle_position(self, feed_data: bytes) -> Optional[PositionFix]:
        """
        Extract this vehicle's position from a GTFS-Realtime feed.

        Args:
            feed_data: Raw protobuf bytes.

        Returns:
            PositionFix, or None if the vehicle is absent or the feed is malformed.
        """
        from google.protobuf.message import DecodeError
        from google.transit import gtfs_realtime_pb2

        feed = gtfs_realtime_pb2.FeedMessage()
        try:
            feed.ParseFromString(feed_data)
        except DecodeError as e:
            logger.error(f"Failed to parse vehicle positions: {e}")
            return None

        for entity in feed.entity:
            if not entity.HasField("vehicle"):
                continue

            vehicle = entity.vehicle
            if vehicle.vehicle.id != self.vehicle_id or not vehicle.HasField("position"):
                continue

            position = vehicle.position
            speed = position.speed if position.HasField("speed") else None
            if vehicle.timestamp:
                timestamp = datetime.fromtimestamp(vehicle.timestamp)
            elif feed.header.timestamp:
                timestamp = datetime.fromtimestamp(feed.header.timestamp)
            else:
                timestamp = datetime.now()

            return PositionFix(
                latitude=position.latitude,
                longitude=position.longitude,
                accuracy=self.default_accuracy,
                timestamp=timestamp,
                speed=speed,
            )

        logger.debug(f"Vehicle {self.vehicle_id} not present in feed")
        return None
