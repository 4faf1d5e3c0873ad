"""Main journey tracker: wires the engines into a single update loop."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Tuple, Union

from .alerts import Alert, AlertDispatcher, AlertManager, LoggingNotifier, Notifier
from .catalog import StationCatalog
from .config import DEFAULT_ALERT_THRESHOLD, TrackerConfig, validate_alert_threshold
from .detection import StationDetectionResult, StationDetector
from .direction import DirectionInferenceEngine, DirectionManager
from .edge_cases import EdgeCaseMonitor
from .eta import ETAEngine
from .location_tracker import LocationTracker
from .models import (
    DirectionInferenceResult,
    EdgeCaseType,
    EdgeCaseWarning,
    ETAResult,
    LocationUpdate,
    RouteDirection,
    Station,
    StationProgressionState,
)
from .position_feed import PositionSource
from .progression import StationProgressionEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JourneySnapshot:
    """Everything a display layer needs after one update or tick."""
    location: Optional[LocationUpdate] = None
    direction: Optional[RouteDirection] = None
    inference: Optional[DirectionInferenceResult] = None
    progression: StationProgressionState = field(default_factory=StationProgressionState)
    eta: ETAResult = field(default_factory=ETAResult)
    warnings: Tuple[EdgeCaseWarning, ...] = ()
    detection: Optional[StationDetectionResult] = None
    alert: Optional[Alert] = None  # fired by this update, if any
    is_tracking: bool = False


SnapshotListener = Callable[[JourneySnapshot], None]


class GpsTicker:
    """Calls a function on a fixed period from a daemon thread until stopped."""

    def __init__(self, interval: float, callback: Callable[[], None]):
        self.interval = interval
        self.callback = callback
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="gps-ticker", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.callback()
            except Exception as e:
                logger.error(f"GPS status check failed: {e}", exc_info=True)

    def stop(self) -> None:
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join()


class JourneyTracker:
    """
    Tracks one rider's journey along the route.

    Location updates and GPS ticks are serialized by a lock. Each update runs
    direction -> progression -> ETA -> edge cases -> detection -> alerts and
    publishes an immutable JourneySnapshot to listeners once the lock is
    released, so a listener may call stop_tracking() or cleanup().
    """

    def __init__(
        self,
        catalog: StationCatalog,
        source: Optional[PositionSource] = None,
        notifiers: Optional[List[Notifier]] = None,
        config: Optional[TrackerConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
        dispatcher: Optional[AlertDispatcher] = None,
    ):
        """
        Initialize the tracker.

        Args:
            catalog: Loaded station catalog.
            source: Position source. Required for start_tracking(); fixes can
                also be pushed directly with process_location_update().
            notifiers: Alert transports. Defaults to logging only.
            config: Tunable parameters.
            clock: Time source for timestamps and GPS staleness.
            dispatcher: Overrides the alert dispatcher built from notifiers.
        """
        self.catalog = catalog
        self.config = (config or TrackerConfig()).validate()
        self.clock = clock
        self._lock = threading.RLock()
        self._listeners: List[SnapshotListener] = []

        self.location_tracker = (
            LocationTracker(source, self.config.live_speed_samples) if source is not None else None
        )
        if self.location_tracker is not None:
            self.location_tracker.add_listener(self.process_location_update)

        self.direction_manager = DirectionManager(DirectionInferenceEngine(catalog))
        self.progression_engine = StationProgressionEngine(catalog, self.config, clock)
        self.eta_engine = ETAEngine(self.config.eta_speed_samples, clock)
        self.edge_monitor = EdgeCaseMonitor(clock, self.config.off_route_distance_m)
        self.detector = StationDetector(catalog, self.config.station_radius_m)
        self.alert_manager = AlertManager(
            dispatcher or AlertDispatcher(notifiers if notifiers is not None else [LoggingNotifier()]),
            self.config.alert_threshold,
            clock,
        )
        self.ticker = GpsTicker(self.config.gps_check_interval_s, self.tick)

        self._destination: Optional[Station] = None
        self._progression = StationProgressionState()
        self._snapshot = JourneySnapshot()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_tracking(self) -> bool:
        return self.location_tracker is not None and self.location_tracker.is_tracking

    def add_listener(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    def start_tracking(self) -> bool:
        """
        Start the position stream and the GPS staleness timer.

        Returns:
            False if there is no source or it is unavailable; nothing is started then.
        """
        if self.location_tracker is None:
            logger.error("Cannot start tracking without a position source")
            return False
        if self.is_tracking:
            return True

        self.ticker.start()
        if not self.location_tracker.start():
            self.ticker.stop()
            return False
        return True

    def stop_tracking(self) -> None:
        """Stop the stream and timer and discard smoothing and history buffers."""
        if self.location_tracker is not None:
            self.location_tracker.stop()
        self.ticker.stop()
        with self._lock:
            self.direction_manager.engine.clear_history()
            self.eta_engine.clear_history()
            self.edge_monitor.clear_gps_status()
        logger.info("Tracking stopped")

    def start_journey(
        self,
        destination: Union[Station, str],
        direction: Optional[RouteDirection] = None,
        alert_threshold: int = DEFAULT_ALERT_THRESHOLD,
    ) -> StationProgressionState:
        """
        Begin a fresh journey, discarding all state from the previous one.

        Args:
            destination: Destination station or its id.
            direction: Travel direction. When None the journey starts as soon
                as the direction has been inferred.
            alert_threshold: Stations remaining at which to alert, 1 to 5.

        Raises:
            ValueError: If the destination id is unknown or the threshold is out of range.
        """
        if isinstance(destination, str):
            destination = self.catalog.get_station(destination)
        validate_alert_threshold(alert_threshold)

        with self._lock:
            self.direction_manager.reset()
            self.direction_manager.selected_direction = direction
            self.eta_engine.clear_history()
            self.edge_monitor.reset()
            self.alert_manager.reset()
            self.alert_manager.set_threshold(alert_threshold)

            self._destination = destination
            self._progression = StationProgressionState()
            if direction is not None:
                self._progression = self.progression_engine.initialize_journey(direction, destination)
            else:
                logger.info(f"Journey to {destination.name} waiting for direction inference")
            progression = self._progression
            self._snapshot = snapshot = JourneySnapshot(
                direction=direction,
                progression=progression,
                is_tracking=self.is_tracking,
            )
        self._publish(snapshot)
        return progression

    def end_journey(self) -> None:
        with self._lock:
            self._destination = None
            self._progression = StationProgressionState()
            self.alert_manager.reset()
            self.direction_manager.reset()
            self.edge_monitor.reset()
            self.eta_engine.clear_history()
            self._snapshot = JourneySnapshot(is_tracking=self.is_tracking)
        logger.info("Journey ended")

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def process_location_update(self, location: LocationUpdate) -> JourneySnapshot:
        """Run one location update through every engine."""
        with self._lock:
            inference = self.direction_manager.update_with_location(location)
            direction = self.direction_manager.direction

            if self._destination is not None and not self._progression.is_active and direction is not None:
                self._progression = self.progression_engine.initialize_journey(direction, self._destination)

            if self._progression.is_active:
                self._progression = self.progression_engine.update_progression(
                    self._progression, location.latitude, location.longitude, direction
                )
            else:
                logger.debug("No active journey; progression unchanged")

            eta = self.eta_engine.calculate_eta(
                location.latitude, location.longitude, location.smoothed_speed, self._progression
            )

            self.edge_monitor.process_location_update(location)
            self.edge_monitor.check_direction(inference, direction)
            route_stations = [r.station for r in self._progression.station_records] or self.catalog.all_stations()
            self.edge_monitor.check_off_route(location.latitude, location.longitude, route_stations)

            detection = None
            if direction is not None and self._destination is not None:
                detection = self.detector.detect_station(
                    location.latitude, location.longitude, direction, self._destination
                )

            alert = None
            if self._progression.is_active:
                alert = self.alert_manager.check_and_trigger(self._progression, eta)

            self._snapshot = snapshot = JourneySnapshot(
                location=location,
                direction=direction,
                inference=inference,
                progression=self._progression,
                eta=eta,
                warnings=tuple(self.edge_monitor.active_warnings),
                detection=detection,
                alert=alert,
                is_tracking=self.is_tracking,
            )
        return self._publish(snapshot)

    def tick(self) -> JourneySnapshot:
        """Periodic GPS staleness check."""
        with self._lock:
            self.edge_monitor.check_gps_status()
            previous = self._snapshot
            self._snapshot = snapshot = JourneySnapshot(
                location=previous.location,
                direction=previous.direction,
                inference=previous.inference,
                progression=self._progression,
                eta=self.eta_engine.last_result,
                warnings=tuple(self.edge_monitor.active_warnings),
                detection=previous.detection,
                is_tracking=self.is_tracking,
            )
        return self._publish(snapshot)

    def _publish(self, snapshot: JourneySnapshot) -> JourneySnapshot:
        # Called without the lock held so listeners may stop tracking
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Snapshot listener failed: {e}", exc_info=True)
        return snapshot

    # ------------------------------------------------------------------
    # Rider controls
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> JourneySnapshot:
        return self._snapshot

    @property
    def progression(self) -> StationProgressionState:
        return self._progression

    def set_direction(self, direction: RouteDirection) -> None:
        with self._lock:
            self.direction_manager.set_direction(direction)

    def enable_auto_inference(self) -> None:
        with self._lock:
            self.direction_manager.enable_auto_inference()

    def set_alert_threshold(self, threshold: int) -> None:
        with self._lock:
            self.alert_manager.set_threshold(threshold)

    def mark_station_passed(self, station_id: str) -> StationProgressionState:
        """
        Manually correct progression.

        Raises:
            ValueError: If the station is not part of the current journey.
        """
        with self._lock:
            self._progression = self.progression_engine.mark_station_passed(self._progression, station_id)
            return self._progression

    def dismiss_warning(self, warning_type: EdgeCaseType) -> bool:
        with self._lock:
            return self.edge_monitor.dismiss_warning(warning_type)

    def cleanup(self) -> None:
        """Stop everything and release the alert worker."""
        self.stop_tracking()
        self.alert_manager.dispatcher.shutdown(wait=False)
        logger.info("Cleaned up tracker resources")
