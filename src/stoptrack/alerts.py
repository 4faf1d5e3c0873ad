"""Decides when to notify the rider, and hands notifications off for delivery."""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Callable, List, Optional, Union

from .config import DEFAULT_ALERT_THRESHOLD, validate_alert_threshold
from .eta import format_eta
from .models import AlertState, ArrivalAlert, ETAResult, ProximityAlert, StationProgressionState

logger = logging.getLogger(__name__)

Alert = Union[ProximityAlert, ArrivalAlert]


class Notifier:
    """Delivery transport for alerts (push, local notification, log line...)."""

    def notify(self, alert: Alert) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Writes alerts to the log. Useful as a default and in scripts."""

    def notify(self, alert: Alert) -> None:
        logger.info(f"[ALERT] {alert.title} {alert.body}")


class AlertDispatcher:
    """
    Delivers alerts to notifiers without blocking the caller.

    Delivery runs on a single worker thread; a failing notifier is logged and
    does not affect the others. Pass synchronous=True to deliver inline.
    """

    def __init__(self, notifiers: Optional[List[Notifier]] = None, synchronous: bool = False):
        self.notifiers: List[Notifier] = list(notifiers) if notifiers else []
        self._executor = None if synchronous else ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="alert-delivery"
        )

    def add_notifier(self, notifier: Notifier) -> None:
        self.notifiers.append(notifier)

    def dispatch(self, alert: Alert) -> Optional[Future]:
        if self._executor is None:
            self._deliver(alert)
            return None
        return self._executor.submit(self._deliver, alert)

    def _deliver(self, alert: Alert) -> None:
        for notifier in list(self.notifiers):
            try:
                notifier.notify(alert)
            except Exception as e:
                logger.error(f"Notifier {type(notifier).__name__} failed for {alert}: {e}", exc_info=True)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


class AlertManager:
    """
    Fires the arrival alert once, and each remaining-station count within the
    threshold at most once per journey.
    """

    def __init__(
        self,
        dispatcher: Optional[AlertDispatcher] = None,
        threshold: int = DEFAULT_ALERT_THRESHOLD,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.dispatcher = dispatcher or AlertDispatcher([LoggingNotifier()])
        self.threshold = validate_alert_threshold(threshold)
        self.clock = clock
        self.state = AlertState()

    def set_threshold(self, threshold: int) -> None:
        self.threshold = validate_alert_threshold(threshold)

    def check_and_trigger(
        self,
        progression: StationProgressionState,
        eta: Optional[ETAResult] = None,
    ) -> Optional[Alert]:
        """
        Fire at most one alert for this progression update.

        Returns:
            The alert that fired, or None.
        """
        destination = progression.destination
        if destination is None or self.state.arrival_notified:
            return None

        if progression.has_arrived:
            alert = ArrivalAlert(station_name=destination.name)
            self.state.arrival_notified = True
            self.state.last_alert_time = self.clock()
            logger.info(f"Arrival alert for {destination.name}")
            self.dispatcher.dispatch(alert)
            return alert

        remaining = progression.remaining_count
        if 0 < remaining <= self.threshold and not self.state.has_triggered(remaining):
            eta_text = None
            if eta is not None and eta.eta_to_destination is not None:
                eta_text = format_eta(eta.eta_to_destination)

            alert = ProximityAlert(station_name=destination.name, stations_away=remaining, eta=eta_text)
            self.state.triggered_thresholds.add(remaining)
            self.state.last_alert_time = self.clock()
            logger.info(f"Proximity alert: {destination.name} is {remaining} station(s) away")
            self.dispatcher.dispatch(alert)
            return alert

        return None

    def trigger_test_alert(self, station_name: str = "Test Station", stations_away: int = 2) -> ProximityAlert:
        """Send an alert outside the journey bookkeeping."""
        alert = ProximityAlert(station_name=station_name, stations_away=stations_away if stations_away > 0 else 2)
        self.dispatcher.dispatch(alert)
        return alert

    def reset(self) -> None:
        logger.debug("Resetting alert state")
        self.state = AlertState()
