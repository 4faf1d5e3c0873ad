"""Tests for JourneyTracker orchestration."""

import unittest

from route_fixtures import (
    STATION_LATS,
    FakeClock,
    make_catalog,
    make_fix,
    make_update,
    meters_north,
)

from stoptrack.alerts import AlertDispatcher, Notifier
from stoptrack.config import TrackerConfig
from stoptrack.journey import GpsTicker, JourneyTracker
from stoptrack.models import (
    ArrivalAlert,
    EdgeCaseType,
    ProximityAlert,
    RouteDirection,
    StationStatus,
)
from stoptrack.position_feed import ReplayPositionSource

S1, S2, S3, S4, S5 = STATION_LATS

RIDE_TO_S3 = [
    S1,
    meters_north(S1, 200),
    meters_north(S2, -250),
    S2,
    meters_north(S2, 200),
    meters_north(S3, -200),
    S3,
]


class RecordingNotifier(Notifier):
    def __init__(self):
        self.alerts = []

    def notify(self, alert):
        self.alerts.append(alert)


class FailingNotifier(Notifier):
    def notify(self, alert):
        raise RuntimeError("notification channel closed")


class TestJourneyTracker(unittest.TestCase):
    """Test the full update pipeline."""

    def setUp(self):
        self.clock = FakeClock()
        self.recorder = RecordingNotifier()
        self.tracker = self._tracker([self.recorder])
        self.snapshots = []
        self.tracker.add_listener(self.snapshots.append)

    def _tracker(self, notifiers, source=None, config=None):
        tracker = JourneyTracker(
            make_catalog(),
            source=source,
            config=config,
            clock=self.clock,
            dispatcher=AlertDispatcher(notifiers, synchronous=True),
        )
        self.addCleanup(tracker.cleanup)
        return tracker

    def _ride(self, lats, tracker=None):
        tracker = tracker or self.tracker
        snapshot = None
        for i, lat in enumerate(lats):
            self.clock.advance(10)
            snapshot = tracker.process_location_update(make_update(lat, seconds=(i + 1) * 10))
        return snapshot

    def test_update_without_journey(self):
        """Test updates are harmless before a journey starts."""
        snapshot = self._ride([S1, meters_north(S1, 200)])
        self.assertFalse(snapshot.progression.is_active)
        self.assertIsNone(snapshot.alert)
        self.assertEqual(snapshot.eta.status, "No destination set")
        self.assertEqual(len(self.snapshots), 2)

    def test_full_ride_alerts_in_order(self):
        """Test proximity alerts at two and one stations, then arrival."""
        self.tracker.start_journey("S3", RouteDirection.NORTHBOUND, alert_threshold=2)
        snapshot = self._ride(RIDE_TO_S3)

        self.assertTrue(snapshot.progression.has_arrived)
        self.assertIsInstance(snapshot.alert, ArrivalAlert)
        self.assertEqual(
            [alert.title for alert in self.recorder.alerts],
            ["Almost There!", "PREPARE TO ALIGHT!", "You have arrived!"],
        )
        self.assertTrue(snapshot.detection.has_reached_destination)
        self.assertEqual(snapshot.direction, RouteDirection.NORTHBOUND)

    def test_fan_out_snapshot_contents(self):
        """Test a snapshot carries every engine's output."""
        self.tracker.start_journey("S3", RouteDirection.NORTHBOUND)
        snapshot = self._ride([meters_north(S1, -500)])

        self.assertEqual(snapshot.location.latitude, meters_north(S1, -500))
        self.assertEqual(snapshot.progression.next_station.id, "S1")
        self.assertEqual(snapshot.eta.next_station.id, "S1")
        self.assertIsNotNone(snapshot.eta.eta_to_destination)
        self.assertIsNotNone(snapshot.inference)
        self.assertIsNotNone(snapshot.detection)
        self.assertIs(self.tracker.snapshot, snapshot)

    def test_direction_inferred_before_journey_starts(self):
        """Test a journey without a direction begins once one is inferred."""
        self.tracker.start_journey("S4")
        snapshot = self._ride([meters_north(S1, -600), meters_north(S1, -400)])
        self.assertFalse(snapshot.progression.is_active)
        self.assertIsNone(snapshot.direction)

        snapshot = self._ride([meters_north(S1, -200)])
        self.assertEqual(snapshot.direction, RouteDirection.NORTHBOUND)
        self.assertTrue(snapshot.progression.is_active)
        self.assertEqual(
            [r.station.id for r in snapshot.progression.station_records], ["S1", "S2", "S3", "S4"]
        )
        self.assertEqual(snapshot.progression.station_records[0].status, StationStatus.APPROACHING)

    def test_manual_direction_wins(self):
        """Test a rider's direction choice survives contrary movement."""
        self.tracker.start_journey("S1", RouteDirection.SOUTHBOUND)
        self.tracker.set_direction(RouteDirection.SOUTHBOUND)
        snapshot = self._ride([S2, meters_north(S2, 200), meters_north(S2, 400)])
        self.assertEqual(snapshot.direction, RouteDirection.SOUTHBOUND)
        self.assertIn(EdgeCaseType.WRONG_DIRECTION, [w.type for w in snapshot.warnings])

    def test_failing_notifier_does_not_stall(self):
        """Test processing continues when alert delivery raises."""
        tracker = self._tracker([FailingNotifier()])
        tracker.start_journey("S2", RouteDirection.NORTHBOUND, alert_threshold=2)
        with self.assertLogs("stoptrack.alerts", level="ERROR"):
            snapshot = self._ride([S1, S2], tracker)
        self.assertTrue(snapshot.progression.has_arrived)
        self.assertIsInstance(snapshot.alert, ArrivalAlert)

    def test_failing_listener_does_not_stall(self):
        """Test a raising listener is logged and others still receive snapshots."""
        def broken(snapshot):
            raise RuntimeError("display gone")

        tracker = self._tracker([self.recorder])
        seen = []
        tracker.add_listener(broken)
        tracker.add_listener(seen.append)
        with self.assertLogs("stoptrack.journey", level="ERROR"):
            self._ride([S1], tracker)
        self.assertEqual(len(seen), 1)

    def test_tick_reports_gps_loss(self):
        """Test the periodic check surfaces GPS loss without a new fix."""
        self.tracker.start_journey("S3", RouteDirection.NORTHBOUND)
        self._ride([S1])
        self.clock.advance(31)
        snapshot = self.tracker.tick()
        self.assertEqual([w.type for w in snapshot.warnings], [EdgeCaseType.GPS_LOST])
        self.assertFalse(self.tracker.dismiss_warning(EdgeCaseType.GPS_LOST))

        snapshot = self._ride([meters_north(S1, 50)])
        self.assertNotIn(EdgeCaseType.GPS_LOST, [w.type for w in snapshot.warnings])

    def test_stop_tracking_forgets_gps_silence(self):
        """Test a paused stream is not reported lost when tracking resumes."""
        tracker = self._tracker(
            [self.recorder],
            source=ReplayPositionSource([make_fix(S1)]),
            config=TrackerConfig(gps_check_interval_s=60),
        )
        tracker.start_journey("S3", RouteDirection.NORTHBOUND)
        self.assertTrue(tracker.start_tracking())
        self.clock.advance(31)
        self.assertEqual([w.type for w in tracker.tick().warnings], [EdgeCaseType.GPS_LOST])

        tracker.stop_tracking()
        self.assertIsNone(tracker.edge_monitor.last_gps_update)
        self.clock.advance(600)
        self.assertEqual(tracker.tick().warnings, ())

    def test_mark_station_passed(self):
        """Test manual correction through the tracker."""
        self.tracker.start_journey("S4", RouteDirection.NORTHBOUND)
        state = self.tracker.mark_station_passed("S2")
        self.assertEqual(state.passed_count, 2)
        self.assertIs(self.tracker.progression, state)
        with self.assertRaises(ValueError):
            self.tracker.mark_station_passed("S5")

    def test_start_journey_validation(self):
        """Test unknown destinations and thresholds are rejected."""
        with self.assertRaises(ValueError):
            self.tracker.start_journey("NOPE", RouteDirection.NORTHBOUND)
        with self.assertRaises(ValueError):
            self.tracker.start_journey("S3", RouteDirection.NORTHBOUND, alert_threshold=9)
        with self.assertRaises(ValueError):
            self.tracker.set_alert_threshold(0)

    def test_new_journey_resets_alerts(self):
        """Test alerts fire again on the next journey."""
        self.tracker.start_journey("S2", RouteDirection.NORTHBOUND)
        self._ride([S1, S2])
        self.tracker.start_journey("S2", RouteDirection.NORTHBOUND)
        self.assertFalse(self.tracker.progression.has_arrived)
        self._ride([S1])
        self.assertIsInstance(self.recorder.alerts[-1], ProximityAlert)

    def test_end_journey(self):
        """Test ending clears progression."""
        self.tracker.start_journey("S3", RouteDirection.NORTHBOUND)
        self.tracker.end_journey()
        self.assertFalse(self.tracker.progression.is_active)
        self.assertFalse(self.tracker.snapshot.progression.is_active)


class TestJourneyTrackingLifecycle(unittest.TestCase):
    """Test source and timer start/stop."""

    def _tracker(self, source):
        tracker = JourneyTracker(
            make_catalog(),
            source=source,
            config=TrackerConfig(gps_check_interval_s=0.01),
            dispatcher=AlertDispatcher([RecordingNotifier()], synchronous=True),
        )
        self.addCleanup(tracker.cleanup)
        return tracker

    def test_no_source(self):
        """Test tracking cannot start without a source."""
        tracker = JourneyTracker(make_catalog(), dispatcher=AlertDispatcher([], synchronous=True))
        self.addCleanup(tracker.cleanup)
        self.assertFalse(tracker.start_tracking())

    def test_unavailable_source_starts_nothing(self):
        """Test the timer is not left running when the source is unavailable."""
        tracker = self._tracker(ReplayPositionSource([], available=False))
        self.assertFalse(tracker.start_tracking())
        self.assertFalse(tracker.ticker.is_running)
        self.assertFalse(tracker.is_tracking)

    def test_replay_drives_journey(self):
        """Test recorded fixes flow through the location tracker to arrival."""
        fixes = [make_fix(lat, seconds=i * 30) for i, lat in enumerate(RIDE_TO_S3)]
        tracker = self._tracker(ReplayPositionSource(fixes))
        tracker.start_journey("S3", RouteDirection.NORTHBOUND)

        self.assertTrue(tracker.start_tracking())
        self.assertTrue(tracker.ticker.is_running)
        self.assertTrue(tracker.progression.has_arrived)
        self.assertGreater(tracker.snapshot.location.raw_speed, 0)

        tracker.stop_tracking()
        self.assertFalse(tracker.ticker.is_running)
        self.assertFalse(tracker.is_tracking)

    def test_listener_can_stop_tracking_on_arrival(self):
        """Test stop_tracking from a snapshot listener returns while ticks are running."""
        import threading

        fixes = [make_fix(lat, seconds=i * 30) for i, lat in enumerate(RIDE_TO_S3)]
        source = ReplayPositionSource(fixes)
        tracker = JourneyTracker(
            make_catalog(),
            source=source,
            config=TrackerConfig(gps_check_interval_s=0.001),
            dispatcher=AlertDispatcher([RecordingNotifier()], synchronous=True),
        )
        self.addCleanup(tracker.cleanup)

        def stop_on_arrival(snapshot):
            if snapshot.progression.has_arrived:
                tracker.stop_tracking()

        tracker.add_listener(stop_on_arrival)
        tracker.start_journey("S3", RouteDirection.NORTHBOUND)

        worker = threading.Thread(target=tracker.start_tracking, daemon=True)
        worker.start()
        worker.join(timeout=5)

        self.assertFalse(worker.is_alive())
        self.assertTrue(tracker.progression.has_arrived)
        self.assertFalse(tracker.ticker.is_running)
        self.assertFalse(tracker.is_tracking)


class TestGpsTicker(unittest.TestCase):
    """Test the periodic timer thread."""

    def test_ticks_until_stopped(self):
        """Test the callback runs repeatedly and stop() joins the thread."""
        import threading

        ticked = threading.Event()
        ticker = GpsTicker(0.01, ticked.set)
        ticker.start()
        self.assertTrue(ticked.wait(2))
        ticker.stop()
        self.assertFalse(ticker.is_running)

    def test_callback_errors_are_logged(self):
        """Test a raising callback keeps the timer alive."""
        import threading

        calls = []
        done = threading.Event()

        def flaky():
            calls.append(1)
            if len(calls) >= 2:
                done.set()
            raise RuntimeError("boom")

        ticker = GpsTicker(0.01, flaky)
        with self.assertLogs("stoptrack.journey", level="ERROR"):
            ticker.start()
            self.assertTrue(done.wait(2))
            ticker.stop()


if __name__ == "__main__":
    unittest.main()
