"""Tests for ETA estimation and display formatting."""

import unittest
from datetime import timedelta

from route_fixtures import LNG, STATION_LATS, FakeClock, make_catalog, meters_north

from stoptrack.eta import ETAEngine, format_distance, format_eta
from stoptrack.models import RouteDirection, StationProgressionState
from stoptrack.progression import StationProgressionEngine

S1, S2, S3 = STATION_LATS[:3]


class TestFormatting(unittest.TestCase):
    """Test human-readable distance and duration strings."""

    def test_format_distance(self):
        """Test meters below 1 km, kilometers above."""
        self.assertEqual(format_distance(850), "850 m")
        self.assertEqual(format_distance(1234), "1.2 km")

    def test_format_eta(self):
        """Test each duration bucket."""
        self.assertEqual(format_eta(None), "--")
        self.assertEqual(format_eta(timedelta(seconds=30)), "< 1 min")
        self.assertEqual(format_eta(timedelta(minutes=5, seconds=40)), "5 min")
        self.assertEqual(format_eta(timedelta(hours=2)), "2 hr")
        self.assertEqual(format_eta(timedelta(minutes=75)), "1 hr 15 min")


class TestETAEngine(unittest.TestCase):
    """Test speed blending and arrival projections."""

    def setUp(self):
        self.clock = FakeClock()
        self.catalog = make_catalog()
        self.engine = ETAEngine(clock=self.clock)
        progression = StationProgressionEngine(self.catalog, clock=self.clock)
        self.journey = progression.initialize_journey(
            RouteDirection.NORTHBOUND, self.catalog.get_station("S3")
        )
        self.start = meters_north(S1, -1000)

    def test_no_destination(self):
        """Test an inactive journey reports no destination."""
        result = self.engine.calculate_eta(S1, LNG, 10.0, StationProgressionState())
        self.assertEqual(result.status, "No destination set")
        self.assertIsNone(result.eta_to_destination)

    def test_arrived(self):
        """Test arrival short-circuits to zero distance."""
        arrived = StationProgressionState(destination=self.catalog.get_station("S3"), has_arrived=True)
        result = self.engine.calculate_eta(S3, LNG, 0.0, arrived)
        self.assertEqual(result.status, "Arrived!")
        self.assertEqual(result.distance_to_destination, 0.0)
        self.assertTrue(result.is_stationary)

    def test_moving_estimate(self):
        """Test distance over speed, with the route slowdown for the destination."""
        result = self.engine.calculate_eta(self.start, LNG, 10.0, self.journey)

        self.assertEqual(result.next_station.id, "S1")
        self.assertAlmostEqual(result.distance_to_next_station, 1000, delta=1)
        self.assertAlmostEqual(result.eta_to_next_station.total_seconds(), 100, delta=1)

        route = 1000 + 2 * 1112
        self.assertAlmostEqual(result.distance_to_destination, route, delta=5)
        self.assertAlmostEqual(result.eta_to_destination.total_seconds(), route / (10 / 1.2), delta=2)

        self.assertFalse(result.is_stationary)
        self.assertEqual(result.status, "Normal traffic")
        self.assertEqual(result.arrival_time_to_next, self.clock.now + result.eta_to_next_station)
        self.assertIs(self.engine.last_result, result)

    def test_stationary_has_no_eta(self):
        """Test a stopped vehicle gets None, not zero."""
        result = self.engine.calculate_eta(self.start, LNG, 0.0, self.journey)
        self.assertTrue(result.is_stationary)
        self.assertIsNone(result.eta_to_next_station)
        self.assertIsNone(result.eta_to_destination)
        self.assertEqual(result.status, "Gathering speed data...")

        self.engine.calculate_eta(self.start, LNG, 0.0, self.journey)
        result = self.engine.calculate_eta(self.start, LNG, 0.0, self.journey)
        self.assertEqual(result.status, "Vehicle stopped")

    def test_traffic_labels(self):
        """Test slow and fast labels."""
        self.assertEqual(self.engine.calculate_eta(self.start, LNG, 1.0, self.journey).status, "Slow traffic")
        fast = ETAEngine(clock=self.clock)
        self.assertEqual(fast.calculate_eta(self.start, LNG, 20.0, self.journey).status, "Good traffic flow")

    def test_effective_speed_blends_after_three_samples(self):
        """Test 30% current plus 70% average once enough history exists."""
        self.assertEqual(self.engine.effective_speed(20.0), 20.0)
        for _ in range(3):
            self.engine.add_speed_sample(10.0)
        self.assertAlmostEqual(self.engine.effective_speed(20.0), 0.3 * 20 + 0.7 * 10)

    def test_negative_speed_ignored(self):
        """Test invalid samples do not enter the average."""
        self.engine.add_speed_sample(-1.0)
        self.assertEqual(self.engine.sample_count, 0)

    def test_clear_history(self):
        """Test clearing drops samples and the last result."""
        self.engine.calculate_eta(self.start, LNG, 10.0, self.journey)
        self.engine.clear_history()
        self.assertEqual(self.engine.sample_count, 0)
        self.assertEqual(self.engine.last_result.status, "Calculating...")

    def test_route_distance_to_destination_when_nothing_ahead(self):
        """Test the straight-line fallback when every station is behind."""
        state = StationProgressionState(destination=self.catalog.get_station("S3"))
        distance = ETAEngine.route_distance(S2, LNG, state)
        self.assertAlmostEqual(distance, 1112, delta=2)


if __name__ == "__main__":
    unittest.main()
