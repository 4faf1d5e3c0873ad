"""Tests for StationDetector."""

import unittest

from route_fixtures import LNG, STATION_LATS, make_catalog, meters_north

from stoptrack.catalog import StationCatalog
from stoptrack.detection import StationDetector, StationProximity, StationWithDistance
from stoptrack.models import RouteDirection

S1, S2, S3, S4, S5 = STATION_LATS
NORTH = RouteDirection.NORTHBOUND
SOUTH = RouteDirection.SOUTHBOUND


class TestStationDetector(unittest.TestCase):
    """Test at-station and segment classification."""

    def setUp(self):
        self.catalog = make_catalog()
        self.detector = StationDetector(self.catalog)

    def station(self, station_id):
        return self.catalog.get_station(station_id)

    def test_at_station(self):
        """Test a fix inside the radius reports the station and its neighbours."""
        result = self.detector.detect_station(meters_north(S2, 30), LNG, NORTH, self.station("S4"))
        self.assertTrue(result.is_at_station)
        self.assertEqual(result.current_station.id, "S2")
        self.assertEqual(result.previous_station.id, "S1")
        self.assertEqual(result.next_station.id, "S3")
        self.assertEqual(result.stations_to_destination, 2)
        self.assertAlmostEqual(result.distance_to_current, 30, delta=0.5)
        self.assertFalse(result.has_reached_destination)

    def test_reached_destination(self):
        """Test being at the destination itself."""
        result = self.detector.detect_station(S4, LNG, NORTH, self.station("S4"))
        self.assertTrue(result.has_reached_destination)
        self.assertEqual(result.stations_to_destination, 0)

    def test_at_terminal_has_no_next(self):
        """Test the last station in order has no next station."""
        result = self.detector.detect_station(S5, LNG, NORTH, self.station("S5"))
        self.assertIsNone(result.next_station)
        self.assertIsNone(result.distance_to_next)

    def test_between_stations_northbound(self):
        """Test a fix between S2 and S3 heading north."""
        result = self.detector.detect_station(meters_north(S2, 400), LNG, NORTH, self.station("S4"))
        self.assertEqual(result.proximity, StationProximity.BETWEEN_STATIONS)
        self.assertEqual(result.previous_station.id, "S2")
        self.assertEqual(result.next_station.id, "S3")
        self.assertEqual(result.stations_to_destination, 2)
        self.assertIsNone(result.current_station)

    def test_between_stations_southbound(self):
        """Test neighbour roles swap with direction."""
        result = self.detector.detect_station(meters_north(S2, 400), LNG, SOUTH, self.station("S1"))
        self.assertEqual(result.previous_station.id, "S3")
        self.assertEqual(result.next_station.id, "S2")
        self.assertEqual(result.stations_to_destination, 2)

    def test_after_route(self):
        """Test running past the last station."""
        result = self.detector.detect_station(meters_north(S5, 400), LNG, NORTH, self.station("S5"))
        self.assertEqual(result.proximity, StationProximity.AFTER_ROUTE)

    def test_before_first_station_reads_between(self):
        """Test a fix short of the first station is still between stations."""
        result = self.detector.detect_station(meters_north(S1, -400), LNG, NORTH, self.station("S5"))
        self.assertEqual(result.proximity, StationProximity.BETWEEN_STATIONS)
        self.assertEqual(result.next_station.id, "S2")

    def test_empty_catalog(self):
        """Test no stations means unknown."""
        detector = StationDetector(StationCatalog())
        result = detector.detect_station(S1, LNG, NORTH, self.station("S1"))
        self.assertEqual(result.proximity, StationProximity.UNKNOWN)

    def test_stations_with_distances(self):
        """Test every station is listed in direction order with its distance."""
        listed = self.detector.stations_with_distances(S1, LNG, SOUTH)
        self.assertEqual([item.station.id for item in listed], ["S5", "S4", "S3", "S2", "S1"])
        self.assertEqual(listed[-1].distance, 0.0)

    def test_formatted_distance(self):
        """Test compact distance labels."""
        station = self.station("S1")
        self.assertEqual(StationWithDistance(station, 850).formatted_distance, "850m")
        self.assertEqual(StationWithDistance(station, 1234).formatted_distance, "1.2km")


if __name__ == "__main__":
    unittest.main()
