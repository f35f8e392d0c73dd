"""Tests for StationCatalog, TravelTimeTable and the commute plans."""

import io
import unittest

import feed_builders  # noqa: F401  puts src on sys.path

from commutex.commutes import afternoon_commute, morning_commute
from commutex.config import SUBWAY_FEEDS
from commutex.exceptions import StationNotFoundError
from commutex.models import Direction
from commutex.stations import StationCatalog
from commutex.travel_times import FALLBACK_TRAVEL_MINUTES, TravelTimeTable


class TestStationCatalog(unittest.TestCase):
    """Test station name resolution and stop ID lookups."""

    def setUp(self):
        self.catalog = StationCatalog()

    def test_stop_id_for_line(self):
        self.assertEqual(self.catalog.stop_id_for("Carroll St", "F"), "F21")
        self.assertEqual(self.catalog.stop_id_for("23 St-8 Av", "C"), "A30")
        self.assertEqual(self.catalog.stop_id_for("23 St", "f"), "D18")

    def test_jay_st_uses_one_id_for_f_a_and_c(self):
        jay_f = self.catalog.stop_id_for("Jay St-MetroTech", "F")
        self.assertEqual(jay_f, self.catalog.stop_id_for("Jay St-MetroTech", "C"))
        self.assertEqual(jay_f, self.catalog.stop_id_for("Jay St-MetroTech", "A"))

    def test_synonyms_resolve(self):
        self.assertEqual(self.catalog.resolve("23rd St-8th Ave"), "23 St-8 Av")
        self.assertEqual(self.catalog.resolve("jay st"), "Jay St-MetroTech")
        self.assertEqual(self.catalog.stop_id_for("14th St-8th Ave", "A"), "A31")

    def test_unknown_station(self):
        with self.assertRaises(StationNotFoundError):
            self.catalog.stop_id_for("Atlantis", "F")
        self.assertIsNone(self.catalog.find_stop_id("Atlantis", "F"))

    def test_line_not_at_station(self):
        with self.assertRaises(StationNotFoundError):
            self.catalog.stop_id_for("23 St-8 Av", "F")

    def test_reverse_lookup_accepts_directional_ids(self):
        self.assertEqual(self.catalog.stations_for_stop("F21N"), ["Carroll St"])
        self.assertEqual(self.catalog.stations_for_stop("A41"), ["Jay St-MetroTech"])
        self.assertEqual(self.catalog.stations_for_stop("Z99"), [])

    def test_stop_ids_for_stations_skips_unknown(self):
        stop_ids = self.catalog.stop_ids_for_stations(["Carroll St", "Jay St", "Nowhere"])
        self.assertEqual(stop_ids, {"F21", "A41", "R29"})

    def test_lines_at(self):
        self.assertEqual(self.catalog.lines_at("14 St-8 Av"), ["A", "C", "E", "L"])

    def test_from_csv(self):
        csv_data = io.StringIO(
            "station,line,stop_id\n"
            "Carroll St,F,F21\n"
            "Carroll St,G,F21\n"
            "Jay St-MetroTech,F,A41\n"
            ",F,X00\n"
        )
        catalog = StationCatalog.from_csv(csv_data, synonyms={"Jay St": "Jay St-MetroTech"})

        self.assertEqual(len(catalog), 2)
        self.assertEqual(catalog.stop_id_for("Jay St", "F"), "A41")
        self.assertIn("carroll st", catalog)


class TestTravelTimeTable(unittest.TestCase):
    """Test segment travel time lookups."""

    def test_known_segments(self):
        table = TravelTimeTable()
        self.assertEqual(table.minutes_for("F", "Carroll St", "Jay St-MetroTech"), 7)
        self.assertEqual(table.minutes_for("C", "Jay St-MetroTech", "23 St-8 Av"), 11)
        self.assertTrue(table.is_known("F", "Carroll St", "23 St"))

    def test_fallback(self):
        table = TravelTimeTable()
        self.assertEqual(table.minutes_for("G", "Carroll St", "Bergen St"), FALLBACK_TRAVEL_MINUTES)
        self.assertFalse(table.is_known("G", "Carroll St", "Bergen St"))

    def test_custom_table(self):
        table = TravelTimeTable({("F", "A", "B"): 4}, fallback_minutes=3)
        self.assertEqual(table.minutes_for("f", "A", "B"), 4)
        self.assertEqual(table.minutes_for("F", "B", "A"), 3)

    def test_from_csv(self):
        csv_data = io.StringIO("line,from_station,to_station,minutes\nF,Carroll St,Bergen St,2\n")
        table = TravelTimeTable.from_csv(csv_data)
        self.assertEqual(table.minutes_for("F", "Carroll St", "Bergen St"), 2)


class TestCommutePlans(unittest.TestCase):
    """Test that the fixed commutes resolve through the catalog."""

    def setUp(self):
        self.catalog = StationCatalog()

    def test_morning_commute(self):
        plan = morning_commute(self.catalog)

        self.assertEqual(plan.direction, Direction.NORTHBOUND)
        direct = plan.direct.segments[0]
        self.assertEqual(direct.directional_stop_id, "F21N")
        self.assertEqual(direct.to_stop_id, "D18")
        self.assertEqual(direct.feed_url, SUBWAY_FEEDS["bdfm"])

        self.assertEqual(plan.transfer.lines, ("F", "C"))
        transfer = plan.transfer.transfer_points[0]
        self.assertEqual(transfer.station, "Jay St-MetroTech")
        self.assertEqual(transfer.transfer_minutes, 0)
        self.assertEqual(plan.transfer.segments[1].feed_url, SUBWAY_FEEDS["ace"])

        self.assertEqual(plan.double_transfer.lines, ("F", "A", "C"))
        self.assertEqual(len(plan.double_transfer.transfer_points), 2)
        self.assertEqual(plan.double_transfer.last_station, "23 St-8 Av")

    def test_afternoon_commute_reverses_morning(self):
        plan = afternoon_commute(self.catalog)

        self.assertEqual(plan.direction, Direction.SOUTHBOUND)
        self.assertEqual(plan.direct.segments[0].directional_stop_id, "D18S")
        self.assertEqual(plan.transfer.lines, ("C", "F"))
        self.assertEqual(plan.double_transfer.lines, ("C", "A", "F"))
        self.assertEqual(plan.double_transfer.first_station, "23 St-8 Av")
        self.assertEqual(plan.double_transfer.last_station, "Carroll St")


if __name__ == "__main__":
    unittest.main()
