"""Tests for alert decoding and the AlertCorrelator."""

import unittest
from unittest.mock import MagicMock

from google.transit import gtfs_realtime_pb2

from feed_builders import NOW, FakeClock, FeedServer, alert_feed, stop_time_updates

from commutex.alerts import (
    AlertCorrelator,
    classify_severity,
    entity_direction_id,
    escalated_severity,
    is_station_skipping,
    parse_alerts,
)
from commutex.builder import RouteBuilder
from commutex.cache import CacheManager
from commutex.commutes import morning_commute
from commutex.config import ALERT_FEEDS, Settings
from commutex.feed_client import FeedClient
from commutex.models import ActivePeriod, Direction, InformedEntity, ServiceAlert, Severity
from commutex.planner import SegmentPlanner
from commutex.stations import StationCatalog
from commutex.travel_times import TravelTimeTable

PRIMARY, FALLBACK = ALERT_FEEDS
HOUR = 3600


def make_alert(header, routes=("F",), description="", severity=None, **kwargs):
    return ServiceAlert(
        id=kwargs.pop("id", header),
        header_text=header,
        description_text=description,
        affected_routes=list(routes),
        severity=severity or classify_severity(f"{header} {description}"),
        **kwargs,
    )


class TestSeverity(unittest.TestCase):
    """Test text classification and station-skipping escalation."""

    def test_classify_severity(self):
        self.assertEqual(classify_severity("F train service is suspended between Jay St and Church Av"), Severity.SEVERE)
        self.assertEqual(classify_severity("No service on the C line"), Severity.SEVERE)
        self.assertEqual(classify_severity("F trains are running with delays"), Severity.WARNING)
        self.assertEqual(classify_severity("F trains are running slower than normal"), Severity.WARNING)
        self.assertEqual(classify_severity("Weekend service changes"), Severity.INFO)

    def test_station_skipping(self):
        skipping = make_alert("Northbound F trains skip Bergen St", severity=Severity.INFO)
        not_stopping = make_alert("C trains", description="Trains are NOT STOPPING at 23 St", severity=Severity.INFO)
        regular = make_alert("F trains are delayed")

        self.assertTrue(is_station_skipping(skipping))
        self.assertTrue(is_station_skipping(not_stopping))
        self.assertFalse(is_station_skipping(regular))
        self.assertEqual(escalated_severity(skipping), Severity.SEVERE)
        self.assertEqual(escalated_severity(regular), Severity.WARNING)

    def test_entity_direction(self):
        self.assertEqual(entity_direction_id(InformedEntity(stop_id="F21S")), 0)
        self.assertEqual(entity_direction_id(InformedEntity(stop_id="F21N")), 1)
        self.assertIsNone(entity_direction_id(InformedEntity(stop_id="F21")))
        self.assertEqual(entity_direction_id(InformedEntity(stop_id="F21N", direction_id=0)), 0)
        self.assertIsNone(entity_direction_id(InformedEntity(route_id="F")))


class TestParseAlerts(unittest.TestCase):
    """Test decoding of alert entities."""

    def _feed(self, payload):
        feed = gtfs_realtime_pb2.FeedMessage()
        feed.ParseFromString(payload)
        return feed

    def test_decodes_fields(self):
        payload = alert_feed(
            [
                {
                    "id": "lmm:1",
                    "header": "Northbound F trains skip Bergen St",
                    "description": "Planned work",
                    "routes": ["F", "G"],
                    "stop_ids": ["F20N"],
                    "start": NOW - HOUR,
                    "end": NOW + HOUR,
                }
            ]
        )

        alerts = parse_alerts(self._feed(payload), NOW)

        self.assertEqual(len(alerts), 1)
        alert = alerts[0]
        self.assertEqual(alert.id, "lmm:1")
        self.assertEqual(alert.affected_routes, ["F", "G"])
        self.assertEqual(alert.severity, Severity.SEVERE)
        self.assertEqual(alert.active_period.start, NOW - HOUR)
        self.assertEqual(alert.active_period.end, NOW + HOUR)
        self.assertEqual([e.stop_id for e in alert.informed_entities if e.stop_id], ["F20N"])

    def test_prefers_english_translation(self):
        feed = gtfs_realtime_pb2.FeedMessage()
        feed.header.gtfs_realtime_version = "2.0"
        entity = feed.entity.add(id="1")
        entity.alert.header_text.translation.add(text="Retrasos en el F", language="es")
        entity.alert.header_text.translation.add(text="Delays on the F", language="en")
        entity.alert.informed_entity.add(route_id="F")

        alert = parse_alerts(feed, NOW)[0]

        self.assertEqual(alert.header_text, "Delays on the F")
        self.assertEqual(alert.description_text, "")
        self.assertEqual(alert.severity, Severity.WARNING)
        self.assertIsNone(alert.active_period)

    def test_route_from_trip_descriptor(self):
        payload = alert_feed([{"header": "C trains delayed", "routes": ["C"], "direction_id": 1}])

        alert = parse_alerts(self._feed(payload), NOW)[0]

        self.assertEqual(alert.affected_routes, ["C"])
        self.assertEqual(alert.informed_entities[0].direction_id, 1)

    def test_selects_upcoming_period_over_past(self):
        feed = gtfs_realtime_pb2.FeedMessage()
        feed.header.gtfs_realtime_version = "2.0"
        entity = feed.entity.add(id="1")
        entity.alert.header_text.translation.add(text="Weekend work", language="en")
        entity.alert.active_period.add(start=NOW - 2 * HOUR, end=NOW - HOUR)
        entity.alert.active_period.add(start=NOW + 3 * HOUR, end=NOW + 4 * HOUR)
        entity.alert.active_period.add(start=NOW + HOUR, end=NOW + 2 * HOUR)

        alert = parse_alerts(feed, NOW)[0]

        self.assertEqual(alert.active_period.start, NOW + HOUR)

    def test_zero_bound_is_open_ended(self):
        payload = alert_feed([{"header": "Work", "start": 0, "end": NOW + HOUR}])

        alert = parse_alerts(self._feed(payload), NOW)[0]

        self.assertIsNone(alert.active_period.start)
        self.assertTrue(alert.active_period.covers(NOW))

    def test_ignores_trip_updates(self):
        feed = gtfs_realtime_pb2.FeedMessage()
        feed.header.gtfs_realtime_version = "2.0"
        feed.entity.add(id="trip").trip_update.trip.trip_id = "x"

        self.assertEqual(parse_alerts(feed, NOW), [])


class AlertTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.clock = FakeClock()
        self.server = FeedServer()
        self.http = self.server.client()
        self.cache = CacheManager(clock=self.clock)
        self.settings = Settings()
        self.feed_client = FeedClient(self.cache, settings=self.settings, http_client=self.http, clock=self.clock)
        self.catalog = StationCatalog()
        self.correlator = AlertCorrelator(self.feed_client, self.cache, self.catalog, self.settings, clock=self.clock)

    async def asyncTearDown(self):
        await self.http.aclose()


class TestFetchAlerts(AlertTestCase):
    """Test primary/fallback fetching and caching."""

    async def test_primary_feed(self):
        self.server.set(PRIMARY, alert_feed([{"header": "F trains delayed"}]))

        alerts = await self.correlator.fetch_alerts()

        self.assertEqual(len(alerts), 1)
        self.assertEqual(self.server.count(FALLBACK), 0)

    async def test_falls_back_when_primary_fails(self):
        self.server.set(PRIMARY, (503, b"", "text/plain"))
        self.server.set(FALLBACK, alert_feed([{"header": "C trains delayed", "routes": ["C"]}]))

        alerts = await self.correlator.fetch_alerts()

        self.assertEqual([a.affected_routes for a in alerts], [["C"]])

    async def test_falls_back_on_html_error_page(self):
        self.server.set(PRIMARY, (200, b"<html>Maintenance</html>", "text/html"))
        self.server.set(FALLBACK, alert_feed([{"header": "F trains delayed"}]))

        alerts = await self.correlator.fetch_alerts()

        self.assertEqual(len(alerts), 1)

    async def test_total_failure_returns_empty(self):
        with self.assertLogs("commutex.alerts", level="WARNING") as logs:
            alerts = await self.correlator.fetch_alerts()

        self.assertEqual(alerts, [])
        self.assertTrue(any("Service alerts unavailable" in line for line in logs.output))

    async def test_failure_is_retried_on_next_call(self):
        await self.correlator.fetch_alerts()
        self.server.set(PRIMARY, alert_feed([{"header": "F trains delayed"}]))

        alerts = await self.correlator.fetch_alerts()

        self.assertEqual(len(alerts), 1)

    async def test_alerts_are_cached(self):
        self.server.set(PRIMARY, alert_feed([{"header": "F trains delayed"}]))

        await self.correlator.fetch_alerts()
        self.clock.advance(100)
        await self.correlator.fetch_alerts()

        self.assertEqual(self.server.count(PRIMARY), 1)


class TestAlertFiltering(AlertTestCase):
    """Test time, line and direction filtering."""

    async def test_active_alerts(self):
        alerts = [
            make_alert("current delays", id="current", active_period=_period(NOW - HOUR, NOW + HOUR)),
            make_alert("soon delays", id="soon", active_period=_period(NOW + 20 * 60, NOW + HOUR)),
            make_alert("later delays", id="later", active_period=_period(NOW + 45 * 60, NOW + HOUR)),
            make_alert("expired delays", id="expired", active_period=_period(NOW - 2 * HOUR, NOW - HOUR)),
            make_alert("F trains skip Bergen St", id="skip", active_period=_period(NOW - 2 * HOUR, NOW - HOUR)),
            make_alert("always", id="always"),
        ]

        active = await self.correlator.get_active_alerts(alerts, now=NOW)

        self.assertEqual([a.id for a in active], ["current", "soon", "skip", "always"])

    async def test_relevance_window(self):
        alerts = [
            make_alert("in window", id="in", active_period=_period(NOW + HOUR, NOW + 2 * HOUR)),
            make_alert("too late", id="late", active_period=_period(NOW + 3 * HOUR, NOW + 4 * HOUR)),
            make_alert("recent", id="recent", active_period=_period(NOW - 3 * HOUR, NOW - 90 * 60)),
        ]

        relevant = await self.correlator.get_relevant_alerts_for_time_window(alerts=alerts, now=NOW)
        narrow = await self.correlator.get_relevant_alerts_for_time_window(HOUR, alerts=alerts, now=NOW)

        self.assertEqual([a.id for a in relevant], ["in", "recent"])
        self.assertEqual(narrow, [])

    async def test_prioritized_for_commute(self):
        """Station-skipping alerts come first and ignore direction and time."""
        self.server.set(
            PRIMARY,
            alert_feed(
                [
                    {"id": "info", "header": "F trains run on a modified schedule"},
                    {"id": "warning", "header": "F trains are running with delays"},
                    {"id": "severe", "header": "F train service is suspended"},
                    {
                        "id": "skip",
                        "header": "Southbound F trains skip Bergen St",
                        "direction_id": 0,
                        "start": NOW + 3 * 24 * HOUR,
                    },
                    {"id": "south", "header": "Southbound F trains delayed", "direction_id": 0},
                    {"id": "other-line", "header": "G trains suspended", "routes": ["G"]},
                    {"id": "far", "header": "F delays next week", "start": NOW + 5 * 24 * HOUR},
                ]
            ),
        )

        alerts = await self.correlator.get_prioritized_alerts_for_commute(["F", "C"], Direction.NORTHBOUND)

        self.assertEqual([a.id for a in alerts], ["skip", "severe", "warning", "info"])

    async def test_prioritized_accepts_direction_id(self):
        self.server.set(PRIMARY, alert_feed([{"id": "south", "header": "F trains delayed", "direction_id": 0}]))

        southbound = await self.correlator.get_prioritized_alerts_for_commute(["F"], 0)
        northbound = await self.correlator.get_prioritized_alerts_for_commute(["F"], 1)

        self.assertEqual([a.id for a in southbound], ["south"])
        self.assertEqual(northbound, [])

    async def test_upcoming_and_recent_station_skipping(self):
        self.server.set(
            PRIMARY,
            alert_feed(
                [
                    {"id": "upcoming", "header": "F trains skip Bergen St", "start": NOW + 24 * HOUR},
                    {"id": "recent", "header": "F trains skip Smith-9 Sts", "start": NOW - 3 * 24 * HOUR,
                     "end": NOW - 2 * 24 * HOUR},
                    {"id": "old", "header": "F trains skip Carroll St", "start": NOW - 20 * 24 * HOUR,
                     "end": NOW - 10 * 24 * HOUR},
                    {"id": "delay", "header": "F delays", "start": NOW + 24 * HOUR},
                ]
            ),
        )

        upcoming = await self.correlator.get_upcoming_station_skipping_alerts()
        recent = await self.correlator.get_recent_station_skipping_alerts()

        self.assertEqual([a.id for a in upcoming], ["upcoming"])
        self.assertEqual([a.id for a in recent], ["recent"])


class TestRouteCorrelation(AlertTestCase):
    """Test matching alerts to built routes."""

    def _direct_route(self):
        plan = morning_commute(self.catalog)
        planner = SegmentPlanner(MagicMock(), TravelTimeTable())
        chain = planner.connect(plan.direct.segments, (), [stop_time_updates("F21N", [16])], 12, 8, NOW)[0]
        return RouteBuilder().build(chain, route_id=1)

    async def test_alert_at_rider_stop_is_severe_and_first(self):
        self.server.set(
            PRIMARY,
            alert_feed(
                [
                    {"id": "elsewhere", "header": "F trains delayed", "stop_ids": ["F27N"]},
                    {"id": "carroll", "header": "F trains running slow", "stop_ids": ["F21N"]},
                    {"id": "c-line", "header": "C trains suspended", "routes": ["C"]},
                ]
            ),
        )

        check = await self.correlator.check_route_for_alerts(self._direct_route(), Direction.NORTHBOUND)

        self.assertTrue(check.has_alerts)
        self.assertEqual(check.severity, Severity.SEVERE)
        self.assertEqual([a.id for a in check.alerts], ["carroll", "elsewhere"])

    async def test_home_station_counts_as_rider_stop(self):
        # Bergen St is not on this route but is one of the rider's home stations
        self.server.set(PRIMARY, alert_feed([{"id": "bergen", "header": "F trains delayed", "stop_ids": ["F20N"]}]))

        check = await self.correlator.check_route_for_alerts(self._direct_route(), Direction.NORTHBOUND)

        self.assertEqual(check.severity, Severity.SEVERE)

    async def test_highest_severity_without_rider_stops(self):
        self.server.set(
            PRIMARY,
            alert_feed(
                [
                    {"id": "info", "header": "F trains run on a modified schedule"},
                    {"id": "warning", "header": "F trains delayed"},
                ]
            ),
        )

        check = await self.correlator.check_route_for_alerts(self._direct_route(), Direction.NORTHBOUND)

        self.assertEqual(check.severity, Severity.WARNING)
        self.assertEqual([a.id for a in check.alerts], ["warning", "info"])

    async def test_no_alerts(self):
        self.server.set(PRIMARY, alert_feed([{"header": "G trains delayed", "routes": ["G"]}]))

        check = await self.correlator.check_route_for_alerts(self._direct_route(), Direction.NORTHBOUND)

        self.assertFalse(check.has_alerts)
        self.assertIsNone(check.severity)
        self.assertEqual(check.alerts, [])

    async def test_enrich_routes(self):
        self.server.set(PRIMARY, alert_feed([{"id": "skip", "header": "F trains skip 23 St"}]))
        route = self._direct_route()

        (enriched,) = await self.correlator.enrich_routes([route], Direction.NORTHBOUND)

        self.assertTrue(enriched.has_alerts)
        self.assertEqual(enriched.alert_severity, Severity.SEVERE)
        self.assertEqual([a.id for a in enriched.alerts], ["skip"])
        self.assertIsNot(enriched, route)
        self.assertFalse(route.has_alerts)
        self.assertEqual(route.alerts, [])


def _period(start, end):
    return ActivePeriod(start=start, end=end)


if __name__ == "__main__":
    unittest.main()
