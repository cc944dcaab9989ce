"""Tests for the event source adapters (no live network)."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from conftest import INSIDER_RENDERED, TOWNSCRIPT_JSON_LD, explara_listing
from eventsync.core.exceptions import POLICY_DISALLOWED_MESSAGE
from eventsync.scrapers.adapters import (
    AlleventsAdapter,
    ExplaraAdapter,
    PaytmInsiderAdapter,
    TownscriptAdapter,
)
from eventsync.scrapers.base import FetchConfig, RawEventCandidate
from eventsync.services.deduplicator import are_events_duplicate, deduplicate


def wire(adapter, queue, robots, scraper_logger, client=None):
    adapter.request_queue = queue
    adapter.robots_checker = robots
    adapter.scraper_logger = scraper_logger
    if client is not None:
        adapter.http_client = client
    return adapter


class TestRawEventCandidate:
    """Untrusted field coercion."""

    def test_collapses_whitespace_and_drops_containers(self):
        candidate = RawEventCandidate(
            title="  Indie \n Night  ", event_url=["/e/1"], venue={"name": "x"}, price_text=499
        )
        assert candidate.title == "Indie Night"
        assert candidate.event_url is None
        assert candidate.venue is None
        assert candidate.price_text == "499"

    def test_usable_requires_title_and_link(self):
        assert RawEventCandidate(title="Gig", event_url="/e/1").is_usable()
        assert not RawEventCandidate(title="Go", event_url="/e/1").is_usable()
        assert not RawEventCandidate(title="Gig night").is_usable()


class TestExplaraAdapter:
    """Static HTML adapter behaviour shared by every httpx-based source."""

    async def test_limit_truncates_parsed_events(self, fast_queue, allow_all, scraper_logger, mock_client):
        client = mock_client(lambda request: httpx.Response(200, text=explara_listing(8)))
        adapter = wire(ExplaraAdapter(), fast_queue, allow_all, scraper_logger, client)

        result = await adapter.fetch(FetchConfig(city="Mumbai", limit=5))

        assert result.success is True
        assert result.platform == "explara"
        assert len(result.events) == 5

    async def test_maps_fields_to_standard_schema(self, fast_queue, allow_all, scraper_logger, mock_client):
        client = mock_client(lambda request: httpx.Response(200, text=explara_listing(1)))
        adapter = wire(ExplaraAdapter(), fast_queue, allow_all, scraper_logger, client)

        result = await adapter.fetch(FetchConfig(city="Mumbai", limit=10))
        event = result.events[0]

        assert event.title == "Indie Night Vol 1"
        assert event.city == "Mumbai"
        assert event.venue == "Venue 1"
        assert event.category == "concert"
        assert event.price == "₹199"
        assert event.event_date == "2030-03-01T13:30:00+00:00"
        assert event.ticket_url == "https://www.explara.com/e/indie-night-1"
        assert event.image_url == "https://cdn.explara.com/img/1.jpg"
        assert event.source_platform == "explara"
        assert event.external_id.startswith("explara-")

    async def test_external_ids_stable_across_runs(self, fast_queue, allow_all, scraper_logger, mock_client):
        client = mock_client(lambda request: httpx.Response(200, text=explara_listing(3)))
        adapter = wire(ExplaraAdapter(), fast_queue, allow_all, scraper_logger, client)
        config = FetchConfig(city="Mumbai", limit=10)

        first = await adapter.fetch(config)
        second = await adapter.fetch(config)

        assert [e.external_id for e in first.events] == [e.external_id for e in second.events]
        assert len({e.external_id for e in first.events}) == 3

    async def test_robots_denial_makes_no_request(self, fast_queue, deny_all, scraper_logger, mock_client):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text=explara_listing(2))

        adapter = wire(ExplaraAdapter(), fast_queue, deny_all, scraper_logger, mock_client(handler))
        result = await adapter.fetch(FetchConfig(city="Mumbai"))

        assert result.success is False
        assert result.error == POLICY_DISALLOWED_MESSAGE
        assert result.events == []
        assert requests == []
        assert scraper_logger.get_metrics("explara").robots_violations == 1
        assert scraper_logger.get_recent_logs("explara")[-1].stage == "robots_check"

    async def test_falls_back_to_next_url(self, fast_queue, allow_all, scraper_logger, mock_client):
        def handler(request):
            if request.url.path == "/events/mumbai":
                return httpx.Response(404)
            return httpx.Response(200, text=explara_listing(2))

        adapter = wire(ExplaraAdapter(), fast_queue, allow_all, scraper_logger, mock_client(handler))
        result = await adapter.fetch(FetchConfig(city="Mumbai"))

        assert result.success is True
        assert len(result.events) == 2

    async def test_every_url_failing_is_a_failed_result(self, fast_queue, allow_all, scraper_logger, mock_client):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(503)

        adapter = wire(ExplaraAdapter(), fast_queue, allow_all, scraper_logger, mock_client(handler))
        result = await adapter.fetch(FetchConfig(city="Mumbai"))

        assert result.success is False
        assert "503" in result.error
        # 3 listing URLs x (1 attempt + 1 retry)
        assert len(calls) == 6
        assert scraper_logger.get_metrics("explara").failure_count == 1

    async def test_page_without_events_is_empty_success(self, fast_queue, allow_all, scraper_logger, mock_client):
        client = mock_client(lambda request: httpx.Response(200, text="<html><body>No events</body></html>"))
        adapter = wire(ExplaraAdapter(), fast_queue, allow_all, scraper_logger, client)

        result = await adapter.fetch(FetchConfig(city="Pune"))

        assert result.success is True
        assert result.events == []

    async def test_unparseable_elements_are_skipped(self, fast_queue, allow_all, scraper_logger, mock_client):
        html = explara_listing(2).replace("2030-03-02 19:00", "Date to be confirmed")
        client = mock_client(lambda request: httpx.Response(200, text=html))
        adapter = wire(ExplaraAdapter(), fast_queue, allow_all, scraper_logger, client)

        result = await adapter.fetch(FetchConfig(city="Mumbai"))

        assert [e.title for e in result.events] == ["Indie Night Vol 1"]

    async def test_link_strategy_when_cards_missing(self, fast_queue, allow_all, scraper_logger, mock_client):
        html = """
        <html><body><ul>
          <li><a href="/e/pottery-workshop">Pottery Workshop</a><span class="date">2030-04-01 11:00</span></li>
        </ul></body></html>
        """
        client = mock_client(lambda request: httpx.Response(200, text=html))
        adapter = wire(ExplaraAdapter(), fast_queue, allow_all, scraper_logger, client)

        result = await adapter.fetch(FetchConfig(city="Pune"))

        assert len(result.events) == 1
        assert result.events[0].title == "Pottery Workshop"
        assert result.events[0].venue == "Pune venue"
        assert result.events[0].price == "Check website"

    async def test_placeholder_price_is_normalized(self, fast_queue, allow_all, scraper_logger, mock_client):
        html = explara_listing(1).replace("₹199", "TBD")
        client = mock_client(lambda request: httpx.Response(200, text=html))
        adapter = wire(ExplaraAdapter(), fast_queue, allow_all, scraper_logger, client)

        result = await adapter.fetch(FetchConfig(city="Mumbai", limit=5))
        event = result.events[0]

        assert event.price == "Check website"
        assert event.raw_data["original_price_text"] == "TBD"

    async def test_free_price_is_normalized(self, fast_queue, allow_all, scraper_logger, mock_client):
        html = explara_listing(1).replace("₹199", "₹0")
        client = mock_client(lambda request: httpx.Response(200, text=html))
        adapter = wire(ExplaraAdapter(), fast_queue, allow_all, scraper_logger, client)

        result = await adapter.fetch(FetchConfig(city="Mumbai"))

        assert result.events[0].price == "Free"

    async def test_city_slug_resolution(self):
        adapter = ExplaraAdapter()
        assert adapter.resolve_city_slug("Bengaluru") == "bangalore"
        assert adapter.resolve_city_slug("Navi Mumbai") == "navi-mumbai"


class TestTownscriptAdapter:

    async def test_reads_json_ld(self, fast_queue, allow_all, scraper_logger, mock_client):
        client = mock_client(lambda request: httpx.Response(200, text=TOWNSCRIPT_JSON_LD))
        adapter = wire(TownscriptAdapter(), fast_queue, allow_all, scraper_logger, client)

        result = await adapter.fetch(FetchConfig(city="Mumbai"))

        assert result.success is True
        titles = [e.title for e in result.events]
        assert titles == ["Startup Networking Evening", "Sufi Night"]
        networking = result.events[0]
        assert networking.venue == "WeWork BKC"
        assert networking.address == "G Block BKC, Mumbai"
        assert networking.event_date == "2030-05-10T13:00:00+00:00"
        assert networking.price == "INR 0"
        assert networking.image_url == "https://cdn.townscript.com/startup.jpg"


class TestAlleventsAdapter:

    async def test_uses_api_when_key_configured(self, fast_queue, allow_all, scraper_logger, mock_client):
        payload = {
            "data": [
                {
                    "event_id": "9001",
                    "eventname": "Sunburn Arena",
                    "event_url": "https://allevents.in/mumbai/sunburn-arena/9001",
                    "start_time": 1900000000,
                    "location": "NSCI Dome",
                    "banner_url": "https://cdn.allevents.in/sunburn.jpg",
                    "tickets": {"min_ticket_price": 1500, "ticket_currency": "INR"},
                    "categories": ["Music"],
                }
            ]
        }
        seen = []

        def handler(request):
            seen.append((request.method, request.url.host))
            assert request.headers["Ocp-Apim-Subscription-Key"] == "secret"
            assert json.loads(request.content)["city"] == "mumbai"
            return httpx.Response(200, json=payload)

        adapter = wire(AlleventsAdapter(api_key="secret"), fast_queue, allow_all, scraper_logger, mock_client(handler))
        result = await adapter.fetch(FetchConfig(city="Mumbai"))

        assert seen == [("POST", "api.allevents.in")]
        assert len(result.events) == 1
        event = result.events[0]
        assert event.title == "Sunburn Arena"
        assert event.price == "INR 1500"
        assert event.category == "concert"
        assert event.venue == "NSCI Dome"

    async def test_falls_back_to_html_on_api_error(self, fast_queue, allow_all, scraper_logger, mock_client):
        html = """
        <html><body><ul>
          <li class="event-card" data-link="https://allevents.in/mumbai/food-walk/77">
            <div class="title"><h3>Bandra Food Walk</h3></div>
            <div class="date">2030-02-02 09:00</div>
            <div class="subtitle">Bandstand</div>
          </li>
        </ul></body></html>
        """

        def handler(request):
            if request.url.host == "api.allevents.in":
                return httpx.Response(500)
            return httpx.Response(200, text=html)

        adapter = wire(AlleventsAdapter(api_key="secret"), fast_queue, allow_all, scraper_logger, mock_client(handler))
        result = await adapter.fetch(FetchConfig(city="Mumbai"))

        assert result.success is True
        assert [e.title for e in result.events] == ["Bandra Food Walk"]
        assert result.events[0].ticket_url == "https://allevents.in/mumbai/food-walk/77"
        assert any(e.stage == "api_failed" for e in scraper_logger.get_recent_logs("allevents"))

    async def test_html_only_without_key(self, fast_queue, allow_all, scraper_logger, mock_client):
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            return httpx.Response(200, text="<html></html>")

        adapter = wire(AlleventsAdapter(api_key=""), fast_queue, allow_all, scraper_logger, mock_client(handler))
        await adapter.fetch(FetchConfig(city="Mumbai"))

        assert "api.allevents.in" not in hosts


class TestPaytmInsiderAdapter:
    """Browser-backed adapter with a mocked pool."""

    def _pool(self, page):
        pool = MagicMock()
        pool.new_page = AsyncMock(return_value=page)
        return pool

    async def test_parses_rendered_page(self, fast_queue, allow_all, scraper_logger):
        page = AsyncMock()
        page.content.return_value = INSIDER_RENDERED
        adapter = wire(PaytmInsiderAdapter(), fast_queue, allow_all, scraper_logger)
        adapter.browser_pool = self._pool(page)

        result = await adapter.fetch(FetchConfig(city="Delhi"))

        assert result.success is True
        assert [e.title for e in result.events] == ["Comedy Hour", "Jazz Brunch"]
        assert result.events[0].ticket_url == "https://insider.in/event/comedy-hour"
        assert result.events[0].category == "comedy"
        assert result.events[1].price == "Free"
        assert result.events[0].city == "Delhi"
        page.goto.assert_awaited_with(
            "https://insider.in/new-delhi/events", wait_until="domcontentloaded", timeout=15000.0
        )
        page.close.assert_awaited()

    async def test_selector_timeout_is_retried_then_reported(self, fast_queue, allow_all, scraper_logger):
        page = AsyncMock()
        page.wait_for_selector.side_effect = TimeoutError("Timeout 15000ms exceeded")
        adapter = wire(PaytmInsiderAdapter(), fast_queue, allow_all, scraper_logger)
        adapter.browser_pool = self._pool(page)

        result = await adapter.fetch(FetchConfig(city="Mumbai"))

        assert result.success is False
        assert "page not ready" in result.error
        assert page.goto.await_count == 2
        assert page.close.await_count == 2
        stages = [e.stage for e in scraper_logger.get_recent_logs("paytm-insider")]
        assert "selector_timeout" in stages


class TestCrossSourceDates:
    """Naive listing times are read in the source timezone."""

    async def test_same_event_from_two_sources_is_a_duplicate(
        self, fast_queue, allow_all, scraper_logger, mock_client
    ):
        explara_html = """
        <html><body><div class="event-item">
          <a href="/e/startup-networking-evening"><h3 class="event-title">Startup Networking Evening</h3></a>
          <span class="event-date">2030-05-10 18:30</span>
          <span class="event-location">WeWork BKC</span>
        </div></body></html>
        """
        explara = wire(
            ExplaraAdapter(), fast_queue, allow_all, scraper_logger,
            mock_client(lambda request: httpx.Response(200, text=explara_html)),
        )
        townscript = wire(
            TownscriptAdapter(), fast_queue, allow_all, scraper_logger,
            mock_client(lambda request: httpx.Response(200, text=TOWNSCRIPT_JSON_LD)),
        )

        from_explara = (await explara.fetch(FetchConfig(city="Mumbai"))).events[0]
        from_townscript = (await townscript.fetch(FetchConfig(city="Mumbai"))).events[0]

        assert from_explara.event_date == from_townscript.event_date == "2030-05-10T13:00:00+00:00"
        assert are_events_duplicate(from_explara, from_townscript) is True
        assert len(deduplicate([from_explara, from_townscript]).removed) == 1
