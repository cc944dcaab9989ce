"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Callable, List

import httpx
import pytest
import pytest_asyncio

from eventsync.scrapers.base import StandardizedEvent
from eventsync.scrapers.utils.rate_queue import RateLimitConfig, RateLimitedQueue
from eventsync.scrapers.utils.robots import AccessDecision, AllowAllChecker
from eventsync.scrapers.utils.scraper_logger import ScraperLogger


# ============================================================================
# EVENTS
# ============================================================================

def future_iso(days: int = 7, hours: int = 0, minutes: int = 0) -> str:
    """ISO timestamp a fixed offset from now, at 19:00 UTC."""
    base = datetime.now(timezone.utc).replace(hour=19, minute=0, second=0, microsecond=0)
    return (base + timedelta(days=days, hours=hours, minutes=minutes)).isoformat()


@pytest.fixture
def make_event() -> Callable[..., StandardizedEvent]:
    """Build a valid StandardizedEvent, overriding any field by keyword."""

    def _make(**overrides) -> StandardizedEvent:
        fields = dict(
            external_id="allevents-0123456789abcdef",
            title="Live Music Night",
            description="An evening of live indie music with three local bands.",
            venue="Blue Frog",
            city="Mumbai",
            event_date=future_iso(),
            source_platform="allevents",
            category="concert",
            image_url="https://cdn.allevents.in/banners/live-music.jpg",
            ticket_url="https://allevents.in/mumbai/live-music-night/123",
            price="₹499",
        )
        fields.update(overrides)
        return StandardizedEvent(**fields)

    return _make


# ============================================================================
# COLLABORATORS
# ============================================================================

class DenyAllChecker:
    """Robots checker that rejects every URL and records what was asked."""

    def __init__(self):
        self.checked: List[str] = []

    async def check_access(self, url: str) -> AccessDecision:
        self.checked.append(url)
        return AccessDecision(allowed=False, reason="disallowed by robots.txt")


@pytest.fixture
def allow_all() -> AllowAllChecker:
    return AllowAllChecker()


@pytest.fixture
def deny_all() -> DenyAllChecker:
    return DenyAllChecker()


@pytest.fixture
def scraper_logger() -> ScraperLogger:
    return ScraperLogger()


@pytest_asyncio.fixture
async def fast_queue():
    """Request queue with no pacing and a single immediate retry."""
    queue = RateLimitedQueue(
        default_config=RateLimitConfig(min_delay=0, max_concurrent=5, max_retries=1, retry_delay=0)
    )
    yield queue
    await queue.aclose()


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an httpx.AsyncClient whose requests are answered by a handler."""
    clients: List[httpx.AsyncClient] = []

    def _make(handler) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    return _make


# ============================================================================
# SAMPLE PAGES
# ============================================================================

def explara_listing(count: int = 8) -> str:
    """Explara-style listing page with `count` event cards."""
    cards = []
    for i in range(1, count + 1):
        cards.append(
            f"""
            <div class="event-item">
              <a href="/e/indie-night-{i}?utm_source=home"><h3 class="event-title">Indie Night Vol {i}</h3></a>
              <img src="https://cdn.explara.com/img/{i}.jpg">
              <span class="event-date">2030-03-{i:02d} 19:00</span>
              <span class="event-location">Venue {i}</span>
              <span class="price">₹{i}99</span>
              <span class="category">Music</span>
            </div>
            """
        )
    return f"<html><body><div class='listing'>{''.join(cards)}</div></body></html>"


TOWNSCRIPT_JSON_LD = """
<html><head>
<script type="application/ld+json">
[
  {"@context": "https://schema.org", "@type": "Event", "name": "Startup Networking Evening",
   "url": "https://www.townscript.com/e/startup-networking-evening",
   "startDate": "2030-05-10T18:30:00+05:30",
   "location": {"@type": "Place", "name": "WeWork BKC",
                "address": {"streetAddress": "G Block BKC", "addressLocality": "Mumbai"}},
   "offers": {"price": "0", "priceCurrency": "INR"},
   "image": ["https://cdn.townscript.com/startup.jpg"],
   "description": "Meet founders and investors over an evening of short pitches."},
  {"@context": "https://schema.org", "@type": "MusicEvent", "name": "Sufi Night",
   "url": "https://www.townscript.com/e/sufi-night",
   "startDate": "2030-05-11T20:00:00+05:30",
   "location": {"@type": "Place", "name": "NCPA"}}
]
</script>
</head><body><p>Loading...</p></body></html>
"""


INSIDER_RENDERED = """
<html><body>
  <div class="event-card-wrapper"><a href="/event/comedy-hour"><h3 class="title">Comedy Hour</h3></a>
    <div class="date">2030-06-01 20:00</div><div class="venue">Canvas Laugh Club</div>
    <div class="price">₹599 onwards</div><div class="genre">Comedy</div></div>
  <div class="event-card-wrapper"><a href="/event/jazz-brunch"><h3 class="title">Jazz Brunch</h3></a>
    <div class="date">2030-06-02 12:00</div><div class="venue">The Piano Man</div>
    <div class="price">FREE</div></div>
  <div class="event-card-wrapper"><a href="/help"><h3 class="title">Help Centre</h3></a></div>
</body></html>
"""
