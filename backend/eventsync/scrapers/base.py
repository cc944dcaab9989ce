"""Base scraper adapter interface and the common event schema.

All platform-specific scrapers should inherit from BaseEventAdapter (or one
of its HTML/browser flavours) and implement the abstract methods defined here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import json
import time

import structlog
from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, ConfigDict, field_validator

from eventsync.core.exceptions import PlatformUnavailableError, PolicyDisallowedError
from eventsync.scrapers.utils.normalizer import (
    build_external_id,
    canonicalize_url,
    map_category,
    parse_listing_date,
    sanitize_price,
)
from eventsync.scrapers.utils.user_agents import get_random_user_agent


class SourcePlatform(str, Enum):
    """Allow-list of sources an event may originate from."""

    ALLEVENTS = "allevents"
    EXPLARA = "explara"
    TOWNSCRIPT = "townscript"
    PAYTM_INSIDER = "paytm-insider"
    INSIDER = "insider"
    EVENTBRITE = "eventbrite"
    BOOKMYSHOW = "bookmyshow"
    ARTIST = "artist"
    COMMUNITY = "community"


KNOWN_PLATFORMS = frozenset(p.value for p in SourcePlatform)


@dataclass
class StandardizedEvent:
    """Normalized event record returned by all adapters."""

    external_id: str
    title: str
    event_date: str  # ISO-8601
    city: str
    source_platform: str
    description: str = ""
    venue: str = ""
    address: Optional[str] = None
    category: str = "event"
    genre: Optional[str] = None
    language: Optional[str] = None
    duration: Optional[str] = None
    image_url: Optional[str] = None
    ticket_url: Optional[str] = None
    price: Optional[str] = None
    raw_data: Dict[str, Any] = field(default_factory=dict)  # Debug only


@dataclass
class FetchConfig:
    """Per-call fetch parameters shared by every adapter."""

    city: str
    limit: int = 20
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.city or not self.city.strip():
            raise ValueError("city is required")
        if self.limit < 0:
            raise ValueError("limit must be non-negative")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PlatformFetchResult:
    """Terminal outcome of one adapter invocation.

    success=False is a reportable result, never a signal that an
    exception escaped the adapter.
    """

    platform: str
    success: bool
    events: List[StandardizedEvent] = field(default_factory=list)
    error: Optional[str] = None
    fetched_at: str = field(default_factory=_utc_now_iso)


class RawEventCandidate(BaseModel):
    """Untrusted listing fields scraped from one DOM element or JSON object.

    Every field is coerced to a trimmed string (or None) before any adapter
    looks at it, so a missing or oddly-typed value never crashes mapping.
    """

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    event_url: Optional[str] = None
    image_url: Optional[str] = None
    venue: Optional[str] = None
    address: Optional[str] = None
    date_text: Optional[str] = None
    price_text: Optional[str] = None
    category_text: Optional[str] = None
    description: Optional[str] = None
    source_id: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, (dict, list, tuple, set)):
            return None
        text = " ".join(str(value).split())
        return text or None

    def is_usable(self) -> bool:
        """A candidate needs at least a title and a link to become an event."""
        return bool(self.title and len(self.title) >= 3 and self.event_url)


# Parse strategy: BeautifulSoup document -> raw candidates
ParseStrategy = Callable[[BeautifulSoup], List[RawEventCandidate]]

_IMAGE_ATTRS = ("src", "data-src", "data-lazy-src", "data-original")


def select_text(element: Tag, selectors: List[str]) -> Optional[str]:
    """Text of the first non-empty match among selectors, in order."""
    for selector in selectors:
        found = element.select_one(selector)
        if found is not None:
            text = found.get_text(" ", strip=True)
            if text:
                return text
    return None


def card_candidate(
    card: Tag,
    title: List[str],
    date: List[str],
    venue: List[str],
    price: List[str],
    category: List[str] = (),
    description: List[str] = (),
) -> RawEventCandidate:
    """Build a raw candidate from one listing card using fallback selectors.

    The link is the card itself when it is an anchor, otherwise its first
    anchor. The date falls back to a datetime attribute when no text matches.
    """
    link = card if card.name == "a" else card.select_one("a[href]")
    img = card.select_one("img")

    image_url = None
    if img is not None:
        image_url = next((img.get(attr) for attr in _IMAGE_ATTRS if img.get(attr)), None)

    date_text = select_text(card, list(date))
    if not date_text:
        stamped = card.select_one("[datetime]")
        date_text = stamped.get("datetime") if stamped is not None else None

    title_text = select_text(card, list(title))
    if not title_text and link is not None:
        title_text = link.get("aria-label") or link.get("title")

    return RawEventCandidate(
        title=title_text,
        event_url=link.get("href") if link is not None else None,
        image_url=image_url,
        venue=select_text(card, list(venue)),
        date_text=date_text,
        price_text=select_text(card, list(price)),
        category_text=select_text(card, list(category)),
        description=select_text(card, list(description)),
        source_id=card.get("data-event-id") or card.get("data-id"),
    )


def json_ld_candidates(soup: BeautifulSoup) -> List[RawEventCandidate]:
    """Candidates from schema.org Event objects embedded as JSON-LD."""
    candidates = []
    for script in soup.select("script[type='application/ld+json']"):
        try:
            payload = json.loads(script.string or "")
        except ValueError:
            continue

        items = payload if isinstance(payload, list) else [payload]
        # ItemList / @graph wrappers
        expanded = []
        for item in items:
            if not isinstance(item, dict):
                continue
            if isinstance(item.get("@graph"), list):
                expanded.extend(item["@graph"])
            elif isinstance(item.get("itemListElement"), list):
                expanded.extend(e.get("item", e) for e in item["itemListElement"] if isinstance(e, dict))
            else:
                expanded.append(item)

        for item in expanded:
            if not isinstance(item, dict) or "Event" not in str(item.get("@type", "")):
                continue
            location = item.get("location") if isinstance(item.get("location"), dict) else {}
            address = location.get("address")
            if isinstance(address, dict):
                address = ", ".join(
                    str(address[k]) for k in ("streetAddress", "addressLocality") if address.get(k)
                )
            offers = item.get("offers")
            if isinstance(offers, list):
                offers = offers[0] if offers else None
            price = None
            if isinstance(offers, dict) and offers.get("price") is not None:
                price = f"{offers.get('priceCurrency', '')} {offers['price']}".strip()
            image = item.get("image")
            if isinstance(image, list):
                image = image[0] if image else None

            candidates.append(
                RawEventCandidate(
                    title=item.get("name"),
                    event_url=item.get("url"),
                    image_url=image,
                    venue=location.get("name"),
                    address=address,
                    date_text=item.get("startDate"),
                    price_text=price,
                    description=item.get("description"),
                )
            )
    return candidates


class BaseEventAdapter(ABC):
    """Abstract base class for all event source adapters.

    fetch() implements the shared contract: resolve the city slug, ask the
    robots checker, push the network call through this platform's request
    queue, parse with fallback strategies, map, and truncate. It never
    raises; every failure becomes PlatformFetchResult(success=False).
    """

    platform: str = ""  # Must be overridden in subclass (e.g., "allevents")
    platform_name: str = ""  # Display name (e.g., "Allevents")
    base_url: str = ""
    adapter_type: str = ""  # 'html' or 'browser'

    # Canonical city name (lower-case) -> source slug
    CITY_SLUGS: Dict[str, str] = {}

    def __init__(self):
        """Initialize the adapter with dependency injection points."""
        self.request_queue = None  # Injected by factory
        self.robots_checker = None  # Injected by factory
        self.scraper_logger = None  # Injected by factory
        self.logger = structlog.get_logger(adapter=self.platform)

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    async def fetch(self, config: FetchConfig) -> PlatformFetchResult:
        """Fetch events for a city. Never raises.

        Args:
            config: City, limit and optional date window

        Returns:
            PlatformFetchResult describing success or failure
        """
        started = time.monotonic()
        try:
            city_slug = self.resolve_city_slug(config.city)
            urls = self.listing_urls(city_slug, config)

            if not await self._is_allowed(urls[0]):
                raise PolicyDisallowedError(self.platform, urls[0])

            self._log("fetch_start", "success", f"Fetching events for {config.city}", {"city": config.city})

            events = await self._collect_events(urls, city_slug, config)
            if config.limit is not None:
                events = events[: config.limit]

            duration_ms = int((time.monotonic() - started) * 1000)
            self._log(
                "fetch_complete",
                "success",
                f"Fetched {len(events)} events",
                {"city": config.city, "count": len(events)},
                duration_ms,
            )
            return PlatformFetchResult(platform=self.platform, success=True, events=events)

        except PolicyDisallowedError as e:
            self._log("robots_check", "warning", e.message, {"url": e.url})
            return self._failure(e.message)

        except Exception as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            message = str(e) or e.__class__.__name__
            self._log("fetch_failed", "failure", message, {"city": config.city}, duration_ms)
            self.logger.error("platform_fetch_failed", error=message, exc_info=True)
            return self._failure(message)

    async def _collect_events(
        self, urls: List[str], city_slug: str, config: FetchConfig
    ) -> List[StandardizedEvent]:
        """Try each listing URL in order until one yields events.

        Alternate URLs disallowed by robots policy are skipped. If every
        fetch fails the last error propagates; a page that loads but
        yields nothing is not an error.
        """
        last_error: Optional[Exception] = None
        fetched_any = False

        for index, url in enumerate(urls):
            if index > 0 and not await self._is_allowed(url):
                self._log("robots_check", "warning", f"Skipping disallowed URL {url}", {"url": url})
                continue

            try:
                html = await self.request_queue.add(
                    self.platform, lambda url=url: self.fetch_listing(url, config)
                )
            except Exception as e:
                last_error = e
                self.logger.warning("listing_url_failed", url=url, error=str(e))
                continue

            fetched_any = True
            candidates = self.parse_listing(html)
            events = self._map_candidates(candidates, city_slug, url, config)
            if events:
                return events
            self._log("no_events", "warning", f"No events found at {url}", {"url": url})

        if not fetched_any and last_error is not None:
            raise last_error
        return []

    # ------------------------------------------------------------------
    # Hooks for subclasses
    # ------------------------------------------------------------------

    def resolve_city_slug(self, city: str) -> str:
        """Map a canonical city name to this source's URL slug."""
        key = city.strip().lower()
        return self.CITY_SLUGS.get(key, "-".join(key.split()))

    @abstractmethod
    def listing_urls(self, city_slug: str, config: FetchConfig) -> List[str]:
        """Listing page URLs in priority order; the first is the primary target."""
        pass

    @abstractmethod
    async def fetch_listing(self, url: str, config: FetchConfig) -> str:
        """Perform the network call for one listing page.

        Runs inside the platform's request queue; raising here counts as a
        failed attempt and is eligible for retry.
        """
        pass

    @abstractmethod
    def parse_strategies(self) -> List[ParseStrategy]:
        """Selector strategies in priority order."""
        pass

    def parse_listing(self, html: str) -> List[RawEventCandidate]:
        """Run parse strategies in order, stopping at the first with results."""
        soup = BeautifulSoup(html or "", "html.parser")
        for strategy in self.parse_strategies():
            try:
                candidates = [c for c in strategy(soup) if c.is_usable()]
            except Exception as e:
                self.logger.debug("parse_strategy_failed", strategy=strategy.__name__, error=str(e))
                continue
            if candidates:
                self.logger.info(
                    "parse_strategy_matched",
                    strategy=strategy.__name__,
                    count=len(candidates),
                )
                return candidates
        return []

    def to_event(
        self, candidate: RawEventCandidate, city_slug: str, listing_url: str
    ) -> Optional[StandardizedEvent]:
        """Map one raw candidate to a StandardizedEvent, or None to skip it."""
        event_url = self._absolute_url(candidate.event_url)
        if not event_url:
            return None

        event_date = parse_listing_date(candidate.date_text or "")
        if not event_date:
            return None

        city = self.city_display_name(city_slug)
        title = candidate.title
        category = map_category(candidate.category_text or "")
        venue = candidate.venue or f"{city} venue"

        return StandardizedEvent(
            external_id=build_external_id(self.platform, event_url, title, event_date, city),
            title=title,
            description=candidate.description or self.default_description(title, category, venue, city),
            category=category,
            genre=candidate.category_text or category,
            venue=venue,
            address=candidate.address,
            city=city,
            event_date=event_date,
            image_url=self._absolute_url(candidate.image_url, image=True),
            ticket_url=event_url,
            price=sanitize_price(candidate.price_text),
            source_platform=self.platform,
            raw_data={
                "scraped_from": listing_url,
                "city_slug": city_slug,
                "original_date_text": candidate.date_text,
                "original_price_text": candidate.price_text,
            },
        )

    def default_description(self, title: str, category: str, venue: str, city: str) -> str:
        return f"{title} - {category} event at {venue}, {city}. Book on {self.platform_name}."

    def city_display_name(self, city_slug: str) -> str:
        """Canonical display name for a slug (e.g. 'new-delhi' -> 'Delhi')."""
        for name, slug in self.CITY_SLUGS.items():
            if slug == city_slug:
                return _CITY_DISPLAY.get(name, name.title())
        return _CITY_DISPLAY.get(city_slug, city_slug.replace("-", " ").title())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _map_candidates(
        self,
        candidates: List[RawEventCandidate],
        city_slug: str,
        listing_url: str,
        config: FetchConfig,
    ) -> List[StandardizedEvent]:
        events: List[StandardizedEvent] = []
        seen_ids = set()
        for candidate in candidates:
            try:
                event = self.to_event(candidate, city_slug, listing_url)
            except Exception as e:
                self._log("process_error", "warning", f"Failed to process event: {e}")
                continue
            if event is None or event.external_id in seen_ids:
                continue
            seen_ids.add(event.external_id)
            events.append(event)
        return events

    def _absolute_url(self, url: Optional[str], image: bool = False) -> Optional[str]:
        if not url:
            return None
        if url.startswith("//"):
            url = f"https:{url}"
        elif url.startswith("/"):
            url = f"{self.base_url}{url}"
        elif not url.startswith(("http://", "https://")):
            return None
        return url if image else canonicalize_url(url)

    async def _is_allowed(self, url: str) -> bool:
        if self.robots_checker is None:
            return True
        access = await self.robots_checker.check_access(url)
        if not access.allowed and self.scraper_logger is not None:
            self.scraper_logger.robots_violation(self.platform, url)
        return access.allowed

    def _failure(self, message: str) -> PlatformFetchResult:
        return PlatformFetchResult(platform=self.platform, success=False, events=[], error=message)

    def _log(
        self,
        stage: str,
        status: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        if self.scraper_logger is not None:
            self.scraper_logger.log(self.platform, stage, status, message, context, duration_ms)


class BaseHTMLAdapter(BaseEventAdapter):
    """Base class for adapters that read static HTML over httpx."""

    adapter_type = "html"

    def __init__(self):
        """Initialize HTML adapter."""
        super().__init__()
        self.http_client = None  # httpx.AsyncClient injected

    async def fetch_listing(self, url: str, config: FetchConfig) -> str:
        if self.http_client is None:
            raise PlatformUnavailableError(self.platform, "HTTP client not configured")

        self.logger.info("scraping_url", url=url)
        response = await self.http_client.get(url, headers=self.request_headers())
        if response.status_code == 429 and self.scraper_logger is not None:
            self.scraper_logger.rate_limit_hit(self.platform, f"429 from {url}")
        if response.status_code >= 400:
            raise PlatformUnavailableError(self.platform, f"HTTP {response.status_code} for {url}")
        return response.text

    def request_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": get_random_user_agent(),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-IN,en;q=0.9",
        }


class BaseBrowserAdapter(BaseEventAdapter):
    """Base class for JavaScript-rendered sources scraped with Playwright.

    The browser is owned by a BrowserPool injected by the factory; adapters
    only open and close pages.
    """

    adapter_type = "browser"

    # Any of these means the listing has rendered
    WAIT_SELECTOR: str = "a[href]"

    def __init__(self):
        """Initialize browser adapter."""
        super().__init__()
        self.browser_pool = None  # Injected
        self.page_timeout: float = 15.0
        self.selector_timeout: float = 15.0

    async def fetch_listing(self, url: str, config: FetchConfig) -> str:
        """Navigate and return the rendered HTML.

        A page-load or selector timeout raises PlatformUnavailableError so
        the queue counts it as a failed attempt.
        """
        if self.browser_pool is None:
            raise PlatformUnavailableError(self.platform, "browser pool not configured")

        page = await self.browser_pool.new_page(self.platform)
        try:
            self.logger.info("scraping_url", url=url)
            try:
                await page.goto(url, wait_until="domcontentloaded", timeout=self.page_timeout * 1000)
                await page.wait_for_selector(self.WAIT_SELECTOR, timeout=self.selector_timeout * 1000)
            except Exception as e:
                self._log("selector_timeout", "warning", "Event cards not found within timeout", {"url": url})
                raise PlatformUnavailableError(self.platform, f"page not ready: {e}") from e
            return await page.content()
        finally:
            try:
                await page.close()
            except Exception as e:
                self.logger.debug("page_close_failed", error=str(e))


_CITY_DISPLAY = {
    "mumbai": "Mumbai",
    "delhi": "Delhi",
    "new delhi": "Delhi",
    "new-delhi": "Delhi",
    "ncr": "Delhi",
    "bengaluru": "Bengaluru",
    "bangalore": "Bengaluru",
    "hyderabad": "Hyderabad",
    "pune": "Pune",
    "chennai": "Chennai",
    "kolkata": "Kolkata",
    "goa": "Goa",
    "ahmedabad": "Ahmedabad",
    "jaipur": "Jaipur",
    "chandigarh": "Chandigarh",
    "kochi": "Kochi",
}
