"""Allevents.in adapter.

Uses the Allevents JSON API when an API key is configured and falls back to
scraping the public city listing on any API failure. The listing pages carry
JSON-LD, with card markup as a second strategy.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from bs4 import BeautifulSoup

from eventsync.config import settings
from eventsync.core.exceptions import PlatformUnavailableError
from eventsync.scrapers.base import (
    BaseHTMLAdapter,
    FetchConfig,
    ParseStrategy,
    RawEventCandidate,
    StandardizedEvent,
    card_candidate,
    json_ld_candidates,
)


logger = structlog.get_logger()

API_URL = "https://api.allevents.in/events/list/"

_CARD_SELECTORS = ["li.event-card", ".event-item", "[data-eid]"]

_TITLE = [".title h3", ".title", "h3", "[itemprop='name']"]
_DATE = [".date", ".time", "[itemprop='startDate']"]
_VENUE = [".subtitle", ".location", "[itemprop='location']"]
_PRICE = [".price", ".ticket-price"]
_CATEGORY = [".category", ".tag"]


class AlleventsAdapter(BaseHTMLAdapter):
    """Allevents.in listing adapter with optional API access."""

    platform = "allevents"
    platform_name = "Allevents"
    base_url = "https://allevents.in"

    CITY_SLUGS = {
        "mumbai": "mumbai",
        "delhi": "delhi",
        "new delhi": "delhi",
        "bengaluru": "bangalore",
        "bangalore": "bangalore",
        "hyderabad": "hyderabad",
        "pune": "pune",
        "chennai": "chennai",
        "kolkata": "kolkata",
        "goa": "goa",
        "ahmedabad": "ahmedabad",
        "jaipur": "jaipur",
        "chandigarh": "chandigarh",
        "kochi": "kochi",
    }

    def __init__(self, api_key: Optional[str] = None):
        super().__init__()
        self.api_key = settings.ALLEVENTS_API_KEY if api_key is None else api_key
        self.logger = logger.bind(adapter=self.platform)

    def listing_urls(self, city_slug: str, config: FetchConfig) -> List[str]:
        return [
            f"{self.base_url}/{city_slug}/all",
            f"{self.base_url}/{city_slug}",
        ]

    def parse_strategies(self) -> List[ParseStrategy]:
        return [json_ld_candidates, self._parse_cards]

    async def _collect_events(
        self, urls: List[str], city_slug: str, config: FetchConfig
    ) -> List[StandardizedEvent]:
        if self.api_key:
            try:
                payload = await self.request_queue.add(
                    self.platform, lambda: self._fetch_api(city_slug)
                )
                events = self._map_candidates(
                    self._api_candidates(payload), city_slug, API_URL, config
                )
                if events:
                    return events
                self._log("api_empty", "warning", "API returned no events, scraping listing")
            except Exception as e:
                self.logger.warning("allevents_api_failed", error=str(e))
                self._log("api_failed", "warning", f"API failed, scraping listing: {e}")

        return await super()._collect_events(urls, city_slug, config)

    async def _fetch_api(self, city_slug: str) -> Dict[str, Any]:
        if self.http_client is None:
            raise PlatformUnavailableError(self.platform, "HTTP client not configured")

        response = await self.http_client.post(
            API_URL,
            json={"city": city_slug, "page": 0},
            headers={"Ocp-Apim-Subscription-Key": self.api_key},
        )
        if response.status_code == 429 and self.scraper_logger is not None:
            self.scraper_logger.rate_limit_hit(self.platform, "429 from API")
        if response.status_code >= 400:
            raise PlatformUnavailableError(self.platform, f"API returned HTTP {response.status_code}")
        return response.json()

    def _api_candidates(self, payload: Any) -> List[RawEventCandidate]:
        """Map API records to raw candidates. Unknown shapes yield nothing."""
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            return []

        candidates = []
        for item in payload["data"]:
            if not isinstance(item, dict):
                continue

            start = item.get("start_time")
            if isinstance(start, (int, float)):
                start = datetime.fromtimestamp(start, tz=timezone.utc).isoformat()

            venue = item.get("venue") if isinstance(item.get("venue"), dict) else {}
            tickets = item.get("tickets") if isinstance(item.get("tickets"), dict) else {}
            price = None
            if tickets.get("min_ticket_price") is not None:
                price = f"{tickets.get('ticket_currency', '')} {tickets['min_ticket_price']}".strip()
            elif tickets.get("has_tickets") is False:
                price = "Free"

            categories = item.get("categories")
            category = categories[0] if isinstance(categories, list) and categories else None

            candidates.append(
                RawEventCandidate(
                    title=item.get("eventname"),
                    event_url=item.get("event_url"),
                    image_url=item.get("banner_url") or item.get("thumb_url"),
                    venue=item.get("location"),
                    address=venue.get("full_address") or venue.get("street"),
                    date_text=start,
                    price_text=price,
                    category_text=category,
                    description=item.get("description"),
                    source_id=item.get("event_id"),
                )
            )
        return [c for c in candidates if c.is_usable()]

    def _parse_cards(self, soup: BeautifulSoup) -> List[RawEventCandidate]:
        for selector in _CARD_SELECTORS:
            cards = soup.select(selector)
            if cards:
                candidates = []
                for card in cards:
                    candidate = card_candidate(card, _TITLE, _DATE, _VENUE, _PRICE, _CATEGORY)
                    # Cards link through a data attribute on newer layouts
                    if not candidate.event_url and card.get("data-link"):
                        candidate.event_url = card.get("data-link")
                    candidates.append(candidate)
                return candidates
        return []
