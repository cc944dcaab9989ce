"""Explara scraper adapter.

Explara serves its city listings as static HTML. The markup differs between
page variants, so several URL patterns and card selectors are tried in order.
"""

from typing import List

import structlog
from bs4 import BeautifulSoup

from eventsync.scrapers.base import (
    BaseHTMLAdapter,
    FetchConfig,
    ParseStrategy,
    RawEventCandidate,
    card_candidate,
)


logger = structlog.get_logger()

# Card containers seen across Explara layouts, most specific first
_CARD_SELECTORS = [
    ".event-item",
    ".event-card",
    "[data-event]",
    ".listing-item",
    ".event-box",
]

_TITLE = [".event-name", ".event-title", ".title", "h3", "h4", "h2"]
_DATE = [".event-date", ".date", "time", ".event-time"]
_VENUE = [".event-location", ".venue", ".location"]
_PRICE = [".price", ".event-price", ".ticket-price"]
_CATEGORY = [".event-category", ".category", ".tag"]


class ExplaraAdapter(BaseHTMLAdapter):
    """Explara city listing scraper."""

    platform = "explara"
    platform_name = "Explara"
    base_url = "https://www.explara.com"

    CITY_SLUGS = {
        "mumbai": "mumbai",
        "delhi": "delhi",
        "new delhi": "delhi",
        "bengaluru": "bangalore",
        "bangalore": "bangalore",
        "hyderabad": "hyderabad",
        "pune": "pune",
        "kolkata": "kolkata",
        "chennai": "chennai",
        "ahmedabad": "ahmedabad",
        "jaipur": "jaipur",
        "goa": "goa",
    }

    def __init__(self):
        super().__init__()
        self.logger = logger.bind(adapter=self.platform)

    def listing_urls(self, city_slug: str, config: FetchConfig) -> List[str]:
        return [
            f"{self.base_url}/events/{city_slug}",
            f"{self.base_url}/{city_slug}/events",
            f"{self.base_url}/e/{city_slug}",
        ]

    def parse_strategies(self) -> List[ParseStrategy]:
        return [self._parse_cards, self._parse_event_links]

    def _parse_cards(self, soup: BeautifulSoup) -> List[RawEventCandidate]:
        """Strategy 1: known card containers."""
        for selector in _CARD_SELECTORS:
            cards = soup.select(selector)
            if not cards:
                continue
            self.logger.info("trying_card_selector", selector=selector, count=len(cards))
            return [
                card_candidate(card, _TITLE, _DATE, _VENUE, _PRICE, _CATEGORY)
                for card in cards
            ]
        return []

    def _parse_event_links(self, soup: BeautifulSoup) -> List[RawEventCandidate]:
        """Strategy 2: any link into an event page, using its parent as the card."""
        candidates = []
        for link in soup.select("a[href*='/e/']"):
            container = link.parent if link.parent is not None and link.parent.name != "[document]" else link
            candidate = card_candidate(container, _TITLE, _DATE, _VENUE, _PRICE, _CATEGORY)
            candidate.event_url = link.get("href")
            if not candidate.title:
                candidate.title = link.get_text(" ", strip=True) or None
            candidates.append(candidate)
        return candidates
