"""Townscript scraper adapter.

Townscript listing pages embed schema.org Event JSON-LD, which is far more
stable than the card markup. Cards and bare event links are fallbacks.
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
    json_ld_candidates,
)


logger = structlog.get_logger()

_CARD_SELECTORS = [
    "[class*='event-card']",
    "[class*='EventCard']",
    ".ls-card",
    "article",
]

_TITLE = ["[class*='event-name']", "[class*='title']", "h3", "h2"]
_DATE = ["[class*='date']", "time", "[class*='time']"]
_VENUE = ["[class*='venue']", "[class*='location']", "[class*='place']"]
_PRICE = ["[class*='price']", "[class*='ticket']"]
_CATEGORY = ["[class*='category']", "[class*='tag']"]


class TownscriptAdapter(BaseHTMLAdapter):
    """Townscript city listing scraper."""

    platform = "townscript"
    platform_name = "Townscript"
    base_url = "https://www.townscript.com"

    CITY_SLUGS = {
        "mumbai": "mumbai",
        "delhi": "new-delhi",
        "new delhi": "new-delhi",
        "ncr": "new-delhi",
        "bengaluru": "bangalore",
        "bangalore": "bangalore",
        "hyderabad": "hyderabad",
        "pune": "pune",
        "chennai": "chennai",
        "kolkata": "kolkata",
        "ahmedabad": "ahmedabad",
    }

    def __init__(self):
        super().__init__()
        self.logger = logger.bind(adapter=self.platform)

    def listing_urls(self, city_slug: str, config: FetchConfig) -> List[str]:
        return [
            f"{self.base_url}/in/{city_slug}",
            f"{self.base_url}/in/{city_slug}/all",
        ]

    def parse_strategies(self) -> List[ParseStrategy]:
        return [json_ld_candidates, self._parse_cards, self._parse_event_links]

    def _parse_cards(self, soup: BeautifulSoup) -> List[RawEventCandidate]:
        for selector in _CARD_SELECTORS:
            cards = [card for card in soup.select(selector) if card.select_one("a[href*='/e/']")]
            if cards:
                return [
                    card_candidate(card, _TITLE, _DATE, _VENUE, _PRICE, _CATEGORY)
                    for card in cards
                ]
        return []

    def _parse_event_links(self, soup: BeautifulSoup) -> List[RawEventCandidate]:
        return [
            card_candidate(link, _TITLE, _DATE, _VENUE, _PRICE, _CATEGORY)
            for link in soup.select("a[href*='/e/']")
        ]
