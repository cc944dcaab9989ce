"""Paytm Insider adapter (JavaScript-rendered, Playwright).

Insider renders its listing client-side, so pages are loaded in the shared
headless browser and the rendered HTML is parsed with BeautifulSoup.
"""

from typing import List

import structlog
from bs4 import BeautifulSoup

from eventsync.scrapers.base import (
    BaseBrowserAdapter,
    FetchConfig,
    ParseStrategy,
    RawEventCandidate,
    card_candidate,
)


logger = structlog.get_logger()

# Card containers in priority order; only those linking to an event page count
_CARD_SELECTORS = [
    "[class*='event-card']",
    "[class*='EventCard']",
    "[class*='event-item']",
    "[class*='card']",
    "[class*='listing']",
    "[data-event-id]",
    "article",
    ".event",
    "[role='article']",
]

_TITLE = ["[class*='title']", "[class*='name']", "[class*='heading']", "h1", "h2", "h3", "h4"]
_DATE = ["[class*='date']", "time", "[class*='time']"]
_VENUE = ["[class*='venue']", "[class*='location']", "[class*='place']", "[data-testid*='venue']"]
_PRICE = ["[class*='price']", "[class*='cost']", "[class*='amount']", "[class*='ticket']"]
_CATEGORY = ["[class*='category']", "[class*='genre']", "[data-testid*='category']"]

_MAX_CARDS = 50


def _is_event_link(href: str) -> bool:
    return bool(href) and ("/event/" in href or "/e/" in href)


class PaytmInsiderAdapter(BaseBrowserAdapter):
    """Paytm Insider city listing scraper."""

    platform = "paytm-insider"
    platform_name = "Paytm Insider"
    base_url = "https://insider.in"

    WAIT_SELECTOR = ", ".join([
        "[class*='event']",
        "[class*='card']",
        "[class*='listing']",
        "a[href*='/event/']",
        "[data-event-id]",
    ])

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
        "goa": "goa",
        "ahmedabad": "ahmedabad",
        "jaipur": "jaipur",
        "chandigarh": "chandigarh",
        "kochi": "kochi",
    }

    def __init__(self):
        super().__init__()
        self.logger = logger.bind(adapter=self.platform)

    def listing_urls(self, city_slug: str, config: FetchConfig) -> List[str]:
        return [f"{self.base_url}/{city_slug}/events"]

    def parse_strategies(self) -> List[ParseStrategy]:
        return [self._parse_cards, self._parse_event_links]

    def _parse_cards(self, soup: BeautifulSoup) -> List[RawEventCandidate]:
        for selector in _CARD_SELECTORS:
            cards = []
            for element in soup.select(selector):
                link = element if element.name == "a" else element.select_one("a[href]")
                if link is not None and _is_event_link(link.get("href", "")):
                    cards.append(element)
            if cards:
                return [
                    card_candidate(card, _TITLE, _DATE, _VENUE, _PRICE, _CATEGORY)
                    for card in cards[:_MAX_CARDS]
                ]
        return []

    def _parse_event_links(self, soup: BeautifulSoup) -> List[RawEventCandidate]:
        links = [a for a in soup.select("a[href]") if _is_event_link(a.get("href", ""))]
        return [
            card_candidate(link, _TITLE, _DATE, _VENUE, _PRICE, _CATEGORY)
            for link in links[:_MAX_CARDS]
        ]
