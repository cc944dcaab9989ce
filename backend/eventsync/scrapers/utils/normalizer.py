"""Data normalization utilities for dates, categories, URLs and ids."""

import hashlib
import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse
from zoneinfo import ZoneInfo

import structlog

from eventsync.config import settings

logger = structlog.get_logger()


# Listing category keywords -> standard category slug (first match wins)
CATEGORY_MAPPING = {
    "music": "concert",
    "concert": "concert",
    "comedy": "comedy",
    "stand-up": "comedy",
    "workshop": "workshop",
    "seminar": "workshop",
    "webinar": "workshop",
    "food & drinks": "food",
    "food": "food",
    "nightlife": "nightlife",
    "theatre": "play",
    "theater": "play",
    "play": "play",
    "arts": "exhibition",
    "exhibition": "exhibition",
    "sports": "sports",
    "networking": "networking",
    "business": "business",
    "conference": "conference",
    "meetup": "meetup",
    "wellness": "wellness",
    "yoga": "wellness",
    "kids": "kids",
}

DEFAULT_CATEGORY = "event"

_MONTHS = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]

_DAY_MONTH = re.compile(r"(\d{1,2})(?:st|nd|rd|th)?\s*([a-z]{3,9})", re.IGNORECASE)
_MONTH_DAY = re.compile(r"\b([a-z]{3,9})\s+(\d{1,2})(?:st|nd|rd|th)?\b", re.IGNORECASE)
_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")
_CLOCK = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b", re.IGNORECASE)

CHECK_WEBSITE = "Check website"
FREE = "Free"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
FREE_PRICE = re.compile(
    r"\bfree\b|₹\s*0+(?:\.0+)?(?![\d.])|\brs\.?\s*0+(?![\d.])|complimentary|no\s*charge",
    re.IGNORECASE,
)
PLACEHOLDER_PRICE = re.compile(
    r"\btbd\b|\btba\b|to\s*be\s*(?:announced|determined)|coming\s*soon|\bn/?a\b",
    re.IGNORECASE,
)

# Query parameters that never identify a listing
TRACKING_PARAMS = frozenset([
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_content",
    "utm_term",
    "ref",
    "source",
    "fbclid",
    "gclid",
    "mc_cid",
    "mc_eid",
])


def map_category(text: str) -> str:
    """Map free category text from a listing to the standard vocabulary.

    Args:
        text: Raw category/genre text (e.g. "Food & Drinks")

    Returns:
        Category slug, "event" when nothing matches
    """
    if not text:
        return DEFAULT_CATEGORY
    lowered = text.lower()
    for keyword, category in CATEGORY_MAPPING.items():
        if keyword in lowered:
            return category
    return DEFAULT_CATEGORY


def source_timezone() -> tzinfo:
    """Timezone that naive listing times are written in."""
    return ZoneInfo(settings.SOURCE_TIMEZONE)


def parse_iso_datetime(value: str, default_tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Naive values are taken to be in default_tz (UTC when not given).
    Returns None when unparseable.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=default_tz or timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_listing_date(
    text: str, now: Optional[datetime] = None, tz: Optional[tzinfo] = None
) -> Optional[str]:
    """Parse the date text shown on a listing card into an ISO timestamp.

    Handles "Today"/"Tomorrow", ISO strings, and day-month forms such as
    "15 Jan", "15th January" or "Jan 15". Day-month dates already in the
    past roll over to next year. Times without an offset are local to the
    source, so "today" and the rollover use the source's calendar date.

    Args:
        text: Date text scraped from the listing
        now: Reference time, defaults to the current time
        tz: Source timezone, defaults to SOURCE_TIMEZONE

    Returns:
        ISO-8601 string in UTC, or None if the text is not a date
    """
    if not text:
        return None
    tz = tz or source_timezone()
    local_now = (now or datetime.now(timezone.utc)).astimezone(tz)
    lowered = text.strip().lower()

    if _ISO_DATE.search(lowered):
        match = _ISO_DATE.search(text)
        parsed = parse_iso_datetime(text.strip(), tz) or parse_iso_datetime(match.group(0), tz)
        if parsed:
            return parsed.isoformat()

    hour, minute = _parse_clock(lowered)

    if "today" in lowered:
        return _utc_at(local_now, hour, minute, tz)
    if "tomorrow" in lowered:
        return _utc_at(local_now + timedelta(days=1), hour, minute, tz)

    day = month = None
    match = _DAY_MONTH.search(lowered)
    if match and _month_index(match.group(2)) is not None:
        day, month = int(match.group(1)), _month_index(match.group(2))
    else:
        match = _MONTH_DAY.search(lowered)
        if match and _month_index(match.group(1)) is not None:
            day, month = int(match.group(2)), _month_index(match.group(1))

    if month is None or not 1 <= day <= 31:
        logger.debug("unparseable_listing_date", text=text)
        return None

    try:
        candidate = datetime(local_now.year, month + 1, day)
    except ValueError:
        return None
    if candidate.date() < local_now.date():
        try:
            candidate = candidate.replace(year=local_now.year + 1)
        except ValueError:
            return None
    return _utc_at(candidate, hour, minute, tz)


def _month_index(name: str) -> Optional[int]:
    prefix = name[:3].lower()
    if prefix in _MONTHS:
        return _MONTHS.index(prefix)
    return None


def _parse_clock(text: str):
    match = _CLOCK.search(text)
    if not match:
        return None, None
    hour = int(match.group(1)) % 12
    if match.group(3).lower() == "pm":
        hour += 12
    return hour, int(match.group(2) or 0)


def _utc_at(day: datetime, hour: Optional[int], minute: Optional[int], tz: tzinfo) -> str:
    local = datetime(day.year, day.month, day.day, hour or 0, minute or 0, tzinfo=tz)
    return local.astimezone(timezone.utc).isoformat()


def sanitize_price(price: Optional[str]) -> str:
    """Normalize price text to "Free", "Check website" or the trimmed amount.

    Placeholders such as "TBD" or "Coming soon" never survive as a price.
    """
    if not price or not isinstance(price, str):
        return CHECK_WEBSITE
    text = _CONTROL_CHARS.sub("", " ".join(price.split())).strip()
    if not text:
        return CHECK_WEBSITE
    if FREE_PRICE.search(text):
        return FREE
    if PLACEHOLDER_PRICE.search(text):
        return CHECK_WEBSITE
    return text


def canonicalize_url(url: str) -> str:
    """Normalize a listing URL so the same page always yields the same string.

    Lower-cases scheme and host, drops tracking parameters, the fragment and
    any trailing slash, and sorts the remaining query parameters.

    Args:
        url: URL to normalize

    Returns:
        Normalized URL
    """
    if not url:
        return url

    parsed = urlparse(url.strip())
    query = sorted(
        (k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)
        if k.lower() not in TRACKING_PARAMS
    )
    path = parsed.path.rstrip("/") or "/"
    return urlunparse(
        (parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, urlencode(query), "")
    )


def build_external_id(platform: str, url: str, title: str, event_date: str, city: str) -> str:
    """Deterministic external id for a scraped listing.

    The same listing scraped twice produces the same id, so ingestion is
    idempotent. The platform prefix keeps ids readable and unique per source.

    Returns:
        Id of the form "<platform>-<16 hex chars>"
    """
    parts = [
        platform.strip().lower(),
        canonicalize_url(url or ""),
        " ".join((title or "").lower().split()),
        (event_date or "").strip(),
        (city or "").strip().lower(),
    ]
    digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
    return f"{platform}-{digest[:16]}"
