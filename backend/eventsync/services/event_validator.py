"""Sanitization and validation of scraped events before storage.

Errors exclude a record; warnings keep it but flag it. Two entry points:
quick_validate() runs structural checks only, validate() adds date and
price checks and, optionally, network-backed URL reachability.
"""

import asyncio
import re
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import structlog

from eventsync.config import settings
from eventsync.core.exceptions import RecordValidationError
from eventsync.scrapers.base import KNOWN_PLATFORMS, StandardizedEvent
from eventsync.scrapers.utils.normalizer import (
    CHECK_WEBSITE,
    DEFAULT_CATEGORY,
    FREE,
    PLACEHOLDER_PRICE,
    parse_iso_datetime,
    sanitize_price,
)
from eventsync.services.url_validator import URLValidator

logger = structlog.get_logger(__name__)


REQUIRED_FIELDS = ("external_id", "title", "event_date", "city", "venue", "source_platform")

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_PRICE_NUMBER = re.compile(r"\d[\d,]*")

PAST_GRACE = timedelta(hours=1)
FUTURE_HORIZON = timedelta(days=365)


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    sanitized_event: Optional[StandardizedEvent] = None


@dataclass
class ValidationSummary:
    total: int
    valid: int
    invalid: int
    total_errors: int
    total_warnings: int
    common_errors: Dict[str, int]


def sanitize_string(value, max_length: Optional[int] = None) -> str:
    """Collapse whitespace, strip control characters, trim and cap length."""
    if value is None:
        return ""
    if max_length is None:
        max_length = settings.TEXT_MAX_LENGTH
    text = " ".join(str(value).split())
    text = _CONTROL_CHARS.sub("", text).strip()
    return text[:max_length]


class EventValidator:
    """Validates StandardizedEvent records.

    Args:
        url_validator: Reachability prober used by validate(check_urls=True)
        now: Clock override for date checks
    """

    def __init__(self, url_validator: Optional[URLValidator] = None, now=None):
        self.url_validator = url_validator or URLValidator()
        self._now = now or (lambda: datetime.now(timezone.utc))
        self.logger = logger.bind(service="event_validator")

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def quick_validate(self, event: StandardizedEvent) -> ValidationResult:
        """Structural and format checks only. No network access."""
        try:
            sanitized = self.sanitize_event(event)
        except RecordValidationError as e:
            return ValidationResult(is_valid=False, errors=e.errors)

        errors: List[str] = []
        warnings: List[str] = []
        self._validate_required_fields(sanitized, errors)
        self._validate_field_formats(sanitized, errors, warnings)
        return ValidationResult(
            is_valid=not errors, errors=errors, warnings=warnings, sanitized_event=sanitized
        )

    async def validate(self, event: StandardizedEvent, check_urls: bool = True) -> ValidationResult:
        """Full validation: structure, date, price and (optionally) URLs."""
        try:
            sanitized = self.sanitize_event(event)
        except RecordValidationError as e:
            return ValidationResult(is_valid=False, errors=e.errors)

        errors: List[str] = []
        warnings: List[str] = []

        self._validate_required_fields(sanitized, errors)
        self._validate_field_formats(sanitized, errors, warnings)

        if check_urls:
            await self._validate_urls(sanitized, errors, warnings)
        else:
            if not sanitized.ticket_url:
                warnings.append("No ticket URL provided")
            if not sanitized.image_url:
                warnings.append("No image URL provided")

        self._validate_date(sanitized, errors, warnings)
        raw_prices = [event.price, (event.raw_data or {}).get("original_price_text")]
        self._validate_price(raw_prices, sanitized, warnings)

        return ValidationResult(
            is_valid=not errors, errors=errors, warnings=warnings, sanitized_event=sanitized
        )

    async def validate_batch(
        self, events: List[StandardizedEvent], check_urls: bool = False
    ) -> List[ValidationResult]:
        """Validate records independently; results keep input order."""
        return list(await asyncio.gather(*(self.validate(e, check_urls) for e in events)))

    def get_summary(self, results: List[ValidationResult]) -> ValidationSummary:
        common = Counter(error for r in results for error in r.errors)
        return ValidationSummary(
            total=len(results),
            valid=sum(1 for r in results if r.is_valid),
            invalid=sum(1 for r in results if not r.is_valid),
            total_errors=sum(len(r.errors) for r in results),
            total_warnings=sum(len(r.warnings) for r in results),
            common_errors=dict(common),
        )

    # ------------------------------------------------------------------
    # Sanitization
    # ------------------------------------------------------------------

    def sanitize_event(self, event: StandardizedEvent) -> StandardizedEvent:
        """Return a cleaned copy of the event; the input is not modified.

        Raises:
            RecordValidationError: If event is not a StandardizedEvent
        """
        if not isinstance(event, StandardizedEvent):
            raise RecordValidationError(
                getattr(event, "external_id", None), ["Invalid event object provided for sanitization"]
            )

        def optional(value) -> Optional[str]:
            if not value or not isinstance(value, str):
                return None
            return sanitize_string(value) or None

        def url(value) -> Optional[str]:
            if not value or not isinstance(value, str):
                return None
            return value.strip() or None

        category = event.category if isinstance(event.category, str) else ""
        return replace(
            event,
            external_id=sanitize_string(event.external_id),
            title=sanitize_string(event.title),
            description=sanitize_string(event.description, settings.DESCRIPTION_MAX_LENGTH),
            venue=sanitize_string(event.venue),
            address=optional(event.address),
            city=sanitize_string(event.city),
            category=sanitize_string(category).lower() or DEFAULT_CATEGORY,
            genre=optional(event.genre),
            language=optional(event.language),
            duration=optional(event.duration),
            event_date=(event.event_date or "").strip() if isinstance(event.event_date, str) else "",
            source_platform=sanitize_string(event.source_platform),
            ticket_url=url(event.ticket_url),
            image_url=url(event.image_url),
            price=sanitize_price(event.price),
            raw_data=dict(event.raw_data or {}),
        )

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _validate_required_fields(self, event: StandardizedEvent, errors: List[str]) -> None:
        for name in REQUIRED_FIELDS:
            value = getattr(event, name)
            if not value or value.strip().lower() in ("null", "undefined", "none"):
                errors.append(f"Missing required field: {name}")

        if len(event.description.strip()) < 10:
            errors.append("Description too short (minimum 10 characters)")

    def _validate_field_formats(
        self, event: StandardizedEvent, errors: List[str], warnings: List[str]
    ) -> None:
        title_length = len(event.title)
        if event.title and title_length < 3:
            errors.append("Title too short (minimum 3 characters)")
        if title_length > 200:
            warnings.append("Title very long (over 200 characters)")

        if len(event.description) > 2000:
            warnings.append("Description very long (over 2000 characters)")

        if event.venue and len(event.venue) < 2:
            errors.append("Venue name too short")
        if event.city and len(event.city) < 2:
            errors.append("City name too short")

        if event.external_id and "-" not in event.external_id:
            warnings.append('External ID should include platform prefix (e.g., "allevents-1a2b3c")')

        if event.source_platform and event.source_platform.lower() not in KNOWN_PLATFORMS:
            errors.append(f"Invalid source platform: {event.source_platform}")

    def _validate_date(self, event: StandardizedEvent, errors: List[str], warnings: List[str]) -> None:
        if not event.event_date:
            return  # reported as a missing required field
        event_date = parse_iso_datetime(event.event_date)
        if event_date is None:
            errors.append("Invalid event date format")
            return

        now = self._now()
        if event_date < now - PAST_GRACE:
            warnings.append("Event date is in the past")
        if event_date > now + FUTURE_HORIZON:
            warnings.append("Event date is more than 1 year in the future")

    def _validate_price(
        self, raw_prices: List[Optional[str]], event: StandardizedEvent, warnings: List[str]
    ) -> None:
        if any(isinstance(p, str) and PLACEHOLDER_PRICE.search(p) for p in raw_prices):
            warnings.append("Price contains placeholder text")

        if event.price in (FREE, CHECK_WEBSITE):
            return
        match = _PRICE_NUMBER.search(event.price or "")
        if match and int(match.group(0).replace(",", "")) > settings.PRICE_SANITY_CEILING:
            warnings.append(f"Price seems unusually high (over ₹{settings.PRICE_SANITY_CEILING:,})")

    async def _validate_urls(
        self, event: StandardizedEvent, errors: List[str], warnings: List[str]
    ) -> None:
        if event.ticket_url:
            if not self.url_validator.quick_validate(event.ticket_url):
                errors.append(f"Invalid ticket URL format: {event.ticket_url}")
            else:
                check = await self.url_validator.validate_event_url(
                    event.ticket_url, event.source_platform
                )
                if not check.is_valid:
                    errors.append(f"Ticket URL not accessible: {check.error}")
                elif check.status_code and check.status_code >= 300:
                    warnings.append(f"Ticket URL returned status {check.status_code}")
        else:
            warnings.append("No ticket URL provided")

        if event.image_url:
            if not self.url_validator.quick_validate(event.image_url):
                warnings.append(f"Invalid image URL format: {event.image_url}")
                event.image_url = None
            elif not await self.url_validator.is_valid_image_url(event.image_url):
                warnings.append("Image URL may not be accessible")
                event.image_url = None
        else:
            warnings.append("No image URL provided")
