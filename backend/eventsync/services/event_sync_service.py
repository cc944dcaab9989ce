"""End-to-end event sync: aggregate, validate, deduplicate, store.

The storage backend is a collaborator behind the EventRepository protocol;
InMemoryEventRepository is the reference implementation.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Protocol, Tuple

import structlog

from eventsync.config import settings
from eventsync.scrapers.aggregator import EventAggregator
from eventsync.scrapers.base import FetchConfig, StandardizedEvent
from eventsync.scrapers.utils.scraper_logger import ScraperLogger
from eventsync.services.deduplicator import deduplicate
from eventsync.services.event_validator import EventValidator

logger = structlog.get_logger(__name__)


@dataclass
class UpsertOutcome:
    inserted: int = 0
    updated: int = 0


class EventRepository(Protocol):
    """Persistence collaborator. Upserts by (source_platform, external_id)."""

    async def upsert_events(self, events: List[StandardizedEvent]) -> UpsertOutcome:
        ...


class InMemoryEventRepository:
    """Dict-backed repository keyed by (source_platform, external_id)."""

    def __init__(self):
        self.events: Dict[Tuple[str, str], StandardizedEvent] = {}

    async def upsert_events(self, events: List[StandardizedEvent]) -> UpsertOutcome:
        outcome = UpsertOutcome()
        for event in events:
            key = (event.source_platform, event.external_id)
            if key in self.events:
                outcome.updated += 1
            else:
                outcome.inserted += 1
            self.events[key] = event
        return outcome

    def __len__(self) -> int:
        return len(self.events)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SyncStats:
    success: bool = False
    timestamp: str = field(default_factory=_now_iso)
    duration_ms: int = 0
    cities: List[str] = field(default_factory=list)
    total_fetched: int = 0
    validated: int = 0
    invalid_events: int = 0
    duplicates_removed: int = 0
    inserted: int = 0
    updated: int = 0
    errors: List[str] = field(default_factory=list)
    validation_errors: List[str] = field(default_factory=list)
    by_platform: Dict[str, int] = field(default_factory=dict)
    by_city: Dict[str, int] = field(default_factory=dict)


class EventSyncService:
    """Runs the ingestion pipeline for a list of cities."""

    def __init__(
        self,
        aggregator: EventAggregator,
        repository: EventRepository,
        validator: Optional[EventValidator] = None,
        scraper_logger: Optional[ScraperLogger] = None,
        limit: Optional[int] = None,
        window_days: Optional[int] = None,
    ):
        self.aggregator = aggregator
        self.repository = repository
        self.validator = validator or EventValidator()
        self.scraper_logger = scraper_logger
        self.limit = settings.SYNC_DEFAULT_LIMIT if limit is None else limit
        self.window_days = settings.SYNC_WINDOW_DAYS if window_days is None else window_days
        self.logger = logger.bind(service="event_sync")

    async def sync_events(self, cities: List[str]) -> SyncStats:
        """Sync every city in turn. Never raises; failures land in stats.errors.

        success is True when at least one event was inserted or updated.
        """
        started = time.monotonic()
        stats = SyncStats(cities=list(cities))
        self.logger.info("sync_started", cities=cities)

        for city in cities:
            try:
                await self._sync_city(city, stats)
            except Exception as e:
                self.logger.error("city_sync_failed", city=city, error=str(e), exc_info=True)
                stats.errors.append(f"{city}: {e}")

        stats.duration_ms = int((time.monotonic() - started) * 1000)
        stats.success = stats.inserted + stats.updated > 0

        self.logger.info(
            "sync_complete",
            duration_ms=stats.duration_ms,
            total_fetched=stats.total_fetched,
            validated=stats.validated,
            invalid_events=stats.invalid_events,
            duplicates_removed=stats.duplicates_removed,
            inserted=stats.inserted,
            updated=stats.updated,
            errors=len(stats.errors),
        )
        if self.scraper_logger is not None:
            self.logger.info("scraper_report", report=self.scraper_logger.generate_report())
        return stats

    async def _sync_city(self, city: str, stats: SyncStats) -> None:
        now = datetime.now(timezone.utc)
        config = FetchConfig(
            city=city,
            limit=self.limit,
            start_date=now,
            end_date=now + timedelta(days=self.window_days),
        )

        result = await self.aggregator.fetch_all(config)
        stats.errors.extend(result.errors)
        if not result.success:
            self.logger.info("no_events_found", city=city)
            return

        stats.total_fetched += result.total_events
        for event in result.all_events:
            stats.by_platform[event.source_platform] = stats.by_platform.get(event.source_platform, 0) + 1

        # URL probes are too slow for batches
        validations = await self.validator.validate_batch(result.all_events, check_urls=False)

        valid_events: List[StandardizedEvent] = []
        for event, validation in zip(result.all_events, validations):
            if validation.is_valid:
                stats.validated += 1
                valid_events.append(validation.sanitized_event)
                continue

            stats.invalid_events += 1
            reason = "; ".join(validation.errors)
            stats.validation_errors.append(f"{event.external_id or 'unknown'}: {reason}")
            self.logger.warning(
                "invalid_event",
                platform=event.source_platform,
                external_id=event.external_id,
                errors=validation.errors,
            )
            if self.scraper_logger is not None:
                self.scraper_logger.invalid_url(event.source_platform, event.ticket_url or "", reason)

        if not valid_events:
            self.logger.info("no_valid_events", city=city)
            return

        deduped = deduplicate(valid_events)
        stats.duplicates_removed += len(deduped.removed)

        outcome = await self.repository.upsert_events(deduped.events)
        stats.inserted += outcome.inserted
        stats.updated += outcome.updated
        stats.by_city[city] = len(deduped.events)

        self.logger.info(
            "city_synced",
            city=city,
            inserted=outcome.inserted,
            updated=outcome.updated,
            duplicates_removed=len(deduped.removed),
        )
