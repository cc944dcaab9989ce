"""Services that validate, deduplicate and sync scraped events."""

from eventsync.services.deduplicator import DeduplicationResult, DuplicateGroup, deduplicate
from eventsync.services.event_sync_service import (
    EventRepository,
    EventSyncService,
    InMemoryEventRepository,
    SyncStats,
)
from eventsync.services.event_validator import EventValidator, ValidationResult
from eventsync.services.url_validator import URLValidator

__all__ = [
    "DeduplicationResult",
    "DuplicateGroup",
    "deduplicate",
    "EventRepository",
    "EventSyncService",
    "InMemoryEventRepository",
    "SyncStats",
    "EventValidator",
    "ValidationResult",
    "URLValidator",
]
