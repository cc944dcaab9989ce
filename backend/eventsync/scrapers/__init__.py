"""Event ingestion from external listing sites.

This package provides:
- Base adapter classes and the common event schema
- Utility modules for request pacing, robots checks, and normalization
- Factory for creating and wiring adapter instances
- Aggregator for parallel, fail-soft fetching across platforms
"""

from .base import (
    BaseBrowserAdapter,
    BaseEventAdapter,
    BaseHTMLAdapter,
    FetchConfig,
    PlatformFetchResult,
    RawEventCandidate,
    SourcePlatform,
    StandardizedEvent,
)
from .factory import AdapterFactory
from .aggregator import AggregatorResult, AggregatorStats, EventAggregator, get_aggregator_stats

__all__ = [
    # Base classes
    "BaseEventAdapter",
    "BaseHTMLAdapter",
    "BaseBrowserAdapter",
    # Data structures
    "StandardizedEvent",
    "RawEventCandidate",
    "FetchConfig",
    "PlatformFetchResult",
    "SourcePlatform",
    # Factory
    "AdapterFactory",
    # Aggregation
    "EventAggregator",
    "AggregatorResult",
    "AggregatorStats",
    "get_aggregator_stats",
]
