"""Parallel, fail-soft fan-out over every event source adapter."""

import asyncio
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import structlog

from eventsync.scrapers.base import (
    BaseEventAdapter,
    FetchConfig,
    PlatformFetchResult,
    StandardizedEvent,
)
from eventsync.scrapers.factory import AdapterFactory

logger = structlog.get_logger(__name__)


@dataclass
class AggregatorResult:
    """Outcome of one aggregation run. Always well-formed, even on total failure."""

    success: bool
    total_events: int
    platform_results: List[PlatformFetchResult] = field(default_factory=list)
    all_events: List[StandardizedEvent] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    duration_ms: int = 0


@dataclass
class AggregatorStats:
    total: int
    by_platform: Dict[str, int]
    by_category: Dict[str, int]
    by_city: Dict[str, int]


class EventAggregator:
    """Runs adapters concurrently and merges their results.

    Each adapter is awaited to a terminal outcome regardless of what its
    siblings do; a failing or raising adapter becomes an entry in errors.
    """

    def __init__(self, adapters: Iterable[BaseEventAdapter]):
        self.adapters: Dict[str, BaseEventAdapter] = {a.platform: a for a in adapters}
        self.logger = logger.bind(service="aggregator")

    @classmethod
    def from_factory(
        cls, factory: AdapterFactory, platforms: Optional[List[str]] = None
    ) -> "EventAggregator":
        return cls(factory.create_adapters(platforms))

    async def fetch_all(self, config: FetchConfig) -> AggregatorResult:
        """Fetch events from every configured adapter in parallel."""
        return await self.fetch_from_platforms(config, list(self.adapters))

    async def fetch_from_platforms(
        self, config: FetchConfig, platforms: List[str]
    ) -> AggregatorResult:
        """Fetch events from a subset of platforms in parallel.

        Never raises. Unknown platform keys are reported in errors.
        """
        started = time.monotonic()
        try:
            errors: List[str] = []
            selected: List[BaseEventAdapter] = []
            for platform in platforms:
                adapter = self.adapters.get(platform)
                if adapter is None:
                    errors.append(f"{platform}: adapter not registered")
                else:
                    selected.append(adapter)

            self.logger.info(
                "aggregation_started",
                city=config.city,
                limit=config.limit,
                platforms=[a.platform for a in selected],
            )

            outcomes = await asyncio.gather(
                *(adapter.fetch(config) for adapter in selected),
                return_exceptions=True,
            )

            platform_results: List[PlatformFetchResult] = []
            all_events: List[StandardizedEvent] = []

            for adapter, outcome in zip(selected, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    message = str(outcome) or outcome.__class__.__name__
                    errors.append(f"{adapter.platform}: {message}")
                    platform_results.append(
                        PlatformFetchResult(platform=adapter.platform, success=False, error=message)
                    )
                    self.logger.error("platform_raised", platform=adapter.platform, error=message)
                    continue

                platform_results.append(outcome)
                if outcome.success:
                    all_events.extend(outcome.events)
                    self.logger.info(
                        "platform_succeeded", platform=outcome.platform, count=len(outcome.events)
                    )
                else:
                    errors.append(f"{outcome.platform}: {outcome.error}")
                    self.logger.warning(
                        "platform_failed", platform=outcome.platform, error=outcome.error
                    )

            duration_ms = int((time.monotonic() - started) * 1000)
            self.logger.info(
                "aggregation_complete",
                total_events=len(all_events),
                succeeded=sum(1 for r in platform_results if r.success),
                attempted=len(platform_results),
                duration_ms=duration_ms,
                errors=errors or None,
            )

            return AggregatorResult(
                success=len(all_events) > 0,
                total_events=len(all_events),
                platform_results=platform_results,
                all_events=all_events,
                errors=errors,
                duration_ms=duration_ms,
            )

        except Exception as e:
            self.logger.error("aggregation_error", error=str(e), exc_info=True)
            return AggregatorResult(
                success=False,
                total_events=0,
                errors=[str(e) or e.__class__.__name__],
                duration_ms=int((time.monotonic() - started) * 1000),
            )


def get_aggregator_stats(result: AggregatorResult) -> AggregatorStats:
    """Count a run's events by platform, category and city."""
    return AggregatorStats(
        total=result.total_events,
        by_platform=dict(Counter(e.source_platform for e in result.all_events)),
        by_category=dict(Counter(e.category for e in result.all_events)),
        by_city=dict(Counter(e.city for e in result.all_events)),
    )
