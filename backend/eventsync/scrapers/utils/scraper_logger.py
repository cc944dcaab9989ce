"""Scraping activity log and per-platform metrics.

Adapters report fetch start, success, warning and failure points here. The
records are mirrored to structlog and kept in a bounded in-memory ring for
reports and debugging.
"""

from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

VALID_STATUSES = ("success", "failure", "warning")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ScraperLogEntry:
    platform: str
    stage: str
    status: str
    message: str
    context: Optional[Dict[str, Any]] = None
    duration_ms: Optional[int] = None
    timestamp: str = field(default_factory=_now_iso)


@dataclass
class ScraperMetrics:
    platform: str
    total_attempts: int = 0
    success_count: int = 0
    failure_count: int = 0
    invalid_urls: int = 0
    rate_limit_hits: int = 0
    robots_violations: int = 0
    average_duration_ms: float = 0.0
    last_success: Optional[str] = None
    last_failure: Optional[str] = None
    _timed_count: int = field(default=0, repr=False)

    @property
    def success_rate(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.success_count / self.total_attempts * 100

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("_timed_count", None)
        data["success_rate"] = round(self.success_rate, 2)
        return data


class ScraperLogger:
    """In-memory logging collaborator for adapters."""

    def __init__(self, max_entries: int = 1000):
        self._entries: Deque[ScraperLogEntry] = deque(maxlen=max_entries)
        self._metrics: Dict[str, ScraperMetrics] = {}

    def log(
        self,
        platform: str,
        stage: str,
        status: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        if status not in VALID_STATUSES:
            raise ValueError(f"Invalid status: {status}")

        entry = ScraperLogEntry(
            platform=platform,
            stage=stage,
            status=status,
            message=message,
            context=context,
            duration_ms=duration_ms,
        )
        self._entries.append(entry)
        self._update_metrics(entry)

        log_method = {
            "success": logger.info,
            "warning": logger.warning,
            "failure": logger.error,
        }[status]
        log_method(
            "scraper_activity",
            platform=platform,
            stage=stage,
            status=status,
            message=message,
            duration_ms=duration_ms,
            context=context,
        )

    def success(self, platform: str, stage: str, message: str, context=None, duration_ms=None) -> None:
        self.log(platform, stage, "success", message, context, duration_ms)

    def failure(self, platform: str, stage: str, message: str, context=None, duration_ms=None) -> None:
        self.log(platform, stage, "failure", message, context, duration_ms)

    def warning(self, platform: str, stage: str, message: str, context=None) -> None:
        self.log(platform, stage, "warning", message, context)

    def invalid_url(self, platform: str, url: str, reason: str) -> None:
        self.log(platform, "url_validation", "failure", f"Invalid URL: {url}", {"reason": reason})
        self._get_or_create(platform).invalid_urls += 1

    def rate_limit_hit(self, platform: str, message: str) -> None:
        self.log(platform, "rate_limit", "warning", message)
        self._get_or_create(platform).rate_limit_hits += 1

    def robots_violation(self, platform: str, url: str) -> None:
        self.log(platform, "robots_check", "warning", f"Blocked by robots.txt: {url}")
        self._get_or_create(platform).robots_violations += 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_metrics(self, platform: str) -> Optional[ScraperMetrics]:
        return self._metrics.get(platform)

    def get_all_metrics(self) -> List[ScraperMetrics]:
        return list(self._metrics.values())

    def get_recent_logs(self, platform: Optional[str] = None, limit: int = 50) -> List[ScraperLogEntry]:
        entries = [e for e in self._entries if platform is None or e.platform == platform]
        return entries[-limit:] if limit else []

    def get_logs_by_status(self, status: str, limit: int = 50) -> List[ScraperLogEntry]:
        entries = [e for e in self._entries if e.status == status]
        return entries[-limit:] if limit else []

    def generate_report(self) -> str:
        """Human-readable summary of every platform's metrics."""
        lines = ["", "=== Scraper Activity Report ===", ""]
        for metrics in self._metrics.values():
            lines.append(f"Platform: {metrics.platform}")
            lines.append(f"  Total Attempts: {metrics.total_attempts}")
            lines.append(f"  Success: {metrics.success_count} ({metrics.success_rate:.2f}%)")
            lines.append(f"  Failures: {metrics.failure_count}")
            lines.append(f"  Invalid URLs: {metrics.invalid_urls}")
            lines.append(f"  Rate Limit Hits: {metrics.rate_limit_hits}")
            lines.append(f"  Robots Violations: {metrics.robots_violations}")
            lines.append(f"  Avg Response Time: {metrics.average_duration_ms:.0f}ms")
            if metrics.last_success:
                lines.append(f"  Last Success: {metrics.last_success}")
            if metrics.last_failure:
                lines.append(f"  Last Failure: {metrics.last_failure}")
            lines.append("")
        return "\n".join(lines)

    def clear(self) -> None:
        self._entries.clear()
        self._metrics.clear()

    # ------------------------------------------------------------------

    def _get_or_create(self, platform: str) -> ScraperMetrics:
        if platform not in self._metrics:
            self._metrics[platform] = ScraperMetrics(platform=platform)
        return self._metrics[platform]

    def _update_metrics(self, entry: ScraperLogEntry) -> None:
        metrics = self._get_or_create(entry.platform)
        metrics.total_attempts += 1

        if entry.status == "success":
            metrics.success_count += 1
            metrics.last_success = entry.timestamp
        elif entry.status == "failure":
            metrics.failure_count += 1
            metrics.last_failure = entry.timestamp

        if entry.duration_ms:
            # Running mean over entries that carried a duration
            metrics._timed_count += 1
            metrics.average_duration_ms += (
                entry.duration_ms - metrics.average_duration_ms
            ) / metrics._timed_count
