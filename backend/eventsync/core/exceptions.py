"""Custom exception classes for the ingestion pipeline."""

from typing import List, Optional


POLICY_DISALLOWED_MESSAGE = "scraping disallowed by policy"


class EventSyncException(Exception):
    """Base exception for all EventSync errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class PlatformUnavailableError(EventSyncException):
    """Raised when a platform cannot be fetched or its page cannot be read."""

    def __init__(self, platform: str, message: str):
        self.platform = platform
        super().__init__(f"{platform} unavailable: {message}")


class PolicyDisallowedError(EventSyncException):
    """Raised when robots policy forbids fetching a URL. Never retried."""

    def __init__(self, platform: str, url: str):
        self.platform = platform
        self.url = url
        super().__init__(POLICY_DISALLOWED_MESSAGE)


class RetryExhaustedError(EventSyncException):
    """Raised when a queued request failed on every allowed attempt."""

    def __init__(self, platform: str, attempts: int, last_error: Optional[BaseException]):
        self.platform = platform
        self.attempts = attempts
        self.last_error = last_error
        detail = str(last_error) if last_error is not None else "unknown error"
        super().__init__(f"{detail} (gave up after {attempts} attempts)")


class RecordValidationError(EventSyncException):
    """Raised when a single candidate record is malformed."""

    def __init__(self, external_id: str, errors: List[str]):
        self.external_id = external_id or "unknown"
        self.errors = list(errors)
        super().__init__(f"Invalid event {self.external_id}: {'; '.join(self.errors)}")
