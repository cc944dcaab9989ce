"""URL format and reachability checks with a short-lived result cache."""

import time
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple
from urllib.parse import urlparse

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from eventsync.config import settings

logger = structlog.get_logger(__name__)


IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg")

# Expected ticket hosts per platform; platforms not listed are not checked
PLATFORM_DOMAINS = {
    "bookmyshow": ("bookmyshow.com",),
    "insider": ("insider.in",),
    "paytm-insider": ("insider.in", "paytminsider.com"),
    "allevents": ("allevents.in",),
    "eventbrite": ("eventbrite.com", "eventbrite.co.in"),
    "explara": ("explara.com",),
    "townscript": ("townscript.com",),
}


@dataclass
class URLValidationResult:
    is_valid: bool
    status_code: Optional[int] = None
    final_url: Optional[str] = None
    content_type: Optional[str] = None
    error: Optional[str] = None
    cached: bool = False


class _UnreachableURL(Exception):
    """Transient probe failure; eligible for another attempt."""

    def __init__(self, result: URLValidationResult):
        self.result = result
        super().__init__(result.error or f"HTTP {result.status_code}")


class URLValidator:
    """HEAD-probes URLs and caches the outcome for an hour.

    Network errors are not cached, so a flaky host is probed again next time.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        cache_ttl: Optional[float] = None,
        timeout: Optional[float] = None,
        retry_base_delay: float = 1.0,
    ):
        self._http_client = http_client
        self.cache_ttl = settings.URL_CHECK_CACHE_TTL_SECONDS if cache_ttl is None else cache_ttl
        self.timeout = settings.URL_CHECK_TIMEOUT_SECONDS if timeout is None else timeout
        self.retry_base_delay = retry_base_delay
        self._cache: Dict[str, Tuple[URLValidationResult, float]] = {}

    def is_valid_format(self, url: Optional[str]) -> bool:
        """http(s) URL with a host; no network access."""
        if not url or not isinstance(url, str):
            return False
        try:
            parsed = urlparse(url.strip())
        except ValueError:
            return False
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return False
        host = parsed.hostname
        return "." in host or host == "localhost"

    quick_validate = is_valid_format

    async def is_accessible(self, url: str, use_cache: bool = True) -> URLValidationResult:
        if not self.is_valid_format(url):
            return URLValidationResult(is_valid=False, error="Invalid URL format")

        if use_cache and url in self._cache:
            result, stored_at = self._cache[url]
            if time.monotonic() - stored_at < self.cache_ttl:
                return replace(result, cached=True)

        try:
            response = await self._head(url)
        except httpx.HTTPError as e:
            logger.debug("url_probe_failed", url=url, error=str(e))
            return URLValidationResult(is_valid=False, error=str(e) or e.__class__.__name__)

        result = URLValidationResult(
            # 405: HEAD not allowed, but the resource exists
            is_valid=response.is_success or response.status_code == 405,
            status_code=response.status_code,
            final_url=str(response.url),
            content_type=response.headers.get("content-type"),
        )
        self._cache[url] = (result, time.monotonic())
        return result

    async def is_valid_image_url(self, url: str) -> bool:
        result = await self.is_accessible(url)
        if not result.is_valid:
            return False
        if result.content_type:
            return result.content_type.startswith("image/")
        lowered = url.lower()
        return any(ext in lowered for ext in IMAGE_EXTENSIONS)

    async def validate_event_url(
        self, url: str, platform: str, max_retries: int = 2
    ) -> URLValidationResult:
        """Probe a ticket URL with retries and check it belongs to the platform.

        Retries back off exponentially; a 404 is final. Only the first
        attempt may be answered from cache.
        """
        attempts = 0
        result = URLValidationResult(is_valid=False, error="not checked")
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_retries + 1),
                wait=wait_exponential(multiplier=self.retry_base_delay, max=30),
                retry=retry_if_exception_type(_UnreachableURL),
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = await self.is_accessible(url, use_cache=attempts == 1)
                    if not result.is_valid and result.status_code != 404:
                        raise _UnreachableURL(result)
        except _UnreachableURL as e:
            result = e.result

        if result.is_valid:
            if not self.is_platform_url(url, platform):
                return URLValidationResult(
                    is_valid=False,
                    status_code=result.status_code,
                    error=f"URL doesn't match {platform} domain pattern",
                )
            return result

        detail = result.error or f"HTTP {result.status_code}"
        return URLValidationResult(
            is_valid=False,
            status_code=result.status_code,
            error=f"Validation failed after {attempts} attempts: {detail}",
        )

    def is_platform_url(self, url: str, platform: str) -> bool:
        domains = PLATFORM_DOMAINS.get((platform or "").lower())
        if not domains:
            return True
        host = (urlparse(url).hostname or "").lower()
        return any(host == d or host.endswith(f".{d}") for d in domains)

    def clear_cache(self, url: Optional[str] = None) -> None:
        if url is None:
            self._cache.clear()
        else:
            self._cache.pop(url, None)

    def get_cache_stats(self) -> Dict[str, int]:
        now = time.monotonic()
        valid = invalid = expired = 0
        for result, stored_at in self._cache.values():
            if now - stored_at >= self.cache_ttl:
                expired += 1
            elif result.is_valid:
                valid += 1
            else:
                invalid += 1
        return {"total": len(self._cache), "valid": valid, "invalid": invalid, "expired": expired}

    async def _head(self, url: str) -> httpx.Response:
        headers = {"User-Agent": settings.SCRAPER_USER_AGENT}
        if self._http_client is not None:
            return await self._http_client.head(
                url, headers=headers, timeout=self.timeout, follow_redirects=True
            )
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            return await client.head(url, headers=headers)
