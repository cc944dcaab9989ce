"""robots.txt policy checks gating every listing fetch."""

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional, Protocol
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import httpx
import structlog

from eventsync.config import settings

logger = structlog.get_logger(__name__)


@dataclass
class AccessDecision:
    allowed: bool
    reason: str = ""


class RobotsPolicyChecker(Protocol):
    """Collaborator interface queried before every fetch."""

    async def check_access(self, url: str) -> AccessDecision:
        ...


class RobotsChecker:
    """robots.txt checker with a per-host cache.

    A missing or unreachable robots.txt allows crawling (fail open); an
    explicit Disallow for our user agent blocks it.
    """

    def __init__(
        self,
        user_agent: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ):
        self.user_agent = user_agent or settings.SCRAPER_USER_AGENT
        self._http_client = http_client
        self._timeout = timeout
        # One load task per host; concurrent first callers await the same fetch
        self._cache: Dict[str, "asyncio.Task[Optional[RobotFileParser]]"] = {}

    async def check_access(self, url: str) -> AccessDecision:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return AccessDecision(allowed=False, reason="invalid url")

        base_url = f"{parsed.scheme}://{parsed.netloc}"
        task = self._cache.get(base_url)
        if task is None:
            task = asyncio.ensure_future(self._load(base_url))
            self._cache[base_url] = task
        try:
            parser = await task
        except Exception:
            self._cache.pop(base_url, None)
            raise
        if parser is None:
            return AccessDecision(allowed=True, reason="no robots.txt")

        allowed = parser.can_fetch(self.user_agent, url)
        if not allowed:
            logger.info("robots_disallowed", url=url, user_agent=self.user_agent)
        return AccessDecision(allowed=allowed, reason="" if allowed else "disallowed by robots.txt")

    async def _load(self, base_url: str) -> Optional[RobotFileParser]:
        robots_url = f"{base_url}/robots.txt"
        try:
            if self._http_client is not None:
                response = await self._http_client.get(
                    robots_url, headers={"User-Agent": self.user_agent}
                )
            else:
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self._timeout),
                    headers={"User-Agent": self.user_agent},
                    follow_redirects=True,
                ) as client:
                    response = await client.get(robots_url)
        except httpx.HTTPError as e:
            logger.warning("robots_fetch_failed", url=robots_url, error=str(e))
            return None

        if response.status_code != 200:
            return None

        parser = RobotFileParser()
        parser.set_url(robots_url)
        parser.parse(response.text.splitlines())
        return parser

    def clear_cache(self) -> None:
        self._cache.clear()


class AllowAllChecker:
    """Checker that permits everything; for local runs against fixtures."""

    async def check_access(self, url: str) -> AccessDecision:
        return AccessDecision(allowed=True)
