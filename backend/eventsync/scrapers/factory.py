"""Factory for creating and wiring event adapter instances."""

from typing import Dict, List, Optional, Type

import httpx
import structlog

from eventsync.config import settings
from eventsync.scrapers.base import BaseBrowserAdapter, BaseEventAdapter, BaseHTMLAdapter
from eventsync.scrapers.utils.browser_manager import BrowserPool, create_browser_pool
from eventsync.scrapers.utils.rate_queue import RateLimitedQueue, create_default_queue
from eventsync.scrapers.utils.robots import RobotsChecker, RobotsPolicyChecker
from eventsync.scrapers.utils.scraper_logger import ScraperLogger


logger = structlog.get_logger(__name__)


class AdapterFactory:
    """Factory for creating and configuring adapter instances.

    Owns the resources adapters share: the per-platform request queue, the
    robots checker, the scraping activity log, one httpx client and the
    headless browser pool. The client and pool are created lazily and
    released by aclose().
    """

    def __init__(
        self,
        request_queue: Optional[RateLimitedQueue] = None,
        robots_checker: Optional[RobotsPolicyChecker] = None,
        scraper_logger: Optional[ScraperLogger] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        browser_pool: Optional[BrowserPool] = None,
    ):
        self.request_queue = request_queue or create_default_queue()
        self.scraper_logger = scraper_logger or ScraperLogger()
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self.robots_checker = robots_checker or RobotsChecker(http_client=http_client)
        self._browser_pool = browser_pool
        self._owns_browser_pool = browser_pool is None

        # Registry of adapter classes
        self._adapter_registry: Dict[str, Type[BaseEventAdapter]] = {}

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.HTTP_TIMEOUT_SECONDS),
                follow_redirects=True,
            )
        return self._http_client

    @property
    def browser_pool(self) -> BrowserPool:
        if self._browser_pool is None:
            self._browser_pool = create_browser_pool()
        return self._browser_pool

    def register_adapter(self, platform: str, adapter_class: Type[BaseEventAdapter]) -> None:
        """Register an adapter class for a platform.

        Args:
            platform: Platform key (e.g., "allevents")
            adapter_class: Adapter class (must inherit from BaseEventAdapter)
        """
        if not issubclass(adapter_class, BaseEventAdapter):
            raise ValueError(f"Adapter class must inherit from BaseEventAdapter: {adapter_class}")

        self._adapter_registry[platform] = adapter_class
        logger.info("adapter_registered", platform=platform, adapter_type=adapter_class.adapter_type)

    def create_adapter(self, platform: str) -> Optional[BaseEventAdapter]:
        """Create and configure an adapter instance.

        Returns:
            Configured adapter instance, or None if not registered
        """
        adapter_class = self._adapter_registry.get(platform)
        if not adapter_class:
            logger.warning("adapter_not_found", platform=platform)
            return None

        adapter = adapter_class()

        # Inject dependencies
        adapter.request_queue = self.request_queue
        adapter.robots_checker = self.robots_checker
        adapter.scraper_logger = self.scraper_logger

        if isinstance(adapter, BaseHTMLAdapter):
            adapter.http_client = self.http_client
        if isinstance(adapter, BaseBrowserAdapter):
            adapter.browser_pool = self.browser_pool
            adapter.page_timeout = settings.PAGE_TIMEOUT_SECONDS
            adapter.selector_timeout = settings.SELECTOR_TIMEOUT_SECONDS

        return adapter

    def create_adapters(self, platforms: Optional[List[str]] = None) -> List[BaseEventAdapter]:
        """Create adapters for the given platforms (default: every registered one).

        Unknown platforms are skipped with a warning.
        """
        names = platforms if platforms is not None else self.get_registered_platforms()
        adapters = [self.create_adapter(name) for name in names]
        return [a for a in adapters if a is not None]

    def get_registered_platforms(self) -> List[str]:
        return list(self._adapter_registry.keys())

    def has_adapter(self, platform: str) -> bool:
        return platform in self._adapter_registry

    async def aclose(self) -> None:
        """Release queues, the HTTP client and the browser."""
        await self.request_queue.aclose()
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
        if self._owns_browser_pool and self._browser_pool is not None:
            await self._browser_pool.stop()
            self._browser_pool = None

    async def __aenter__(self) -> "AdapterFactory":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
