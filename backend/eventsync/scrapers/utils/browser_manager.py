"""Playwright browser lifecycle for JavaScript-rendered sources.

BrowserPool owns one headless Chromium process per application. It is
launched lazily on first use behind a lock, so concurrent first callers
share a single launch, and it is shut down explicitly via stop().
"""

import asyncio
from typing import Any, Callable, Dict, Optional

import structlog
from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from eventsync.config import settings
from eventsync.scrapers.utils.user_agents import get_desktop_user_agent

logger = structlog.get_logger()


class BrowserPool:
    """Lazily started, shared headless browser with one context per platform.

    Creates contexts with:
    - User-agent rotation per context
    - Stealth JS injection to mask automation signals
    - Resource blocking (images/fonts) for faster page loads
    """

    def __init__(
        self,
        headless: bool = True,
        block_resources: bool = True,
        playwright_factory: Optional[Callable[[], Any]] = None,
    ):
        self._headless = headless
        self._block_resources = block_resources
        self._playwright_factory = playwright_factory or async_playwright
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()
        self._context_lock = asyncio.Lock()
        self._contexts: Dict[str, BrowserContext] = {}
        self.launch_count = 0

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def start(self) -> Browser:
        """Launch the browser if it is not running yet (single-flight)."""
        if self._browser is not None and self._browser.is_connected():
            return self._browser

        async with self._lock:
            # Another caller may have launched while we waited for the lock
            if self._browser is not None and self._browser.is_connected():
                return self._browser

            if self._playwright is None:
                self._playwright = await self._playwright_factory().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--disable-dev-shm-usage",
                    "--disable-setuid-sandbox",
                    "--no-sandbox",
                ],
            )
            self._contexts.clear()
            self.launch_count += 1
            logger.info("browser_started", headless=self._headless, launch_count=self.launch_count)
            return self._browser

    async def stop(self) -> None:
        """Close all contexts and the browser."""
        async with self._lock:
            for name, ctx in self._contexts.items():
                try:
                    await ctx.close()
                except Exception as e:
                    logger.debug("browser_context_close_failed", name=name, error=str(e))
            self._contexts.clear()

            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
            logger.info("browser_stopped")

    async def get_context(self, name: str = "default") -> BrowserContext:
        """Get or create a named browser context.

        Each adapter uses its platform key as the context name so contexts
        are reused within a platform but isolated between platforms.
        """
        browser = await self.start()
        if name in self._contexts:
            return self._contexts[name]

        async with self._context_lock:
            if name in self._contexts:
                return self._contexts[name]
            return await self._create_context(browser, name)

    async def _create_context(self, browser: Browser, name: str) -> BrowserContext:
        context = await browser.new_context(
            user_agent=get_desktop_user_agent(),
            viewport={"width": 1920, "height": 1080},
            locale="en-IN",
            timezone_id=settings.SOURCE_TIMEZONE,
            java_script_enabled=True,
        )
        await context.add_init_script(STEALTH_JS)

        if self._block_resources:
            await context.route(
                "**/*.{png,jpg,jpeg,gif,webp,svg,woff,woff2,ttf,eot}",
                lambda route: route.abort(),
            )

        self._contexts[name] = context
        logger.info("browser_context_created", name=name)
        return context

    async def new_page(self, name: str = "default") -> Page:
        """Convenience: get context and open a new page."""
        ctx = await self.get_context(name)
        return await ctx.new_page()

    async def __aenter__(self) -> "BrowserPool":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()


def create_browser_pool() -> BrowserPool:
    """Build a BrowserPool from application settings."""
    return BrowserPool(headless=settings.BROWSER_HEADLESS)


# Minimal stealth JS to mask automation signals
STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['en-IN', 'en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
window.chrome = { runtime: {} };
"""
