"""
Scoped headless browser session for the Cask Watchtower system.

One session is acquired per cycle with ``async with`` and is closed on
every exit path. It owns a single Firefox tab that all crawling goes
through sequentially.
"""

import asyncio
import logging
import re
from typing import Any, Callable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from ..models.config import BrowserConfig

logger = logging.getLogger(__name__)

ACCEPT_COOKIES_PATTERN = re.compile(
    r"accept all cookies|accept all|accept cookies|accept", re.IGNORECASE
)


class NavigationError(Exception):
    """A page failed to load or never showed the expected marker."""


class BrowserSession:
    """Exclusively owned browser tab, released on every exit path."""

    def __init__(
        self,
        config: BrowserConfig,
        playwright_factory: Callable[[], Any] = async_playwright,
    ):
        """
        Initialize browser session.

        Args:
            config: Browser configuration
            playwright_factory: Callable returning a Playwright context manager
        """
        self.config = config
        self._playwright_factory = playwright_factory
        self._playwright_manager = None
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    async def __aenter__(self) -> "BrowserSession":
        logger.info("Launching browser...")
        try:
            self._playwright_manager = self._playwright_factory()
            self._playwright = await self._playwright_manager.start()
            self._browser = await self._playwright.firefox.launch(
                headless=self.config.headless,
            )
            self._context = await self._browser.new_context(
                ignore_https_errors=self.config.ignore_https_errors,
                user_agent=self.config.user_agent,
            )
            self._page = await self._context.new_page()
        except Exception:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close page, context, browser and driver, ignoring close errors."""
        for name in ("_page", "_context", "_browser"):
            resource = getattr(self, name)
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.warning(f"Error closing browser {name.strip('_')}: {e}")
            setattr(self, name, None)

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping Playwright: {e}")
            self._playwright = None
            self._playwright_manager = None
            logger.info("Browser closed")

    @property
    def is_open(self) -> bool:
        return self._page is not None

    @property
    def current_url(self) -> str:
        return self._page.url if self._page is not None else ""

    def _require_page(self):
        if self._page is None:
            raise RuntimeError("Browser session is not open")
        return self._page

    async def fetch_html(
        self, url: str, wait_for: str, timeout: float, settle_delay: float = 0.0
    ) -> str:
        """
        Navigate to a page and return its HTML once a selector is present.

        Args:
            url: Absolute URL to load
            wait_for: CSS selector that marks the page as ready
            timeout: Seconds to wait for the selector
            settle_delay: Seconds to let client-side rendering finish

        Returns:
            Page HTML

        Raises:
            NavigationError: If loading times out or the selector never appears
        """
        page = self._require_page()
        try:
            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.config.navigation_timeout * 1000,
            )
            await page.wait_for_selector(wait_for, timeout=timeout * 1000)
            if settle_delay:
                await asyncio.sleep(settle_delay)
            return await page.content()
        except PlaywrightTimeoutError as e:
            raise NavigationError(f"Timed out loading {url}: {e}") from e
        except PlaywrightError as e:
            raise NavigationError(f"Failed to load {url}: {e}") from e

    async def resolve_consent(self, start_url: str, settle_delay: float = 2.0) -> None:
        """
        Open the start page and dismiss the age gate and cookie banner.

        Missing dialogs are not errors. A start page that fails to load
        raises NavigationError.
        """
        page = self._require_page()
        try:
            await page.goto(
                start_url,
                wait_until="domcontentloaded",
                timeout=self.config.navigation_timeout * 1000,
            )
        except (PlaywrightTimeoutError, PlaywrightError) as e:
            raise NavigationError(f"Failed to open {start_url}: {e}") from e

        await asyncio.sleep(settle_delay)

        try:
            await page.locator('label[for="ageCheckbox"]').click(timeout=3000)
            logger.info("Age verification checked")
        except (PlaywrightTimeoutError, PlaywrightError):
            logger.info("No age verification found or already confirmed")

        try:
            await page.get_by_role("button", name=ACCEPT_COOKIES_PATTERN).first.click(
                timeout=3000
            )
            logger.info("Cookie consent accepted")
        except (PlaywrightTimeoutError, PlaywrightError):
            logger.info("No cookie modal found or already accepted")

        await asyncio.sleep(settle_delay / 2)

