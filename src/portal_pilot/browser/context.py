"""Browser context management with a Playwright persistent context.

BrowserManager owns one Chromium persistent context for the duration of a
run. Each run creates its own manager (``async with BrowserManager(...)``);
nothing is shared between runs.
"""

import asyncio
from pathlib import Path

import structlog
from playwright.async_api import (
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)

from portal_pilot.config import Settings
from portal_pilot.errors import BrowserLaunchError

logger = structlog.get_logger(__name__)

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-first-run",
    "--no-default-browser-check",
]


class BrowserManager:
    """Launches and tears down a persistent Chromium context.

    Usage:
        async with BrowserManager(settings) as browser:
            page = await browser.new_page()
            ...
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._playwright: Playwright | None = None
        self._context: BrowserContext | None = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "BrowserManager":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    async def initialize(self) -> None:
        """Start Playwright and launch the persistent context.

        Raises:
            BrowserLaunchError: If the browser fails to launch.
        """
        async with self._lock:
            if self._context is not None:
                logger.info("browser_already_initialized")
                return

            profile_dir = Path(self.settings.browser_profile_dir)
            profile_dir.mkdir(parents=True, exist_ok=True)

            try:
                logger.info("initializing_playwright")
                self._playwright = await async_playwright().start()

                logger.info(
                    "launching_persistent_context",
                    user_data_dir=str(profile_dir),
                    headless=self.settings.browser_headless,
                )
                self._context = await self._playwright.chromium.launch_persistent_context(
                    user_data_dir=str(profile_dir),
                    headless=self.settings.browser_headless,
                    args=LAUNCH_ARGS,
                    ignore_default_args=["--enable-automation"],
                    viewport={
                        "width": self.settings.browser_viewport_width,
                        "height": self.settings.browser_viewport_height,
                    },
                    timeout=30000,
                )
                logger.info(
                    "browser_initialized_successfully",
                    context_pages=len(self._context.pages),
                )

            except Exception as e:
                logger.error("browser_initialization_failed", error=str(e), exc_info=True)
                if self._playwright is not None:
                    await self._playwright.stop()
                    self._playwright = None
                raise BrowserLaunchError(f"Failed to initialize browser: {e}") from e

    async def new_page(self) -> Page:
        """Return the context's first page, or a new one.

        Raises:
            BrowserLaunchError: If the context is not running.
        """
        if self._context is None:
            raise BrowserLaunchError("Browser context is not available")

        if self._context.pages:
            return self._context.pages[0]

        page = await self._context.new_page()
        logger.debug("new_page_created", total_pages=len(self._context.pages))
        return page

    async def shutdown(self) -> None:
        """Close the context and stop Playwright."""
        async with self._lock:
            if self._context is not None:
                logger.info("closing_browser_context")
                try:
                    await self._context.close()
                except Exception as e:
                    logger.warning("error_closing_context", error=str(e))
                finally:
                    self._context = None

            if self._playwright is not None:
                logger.info("stopping_playwright")
                try:
                    await self._playwright.stop()
                except Exception as e:
                    logger.warning("error_stopping_playwright", error=str(e))
                finally:
                    self._playwright = None

            logger.info("browser_shutdown_complete")
