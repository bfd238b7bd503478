"""Scroll capture and multi-page visiting.

Lazy-loaded dashboards only render what has been scrolled into view, so each
page is walked top to bottom in viewport steps, capturing a screenshot and
the page text at every stop. The longest text seen is kept as the most
fully rendered version of the page.
"""

import re
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable

import structlog
from playwright.async_api import Page

from portal_pilot.browser.evaluator import PageInspector, screenshot_path
from portal_pilot.browser.models import CaptureResult, VisitResult, VisitTarget
from portal_pilot.browser.popups import PopupDismisser
from portal_pilot.browser.scripts import BODY_TEXT, SCROLL_BY_VIEWPORT, SCROLL_TO_TOP
from portal_pilot.rules import HeuristicRules

logger = structlog.get_logger(__name__)

ScrapeFn = Callable[[Page], Awaitable[Any]]

SCROLL_FRACTION = 0.8
READY_TEXT_CHARS = 500
READY_DOLLAR_PATTERN = re.compile(r"\$[\d,]{2,}")
DOLLAR_VALUE_PATTERN = re.compile(r"\$([\d,]+(?:\.\d+)?)")
READY_POLL_MS = 2000
READY_SETTLE_MS = 3000
NAVIGATION_TIMEOUT_MS = 60000


async def read_body_text(page: Page) -> str:
    """Visible text of the page body, or "" if it cannot be read."""
    try:
        return await page.evaluate(BODY_TEXT) or ""
    except Exception as e:
        logger.debug("body_text_unavailable", error=str(e))
        return ""


def parse_dollar_values(text: str) -> list[float]:
    """Distinct positive dollar amounts in ``text``, largest first.

    "$1,234.56" becomes 1234.56; amounts that parse to zero are dropped.
    """
    values = set()
    for match in DOLLAR_VALUE_PATTERN.finditer(text):
        cleaned = match.group(1).replace(",", "")
        try:
            value = float(cleaned)
        except ValueError:
            logger.debug("dollar_parse_failed", text=match.group(0))
            continue
        if value > 0:
            values.add(value)
    return sorted(values, reverse=True)


async def collect_dollar_values(page: Page) -> dict[str, Any]:
    """Generic scraper: every dollar amount visible on the page."""
    values = parse_dollar_values(await read_body_text(page))
    return {"dollar_values": values, "count": len(values)}


class PageVisitor:
    """Visits pages and captures their rendered content.

    Attributes:
        dismisser: Clears popups before each capture.
    """

    def __init__(
        self,
        dismisser: PopupDismisser | None = None,
        rules: HeuristicRules | None = None,
    ) -> None:
        self.dismisser = dismisser or PopupDismisser(PageInspector(rules))

    async def scroll_and_capture(
        self,
        page: Page,
        *,
        screenshots_dir: str | Path,
        page_name: str = "page",
        scroll_count: int = 5,
        scroll_wait_ms: int = 2500,
    ) -> CaptureResult:
        """Scroll down in steps, screenshotting and reading text at each stop.

        Args:
            page: The page to capture.
            screenshots_dir: Directory for the screenshots (required).
            page_name: Prefix for screenshot file names.
            scroll_count: Number of scroll steps after the top capture.
            scroll_wait_ms: Wait after each scroll for content to render.

        Returns:
            CaptureResult with ``scroll_count + 1`` screenshot paths and the
            longest captured text.

        Raises:
            ValueError: If ``screenshots_dir`` is empty.
        """
        if not screenshots_dir:
            raise ValueError("screenshots_dir is required")

        screenshots: list[str] = []
        texts: list[str] = []

        top = screenshot_path(screenshots_dir, f"{page_name}-top")
        await page.screenshot(path=str(top), full_page=False)
        screenshots.append(str(top))
        texts.append(await read_body_text(page))
        logger.info("capture_top", page=page_name, screenshot=str(top))

        for i in range(1, scroll_count + 1):
            await page.evaluate(SCROLL_BY_VIEWPORT, SCROLL_FRACTION)
            await page.wait_for_timeout(scroll_wait_ms)

            shot = screenshot_path(screenshots_dir, f"{page_name}-scroll{i}")
            await page.screenshot(path=str(shot), full_page=False)
            screenshots.append(str(shot))
            texts.append(await read_body_text(page))
            logger.debug("capture_scroll", page=page_name, step=i, total=scroll_count)

        await page.evaluate(SCROLL_TO_TOP)
        await page.wait_for_timeout(500)

        full_text = max(texts, key=len, default="")
        logger.info(
            "capture_complete",
            page=page_name,
            screenshots=len(screenshots),
            text_chars=len(full_text),
        )
        return CaptureResult(screenshots=screenshots, full_text=full_text)

    async def wait_for_content(self, page: Page, timeout_ms: int) -> bool:
        """Poll until the page shows substantial text or a dollar amount.

        Returns:
            True if content appeared before ``timeout_ms``.
        """
        deadline = time.monotonic() + timeout_ms / 1000
        while time.monotonic() < deadline:
            text = await read_body_text(page)
            if len(text) > READY_TEXT_CHARS or READY_DOLLAR_PATTERN.search(text):
                return True
            remaining_ms = int((deadline - time.monotonic()) * 1000)
            await page.wait_for_timeout(max(0, min(READY_POLL_MS, remaining_ms)))
        return False

    async def visit_pages(
        self,
        page: Page,
        targets: Iterable[VisitTarget],
        *,
        screenshots_dir: str | Path,
        scroll_count: int = 5,
        wait_for_data_ms: int = 45000,
        scrape_fn: ScrapeFn | None = None,
    ) -> list[VisitResult]:
        """Visit each target: wait for content, clear popups, capture, scrape.

        A failure on one target is recorded on its result and the batch
        moves on. ``scrape_fn`` errors leave ``scrape_data`` as None.

        Raises:
            ValueError: If ``screenshots_dir`` is empty.
        """
        if not screenshots_dir:
            raise ValueError("screenshots_dir is required")

        results = []

        for target in targets:
            result = VisitResult(name=target.name, url=target.url)
            try:
                logger.info("visiting_page", name=target.name, desc=target.desc, url=target.url)
                await page.goto(
                    target.url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS
                )

                ready = await self.wait_for_content(page, wait_for_data_ms)
                if not ready:
                    logger.warning("page_content_not_ready", name=target.name)
                # extra settle time for late XHR
                await page.wait_for_timeout(READY_SETTLE_MS)

                await self.dismisser.clear_all(page, screenshots_dir)

                capture = await self.scroll_and_capture(
                    page,
                    screenshots_dir=screenshots_dir,
                    page_name=target.name,
                    scroll_count=scroll_count,
                )
                result.screenshots = capture.screenshots
                result.text = capture.full_text

                if scrape_fn is not None:
                    try:
                        result.scrape_data = await scrape_fn(page)
                    except Exception as e:
                        result.scrape_error = str(e)
                        logger.warning("page_scrape_failed", name=target.name, error=str(e)[:80])

                logger.info(
                    "page_visited",
                    name=target.name,
                    screenshots=len(result.screenshots),
                    scraped=result.scrape_data is not None,
                )
            except Exception as e:
                result.error = str(e)
                logger.error("page_visit_failed", name=target.name, error=str(e)[:100])

            results.append(result)

        return results
