"""Popup, modal and overlay dismissal.

``dismiss_one`` performs at most one action per call, trying the ordered
strategies in ``heuristics.DISMISS_STRATEGIES``: close buttons, dismiss-word
buttons, floating banners, "x" glyphs, then overlay removal. Repeating until
the page is clear is the job of ``clear_all`` and ``wait_until_clear``.
"""

import time
from pathlib import Path

import structlog
from playwright.async_api import Page

from portal_pilot.browser.evaluator import PageInspector, save_screenshot
from portal_pilot.browser.heuristics import (
    DISMISS_STRATEGIES,
    DismissStrategy,
    forced_removal_query,
    select_forced_removals,
)
from portal_pilot.browser.models import DismissResult, ElementScan
from portal_pilot.browser.scripts import (
    ACT_ON_ELEMENT,
    COLLECT_ELEMENTS,
    RELEASE_SCROLL_LOCK,
    REMOVE_ELEMENTS,
)
from portal_pilot.rules import HeuristicRules

logger = structlog.get_logger(__name__)


def _clip_ms(wait_ms: int, deadline: float | None) -> int:
    if deadline is None:
        return wait_ms
    return max(0, min(wait_ms, int((deadline - time.monotonic()) * 1000)))


class PopupDismisser:
    """Clears popups from a page, one element at a time.

    Attributes:
        inspector: PageInspector used to re-check for popups.
        rules: Heuristic tables shared with the inspector.
        strategies: Ordered dismissal strategies.
    """

    def __init__(
        self,
        inspector: PageInspector | None = None,
        rules: HeuristicRules | None = None,
        strategies: list[DismissStrategy] | None = None,
    ) -> None:
        self.inspector = inspector or PageInspector(rules)
        self.rules = self.inspector.rules
        self.strategies = strategies or DISMISS_STRATEGIES

    async def dismiss_one(self, page: Page) -> DismissResult:
        """Dismiss a single popup element.

        Args:
            page: The page to act on.

        Returns:
            DismissResult describing the strategy that acted, or
            ``clicked=False`` if nothing qualified.
        """
        dismissal = self.rules.dismissal
        for strategy in self.strategies:
            try:
                raw = await page.evaluate(COLLECT_ELEMENTS, strategy.query(dismissal))
                choice = strategy.choose(ElementScan.model_validate(raw), dismissal)
                if choice is None:
                    continue

                acted = await page.evaluate(
                    ACT_ON_ELEMENT, {"ref": choice.ref, "action": choice.action}
                )
            except Exception as e:
                logger.debug("dismiss_strategy_failed", strategy=strategy.tag, error=str(e))
                continue

            if not acted:
                logger.debug("dismiss_target_detached", strategy=strategy.tag)
                continue

            await self.release_scroll_lock(page)
            return DismissResult(clicked=True, what=choice.what, text=choice.text)

        return DismissResult(clicked=False)

    async def release_scroll_lock(self, page: Page) -> bool:
        """Clear an inline ``overflow: hidden`` left on body or html by a popup."""
        try:
            released = await page.evaluate(RELEASE_SCROLL_LOCK)
        except Exception as e:
            logger.debug("scroll_unlock_failed", error=str(e))
            return False
        if released:
            logger.info("scroll_lock_released")
        return bool(released)

    async def force_remove_overlays(self, page: Page) -> int:
        """Remove every fixed element large enough to block the page.

        Returns:
            Number of elements removed (0 on failure).
        """
        dismissal = self.rules.dismissal
        try:
            raw = await page.evaluate(COLLECT_ELEMENTS, forced_removal_query(dismissal))
            refs = select_forced_removals(ElementScan.model_validate(raw), dismissal)
            if not refs:
                return 0
            removed = await page.evaluate(REMOVE_ELEMENTS, refs)
        except Exception as e:
            logger.debug("force_remove_failed", error=str(e))
            return 0

        logger.info("overlays_force_removed", count=removed)
        if removed:
            await self.release_scroll_lock(page)
        return int(removed or 0)

    async def clear_all(
        self,
        page: Page,
        screenshots_dir: str | Path | None = None,
        *,
        max_attempts: int = 6,
        wait_ms: int = 3000,
        deadline: float | None = None,
    ) -> int:
        """Dismiss popups one at a time until the page is clear.

        Waits ``wait_ms`` after each dismissal for animations to finish and
        follow-up popups to appear. If a popup is detected but no strategy
        can act on it, blocking overlays are force-removed once and the loop
        stops.

        Args:
            page: The page to clear.
            screenshots_dir: Optional directory for post-dismiss screenshots.
            max_attempts: Upper bound on dismiss attempts.
            wait_ms: Pause after each dismissal.
            deadline: Optional ``time.monotonic()`` bound. No attempt starts
                after it and every pause is clipped to it.

        Returns:
            Number of popups dismissed.
        """
        total = 0
        for attempt in range(max_attempts):
            if deadline is not None and time.monotonic() >= deadline:
                logger.info("popup_clearing_out_of_time", dismissed=total)
                break

            if not await self.inspector.has_popup(page, f"popup-check-{attempt}"):
                logger.info("page_clear", dismissed=total)
                break

            result = await self.dismiss_one(page)
            if result.clicked:
                total += 1
                logger.info("popup_dismissed", count=total, what=result.what, text=result.text)
                await page.wait_for_timeout(_clip_ms(wait_ms, deadline))
                if screenshots_dir:
                    await save_screenshot(page, screenshots_dir, f"dismiss-{total}")
            else:
                logger.info("popup_undismissable_removing_overlays")
                await self.force_remove_overlays(page)
                await page.wait_for_timeout(_clip_ms(wait_ms, deadline))
                break

        return total

    async def wait_until_clear(
        self,
        page: Page,
        screenshots_dir: str | Path | None = None,
        *,
        timeout_ms: int = 30000,
        check_interval_ms: int = 2000,
    ) -> bool:
        """Keep checking and clearing until no popup blocks the page.

        Returns:
            True once the page is clear, False on timeout or page failure.
        """
        deadline = time.monotonic() + timeout_ms / 1000

        try:
            while time.monotonic() < deadline:
                state = await self.inspector.evaluate(page, "clear-check", screenshots_dir)
                if not state.has_popup:
                    logger.info("page_is_clear")
                    return True

                logger.info("popup_still_present", popup_rule=state.popup_rule)
                await self.clear_all(page, screenshots_dir, deadline=deadline)
                await page.wait_for_timeout(_clip_ms(check_interval_ms, deadline))
        except Exception as e:
            logger.warning("wait_until_clear_failed", error=str(e))
            return False

        logger.info("wait_until_clear_timed_out", timeout_ms=timeout_ms)
        return False
