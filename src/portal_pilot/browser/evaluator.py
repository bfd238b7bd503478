"""Page state evaluation.

PageInspector reads one snapshot of the live page and classifies it
(popup present, login/password fields, dollar amounts, login/dashboard/2FA
URL). It never raises: a failed evaluation produces a degraded PageState.
"""

import time
from pathlib import Path

import structlog
from playwright.async_api import Page

from portal_pilot.browser.heuristics import build_page_state, snapshot_query
from portal_pilot.browser.models import PageSnapshot, PageState
from portal_pilot.browser.scripts import PAGE_SNAPSHOT
from portal_pilot.rules import HeuristicRules, load_rules

logger = structlog.get_logger(__name__)


def screenshot_path(directory: str | Path, stem: str) -> Path:
    """Build ``<directory>/<stem>-<epoch ms>.png``, creating the directory."""
    folder = Path(directory)
    folder.mkdir(parents=True, exist_ok=True)
    return folder / f"{stem}-{int(time.time() * 1000)}.png"


async def save_screenshot(page: Page, directory: str | Path, stem: str) -> str | None:
    """Save a viewport screenshot, returning its path or None on failure."""
    path = screenshot_path(directory, stem)
    try:
        await page.screenshot(path=str(path), full_page=False)
    except Exception as e:
        logger.debug("screenshot_failed", path=str(path), error=str(e))
        return None
    return str(path)


def current_url(page: Page) -> str:
    try:
        return page.url
    except Exception:
        return ""


class PageInspector:
    """Produces PageState snapshots of a live page.

    Attributes:
        rules: Heuristic tables used for classification.
    """

    def __init__(self, rules: HeuristicRules | None = None) -> None:
        self.rules = rules or load_rules()

    async def evaluate(
        self,
        page: Page,
        label: str = "eval",
        screenshots_dir: str | Path | None = None,
    ) -> PageState:
        """Screenshot (optionally) and classify the current page.

        Args:
            page: The page to inspect.
            label: Short tag used in logs and the screenshot file name.
            screenshots_dir: If given, a viewport screenshot is written there.

        Returns:
            A fresh PageState. Evaluation failures yield a degraded state
            with every flag False.
        """
        shot = None
        if screenshots_dir:
            shot = await save_screenshot(page, screenshots_dir, label)

        try:
            raw = await page.evaluate(PAGE_SNAPSHOT, snapshot_query(self.rules))
            snapshot = PageSnapshot.model_validate(raw)
        except Exception as e:
            state = PageState.degraded(current_url(page), str(e))
            state.screenshot = shot
            logger.warning(
                "page_evaluation_degraded",
                label=label,
                url=state.url[:80],
                error=str(e),
            )
            return state

        state = build_page_state(snapshot, self.rules, screenshot=shot)
        logger.info(
            "page_evaluated",
            label=label,
            url=state.url[:80],
            popup=state.has_popup,
            popup_rule=state.popup_rule,
            email=state.has_email_field,
            password=state.has_password_field,
            dollars=state.has_dollar_amounts,
            login=state.is_login,
            two_factor=state.is_2fa,
            buttons=state.button_labels,
            screenshot=shot,
        )
        return state

    async def has_popup(self, page: Page, label: str = "popup-check") -> bool:
        """Quick popup check without a screenshot."""
        state = await self.evaluate(page, label)
        return state.has_popup
