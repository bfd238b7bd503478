"""Form filling and submit-button clicking."""

from typing import Iterable

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from portal_pilot.browser.models import FieldSpec, FillResult
from portal_pilot.rules import HeuristicRules, load_rules

logger = structlog.get_logger(__name__)

FIELD_WAIT_MS = 3000


def build_candidate_selectors(field: FieldSpec) -> list[str]:
    """Selectors to try for a field, most specific first.

    The label-proximity selector is not included; it is only tried after
    every candidate here has failed.
    """
    selectors = []
    if field.selector:
        selectors.append(field.selector)
    if field.input_type:
        selectors.append(f'input[type="{field.input_type}"]')
    if field.name:
        selectors.append(f'input[name*="{field.name}" i]')
        selectors.append(f'input[id*="{field.name}" i]')
        selectors.append(f'input[placeholder*="{field.name}" i]')
    return selectors


def label_selector(label: str) -> str:
    return f'input:near(:text("{label}"))'


class FormFiller:
    """Fills inputs and clicks submit buttons on a page.

    Attributes:
        rules: Heuristic tables (submit selectors and labels).
    """

    def __init__(self, rules: HeuristicRules | None = None) -> None:
        self.rules = rules or load_rules()

    async def _wait_visible(self, page: Page, selector: str, timeout_ms: int):
        try:
            return await page.wait_for_selector(selector, timeout=timeout_ms, state="visible")
        except PlaywrightError:
            return None

    async def _fill_element(self, page: Page, element, value: str, delay_ms: int) -> bool:
        # triple click selects whatever is already in the input
        await element.click(click_count=3)
        await page.wait_for_timeout(delay_ms)
        await element.fill(value)
        await page.wait_for_timeout(delay_ms)
        try:
            return await element.input_value() == value
        except PlaywrightError:
            return False

    async def fill_form(
        self,
        page: Page,
        fields: Iterable[FieldSpec],
        *,
        delay_ms: int = 500,
    ) -> list[FillResult]:
        """Fill visible form fields on the current page.

        Args:
            page: The page holding the form.
            fields: Field descriptors, filled in order.
            delay_ms: Settle delay before and after each fill.

        Returns:
            One FillResult per field. Missing fields are reported with
            ``filled=False``; deciding whether that is fatal is up to the caller.
        """
        results = []

        for field in fields:
            result = FillResult(field=field)
            candidates = [(sel, sel) for sel in build_candidate_selectors(field)]
            if field.label:
                candidates.append((label_selector(field.label), f"label:{field.label}"))

            for selector, used in candidates:
                element = await self._wait_visible(page, selector, FIELD_WAIT_MS)
                if element is None:
                    continue
                try:
                    result.verified = await self._fill_element(page, element, field.value, delay_ms)
                except PlaywrightError as e:
                    logger.debug("field_fill_failed", selector=used, error=str(e))
                    continue
                result.filled = True
                result.selector = used
                logger.info("field_filled", selector=used, verified=result.verified)
                break

            if not result.filled:
                logger.info(
                    "field_not_found",
                    selector=field.selector,
                    type=field.input_type,
                    name=field.name,
                    label=field.label,
                )
            results.append(result)

        return results

    async def click_submit(
        self,
        page: Page,
        *,
        labels: list[str] | None = None,
        selectors: list[str] | None = None,
    ) -> bool:
        """Click a submit/action button.

        Explicit selectors are tried first, then buttons and links whose text
        contains one of ``labels``, in order.

        Returns:
            True if a button was clicked.
        """
        submit = self.rules.submit
        labels = labels or submit.labels
        selectors = selectors or submit.selectors

        candidates = [(sel, submit.selector_timeout_ms, sel) for sel in selectors]
        candidates += [
            (f'button:has-text("{label}"), a:has-text("{label}")', submit.label_timeout_ms, label)
            for label in labels
        ]

        for selector, timeout_ms, name in candidates:
            button = await self._wait_visible(page, selector, timeout_ms)
            if button is None:
                continue
            try:
                await button.click()
            except PlaywrightError as e:
                logger.debug("submit_click_failed", button=name, error=str(e))
                continue
            logger.info("submit_clicked", button=name)
            return True

        logger.info("submit_button_not_found")
        return False
