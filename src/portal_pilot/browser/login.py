"""Visual login flow.

The flow is a polling state machine. ``decide`` is a pure function from a
fresh PageState plus the session counters to the next LoginStep; the
LoginOrchestrator executes the step's effect (clear popups, fill fields,
submit, wait for a human) and sleeps for the step's settle time.

Priority order matters: dashboard and popup checks come before any form
filling so credentials are never re-submitted on an authenticated session,
and 2FA is checked before fields to avoid refilling a challenge page.
"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from pydantic import SecretStr

from portal_pilot.browser.evaluator import PageInspector
from portal_pilot.browser.forms import FormFiller
from portal_pilot.browser.models import (
    FieldSpec,
    LoginOutcome,
    LoginPhase,
    LoginResult,
    PageState,
)
from portal_pilot.browser.popups import PopupDismisser
from portal_pilot.rules import HeuristicRules

logger = structlog.get_logger(__name__)

SUCCESS_PHASES = frozenset({LoginPhase.CHECK_CUSTOM_DONE, LoginPhase.DASHBOARD_WITH_DATA})

PHASE_WAIT_MS: dict[LoginPhase, int] = {
    LoginPhase.DASHBOARD_LOADING: 5000,
    LoginPhase.POPUP_PRESENT: 2000,
    LoginPhase.AWAITING_2FA: 10000,
    LoginPhase.FILL_EMAIL: 5000,
    LoginPhase.FILL_PASSWORD: 5000,
    LoginPhase.AUTOFILL_SUBMIT: 5000,
    LoginPhase.MANUAL_WAIT: 10000,
    LoginPhase.UNRECOGNIZED: 5000,
}

NAVIGATION_TIMEOUT_MS = 60000
POPUP_SETTLE_MS = 3000
PRE_SUBMIT_MS = 1000


@dataclass
class LoginSession:
    """Counters for one login call. Created at entry, dropped at return."""

    deadline: float
    email_entered: bool = False
    password_entered: bool = False
    awaited_two_factor: bool = False
    iterations: int = 0

    @classmethod
    def start(cls, timeout_ms: int) -> "LoginSession":
        return cls(deadline=time.monotonic() + timeout_ms / 1000)

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.deadline

    def remaining_ms(self) -> int:
        return max(0, int((self.deadline - time.monotonic()) * 1000))


@dataclass(frozen=True)
class LoginStep:
    phase: LoginPhase
    wait_ms: int = 0

    @property
    def terminal(self) -> bool:
        return self.phase in SUCCESS_PHASES


def _select_phase(
    state: PageState,
    session: LoginSession,
    has_credentials: bool,
    custom_done: bool,
) -> LoginPhase:
    if custom_done:
        return LoginPhase.CHECK_CUSTOM_DONE
    if state.has_dollar_amounts and (state.is_dashboard or not state.is_login):
        return LoginPhase.DASHBOARD_WITH_DATA
    if state.is_dashboard and not state.has_dollar_amounts:
        return LoginPhase.DASHBOARD_LOADING
    if state.has_popup:
        return LoginPhase.POPUP_PRESENT
    if state.is_2fa:
        return LoginPhase.AWAITING_2FA
    if state.has_email_field and has_credentials and not session.email_entered:
        return LoginPhase.FILL_EMAIL
    if state.has_password_field and has_credentials and not session.password_entered:
        return LoginPhase.FILL_PASSWORD
    if (
        state.is_login
        and (state.has_email_field or state.has_password_field)
        and state.filled_input_count >= 1
    ):
        return LoginPhase.AUTOFILL_SUBMIT
    if state.is_login and not has_credentials:
        return LoginPhase.MANUAL_WAIT
    return LoginPhase.UNRECOGNIZED


def decide(
    state: PageState,
    session: LoginSession,
    *,
    has_credentials: bool,
    custom_done: bool = False,
) -> LoginStep:
    """Pick the next login step for an observed page state."""
    phase = _select_phase(state, session, has_credentials, custom_done)
    return LoginStep(phase, PHASE_WAIT_MS.get(phase, 0))


class LoginOrchestrator:
    """Drives a full login: settle, clear popups, then the decide/act loop.

    Attributes:
        inspector: Produces the PageState observed each iteration.
        dismisser: Clears popups.
        filler: Fills credentials and clicks submit.
    """

    def __init__(
        self,
        inspector: PageInspector | None = None,
        dismisser: PopupDismisser | None = None,
        filler: FormFiller | None = None,
        rules: HeuristicRules | None = None,
    ) -> None:
        self.inspector = inspector or PageInspector(rules)
        self.dismisser = dismisser or PopupDismisser(self.inspector)
        self.filler = filler or FormFiller(self.inspector.rules)

    async def login(
        self,
        page: Page,
        *,
        url: str | None = None,
        email: str | None = None,
        password: str | SecretStr | None = None,
        screenshots_dir: str | Path | None = None,
        timeout_ms: int = 600_000,
        is_logged_in: Callable[[], Awaitable[bool]] | None = None,
        submit_labels: list[str] | None = None,
        settle_ms: int = 5000,
        popup_clear_timeout_ms: int = 15000,
    ) -> LoginResult:
        """Log in visually: popups, credentials, 2FA wait, dashboard.

        Args:
            page: The page to drive.
            url: Login URL to open first. If None, starts from the current page.
            email: Email/username credential.
            password: Password credential.
            screenshots_dir: Directory for progress screenshots.
            timeout_ms: Overall deadline (default 10 minutes), counted from
                the end of navigation.
            is_logged_in: Optional async predicate checked every iteration.
            submit_labels: Submit button labels to try, in order.
            settle_ms: Initial wait for the page to render.
            popup_clear_timeout_ms: Budget for the initial popup clearing.

        Returns:
            LoginResult; ``success=False`` with the final state on timeout.

        Raises:
            playwright.async_api.Error: If navigation to ``url`` fails.
        """
        secret = password.get_secret_value() if isinstance(password, SecretStr) else password
        has_credentials = bool(email and secret)

        if url:
            logger.info("login_navigating", phase=LoginPhase.NAVIGATING.value, url=url[:80])
            await page.goto(url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)

        session = LoginSession.start(timeout_ms)

        # Phase 1: let the page settle and clear popups
        logger.info("login_settling", phase=LoginPhase.SETTLING.value, settle_ms=settle_ms)
        await self._pause(page, session, settle_ms)
        await self.inspector.evaluate(page, "initial-load", screenshots_dir)

        if not session.expired:
            logger.info("login_clearing_popups", phase=LoginPhase.CLEARING_POPUPS.value)
            await self.dismisser.clear_all(page, screenshots_dir, deadline=session.deadline)
            await self._pause(page, session, POPUP_SETTLE_MS)
            await self.dismisser.clear_all(page, screenshots_dir, deadline=session.deadline)
            cleared = await self.dismisser.wait_until_clear(
                page,
                screenshots_dir,
                timeout_ms=min(popup_clear_timeout_ms, session.remaining_ms()),
            )
            if not cleared:
                logger.warning("popups_may_still_be_present")

        # Phase 2: observe / decide / act until the deadline
        while not session.expired:
            session.iterations += 1
            state = await self.inspector.evaluate(page, "login-loop", screenshots_dir)
            custom_done = await self._check_custom(is_logged_in)
            step = decide(state, session, has_credentials=has_credentials, custom_done=custom_done)
            logger.info("login_step", phase=step.phase.value, iteration=session.iterations)

            if step.terminal:
                logger.info("login_succeeded", phase=step.phase.value, url=state.url[:80])
                return LoginResult(
                    success=True,
                    outcome=LoginOutcome.SUCCESS,
                    phase=step.phase,
                    state=state,
                    needs_2fa=session.awaited_two_factor,
                )

            await self._act(page, step, state, session, email, secret, screenshots_dir, submit_labels)
            await self._pause(page, session, step.wait_ms)

        final_state = await self.inspector.evaluate(page, "timeout", screenshots_dir)
        logger.warning(
            "login_timed_out",
            timeout_ms=timeout_ms,
            iterations=session.iterations,
            url=final_state.url[:80],
        )
        return LoginResult(
            success=False,
            outcome=LoginOutcome.TIMED_OUT,
            phase=LoginPhase.TIMEOUT,
            state=final_state,
            needs_2fa=session.awaited_two_factor,
        )

    async def _act(
        self,
        page: Page,
        step: LoginStep,
        state: PageState,
        session: LoginSession,
        email: str | None,
        password: str | None,
        screenshots_dir: str | Path | None,
        submit_labels: list[str] | None,
    ) -> None:
        phase = step.phase

        if phase in (LoginPhase.POPUP_PRESENT, LoginPhase.UNRECOGNIZED):
            await self.dismisser.clear_all(page, screenshots_dir, deadline=session.deadline)

        elif phase is LoginPhase.AWAITING_2FA:
            session.awaited_two_factor = True
            logger.info("two_factor_waiting_for_user")
            await self._bring_to_front(page)

        elif phase is LoginPhase.MANUAL_WAIT:
            logger.info("no_credentials_waiting_for_manual_login")
            await self._bring_to_front(page)

        elif phase is LoginPhase.FILL_EMAIL:
            session.email_entered = await self._fill_email(page, email or "")
            # same-page password
            if state.has_password_field and not session.password_entered:
                session.password_entered = await self._fill_password(page, password or "")
            await self._pause(page, session, PRE_SUBMIT_MS)
            await self.filler.click_submit(page, labels=submit_labels)

        elif phase is LoginPhase.FILL_PASSWORD:
            session.password_entered = await self._fill_password(page, password or "")
            await self._pause(page, session, PRE_SUBMIT_MS)
            await self.filler.click_submit(page, labels=submit_labels)

        elif phase is LoginPhase.AUTOFILL_SUBMIT:
            logger.info("autofilled_fields_submitting")
            await self.filler.click_submit(page, labels=submit_labels)

    async def _fill_email(self, page: Page, email: str) -> bool:
        candidates = [
            FieldSpec(type="email", name="email", value=email),
            FieldSpec(type="text", name="user", value=email),
        ]
        # stop at the first candidate that lands so a second text input is left alone
        for field in candidates:
            results = await self.filler.fill_form(page, [field])
            if any(r.filled for r in results):
                return True
        return False

    async def _fill_password(self, page: Page, password: str) -> bool:
        results = await self.filler.fill_form(page, [FieldSpec(type="password", value=password)])
        return any(r.filled for r in results)

    async def _check_custom(self, is_logged_in: Callable[[], Awaitable[bool]] | None) -> bool:
        if is_logged_in is None:
            return False
        try:
            return bool(await is_logged_in())
        except Exception as e:
            logger.warning("is_logged_in_check_failed", error=str(e))
            return False

    async def _bring_to_front(self, page: Page) -> None:
        try:
            await page.bring_to_front()
        except PlaywrightError as e:
            logger.debug("bring_to_front_failed", error=str(e))

    async def _pause(self, page: Page, session: LoginSession, wait_ms: int) -> None:
        clipped = min(wait_ms, session.remaining_ms())
        if clipped > 0:
            await page.wait_for_timeout(clipped)
