"""End-to-end run for one portal profile: launch, log in, visit, capture."""

from pathlib import Path

import structlog
from playwright.async_api import Error as PlaywrightError
from pydantic import BaseModel, Field

from portal_pilot.browser.capture import PageVisitor, collect_dollar_values
from portal_pilot.browser.context import BrowserManager
from portal_pilot.browser.evaluator import PageInspector, current_url
from portal_pilot.browser.forms import FormFiller
from portal_pilot.browser.login import LoginOrchestrator
from portal_pilot.browser.models import LoginResult, VisitResult
from portal_pilot.browser.popups import PopupDismisser
from portal_pilot.config import Settings, settings
from portal_pilot.errors import NavigationError
from portal_pilot.profiles import PortalProfile
from portal_pilot.rules import HeuristicRules, load_rules

logger = structlog.get_logger(__name__)


class RunReport(BaseModel):
    """Outcome of one profile run."""

    profile: str
    login: LoginResult
    pages: list[VisitResult] = Field(default_factory=list)


async def run_profile(
    profile: PortalProfile,
    app_settings: Settings = settings,
    rules: HeuristicRules | None = None,
) -> RunReport:
    """Log into a portal and capture each of its target pages.

    Pages are only visited after a successful login.

    Args:
        profile: The portal to run.
        app_settings: Browser, capture and timeout settings.
        rules: Heuristic tables. Loaded from ``app_settings.rules_path`` if None.

    Returns:
        RunReport with the login result and one VisitResult per target.

    Raises:
        BrowserLaunchError: If the browser cannot be started.
        NavigationError: If the login page cannot be reached.
        RulesError: If the rules file cannot be loaded.
    """
    rules = rules or load_rules(app_settings.rules_path)
    inspector = PageInspector(rules)
    dismisser = PopupDismisser(inspector)
    orchestrator = LoginOrchestrator(inspector, dismisser, FormFiller(rules))
    visitor = PageVisitor(dismisser)

    screenshots_dir = Path(app_settings.screenshots_dir) / profile.name
    email, password = profile.credentials()

    async with BrowserManager(app_settings) as browser:
        page = await browser.new_page()

        async def reached_success_page() -> bool:
            return profile.matches_success(current_url(page))

        logger.info("run_started", profile=profile.name, targets=len(profile.targets))
        try:
            login = await orchestrator.login(
                page,
                url=profile.login_url,
                email=email,
                password=password,
                screenshots_dir=screenshots_dir,
                timeout_ms=app_settings.login_timeout_ms,
                is_logged_in=reached_success_page if profile.success_patterns else None,
                submit_labels=profile.submit_labels,
            )
        except PlaywrightError as e:
            raise NavigationError(f"Cannot open login page {profile.login_url}: {e}") from e
        report = RunReport(profile=profile.name, login=login)

        if not login.success:
            logger.warning("run_login_failed", profile=profile.name, phase=login.phase.value)
            return report

        report.pages = await visitor.visit_pages(
            page,
            profile.targets,
                screenshots_dir=screenshots_dir,
            scroll_count=app_settings.scroll_count,
            wait_for_data_ms=app_settings.wait_for_data_ms,
            scrape_fn=collect_dollar_values,
        )

    logger.info(
        "run_complete",
        profile=profile.name,
        pages=len(report.pages),
        failed=sum(1 for p in report.pages if p.error),
    )
    return report
