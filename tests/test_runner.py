"""Tests for the profile runner and the command-line entry point."""

import json

import pytest
from playwright.async_api import Error as PlaywrightError

from conftest import FakePage, snapshot
from portal_pilot import cli, runner
from portal_pilot.browser.models import LoginOutcome, LoginPhase, LoginResult, PageState
from portal_pilot.config import Settings
from portal_pilot.errors import NavigationError
from portal_pilot.profiles import PortalProfile

PROFILE = PortalProfile(
    name="example",
    login_url="https://portal.example.com/login",
    success_patterns=["/dashboard"],
    targets=[{"name": "overview", "url": "https://portal.example.com/dashboard"}],
)


class FakeBrowser:
    def __init__(self, page):
        self.page = page
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True

    async def new_page(self):
        return self.page


@pytest.fixture
def app_settings(tmp_path):
    return Settings(_env_file=None, screenshots_dir=str(tmp_path), scroll_count=1)


@pytest.fixture
def browser(monkeypatch):
    def factory(page):
        fake = FakeBrowser(page)
        monkeypatch.setattr(runner, "BrowserManager", lambda settings: fake)
        return fake

    return factory


@pytest.mark.asyncio
async def test_run_profile_logs_in_and_visits(app_settings, browser, tmp_path):
    dashboard = snapshot(url="https://portal.example.com/dashboard", text="Total $5,000")
    page = FakePage(snapshots=[dashboard], body_texts=["Total $5,000"])
    fake = browser(page)

    report = await runner.run_profile(PROFILE, app_settings)

    assert report.profile == "example"
    assert report.login.success
    assert [p.name for p in report.pages] == ["overview"]
    assert report.pages[0].scrape_data == {"dollar_values": [5000.0], "count": 1}
    assert all(str(tmp_path / "example") in s for s in report.pages[0].screenshots)
    assert fake.closed


@pytest.mark.asyncio
async def test_run_profile_skips_visits_after_failed_login(app_settings, browser):
    app_settings.login_timeout_ms = 0
    page = FakePage(snapshots=[snapshot()])
    browser(page)

    report = await runner.run_profile(PROFILE, app_settings)

    assert not report.login.success
    assert report.login.outcome is LoginOutcome.TIMED_OUT
    assert report.pages == []
    assert page.visited == [PROFILE.login_url]


@pytest.mark.asyncio
async def test_run_profile_unreachable_login_page(app_settings, browser):
    page = FakePage()
    page.goto_errors[PROFILE.login_url] = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
    fake = browser(page)

    with pytest.raises(NavigationError, match="ERR_NAME_NOT_RESOLVED"):
        await runner.run_profile(PROFILE, app_settings)
    assert fake.closed


@pytest.fixture
def profiles_file(tmp_path):
    path = tmp_path / "profiles.yaml"
    path.write_text(
        "profiles:\n  example:\n    login_url: https://portal.example.com/login\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda app_settings: None)


def _cli_args(profiles_file, tmp_path, name):
    return ["--profiles", str(profiles_file), "--env-file", str(tmp_path / "missing.env"), name]


def test_cli_unknown_profile(profiles_file, tmp_path):
    assert cli.main(_cli_args(profiles_file, tmp_path, "nope")) == 1


def test_cli_missing_profiles_file(tmp_path):
    assert cli.main(_cli_args(tmp_path / "none.yaml", tmp_path, "example")) == 1


@pytest.mark.parametrize("success, code", [(True, 0), (False, 2)])
def test_cli_prints_report(profiles_file, tmp_path, monkeypatch, capsys, success, code):
    async def fake_run(profile, app_settings):
        login = LoginResult(
            success=success,
            outcome=LoginOutcome.SUCCESS if success else LoginOutcome.TIMED_OUT,
            phase=LoginPhase.DASHBOARD_WITH_DATA if success else LoginPhase.TIMEOUT,
            state=PageState(url=profile.login_url),
        )
        return runner.RunReport(profile=profile.name, login=login)

    monkeypatch.setattr(cli, "run_profile", fake_run)

    assert cli.main(_cli_args(profiles_file, tmp_path, "example")) == code
    output = json.loads(capsys.readouterr().out)
    assert output["profile"] == "example"
    assert output["login"]["success"] is success


def test_cli_malformed_profiles_file(tmp_path):
    path = tmp_path / "profiles.yaml"
    path.write_text("profiles: [unclosed\n", encoding="utf-8")

    assert cli.main(_cli_args(path, tmp_path, "example")) == 1


def test_cli_missing_rules_file(profiles_file, tmp_path, monkeypatch):
    monkeypatch.setenv("PORTAL_PILOT_RULES_PATH", str(tmp_path / "missing-rules.yaml"))

    assert cli.main(_cli_args(profiles_file, tmp_path, "example")) == 1


def test_cli_unreachable_login_page(profiles_file, tmp_path, monkeypatch, browser):
    monkeypatch.setenv("PORTAL_PILOT_SCREENSHOTS_DIR", str(tmp_path / "shots"))
    page = FakePage()
    page.goto_errors["https://portal.example.com/login"] = PlaywrightError(
        "net::ERR_CONNECTION_REFUSED"
    )
    browser(page)

    assert cli.main(_cli_args(profiles_file, tmp_path, "example")) == 1


def test_cli_invalid_settings(profiles_file, tmp_path, monkeypatch):
    monkeypatch.setenv("PORTAL_PILOT_SCROLL_COUNT", "many")

    assert cli.main(_cli_args(profiles_file, tmp_path, "example")) == 1
