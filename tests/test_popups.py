"""Tests for PopupDismisser."""

import time

import pytest

from conftest import POPUP_DIALOG, FakePage, snapshot
from portal_pilot.browser.evaluator import PageInspector
from portal_pilot.browser.popups import PopupDismisser

VIEWPORT = {"width": 1000, "height": 800}


def _scan(*elements):
    return {"viewport": VIEWPORT, "elements": list(elements)}


def _close_button_only(rules):
    def collect(query):
        if query["selectors"] == rules.dismissal.close_selectors:
            return _scan({"ref": "c1", "selector": "[data-dismiss]", "visible": True, "text": "×"})
        return {}

    return collect


@pytest.fixture
def dismisser(rules):
    return PopupDismisser(PageInspector(rules))


@pytest.mark.asyncio
async def test_clear_all_on_clear_page_does_nothing(dismisser, page):
    dismissed = await dismisser.clear_all(page)

    assert dismissed == 0
    assert page.acts == []
    assert page.removed == []
    assert page.snapshot_calls == 1


@pytest.mark.asyncio
async def test_dismiss_one_prefers_close_buttons(rules, dismisser, page):
    page.collect = _close_button_only(rules)

    result = await dismisser.dismiss_one(page)

    assert result.clicked
    assert result.what == "close-button: [data-dismiss]"
    assert page.acts == [{"ref": "c1", "action": "click"}]


@pytest.mark.asyncio
async def test_dismiss_one_falls_through_to_text_buttons(dismisser, page):
    def collect(query):
        if "popupContainer" in query:
            return _scan(
                {"ref": "t1", "text": "Sign in", "visible": True},
                {"ref": "t2", "text": "Not now", "visible": True},
            )
        return _scan()

    page.collect = collect

    result = await dismisser.dismiss_one(page)

    assert result.what == "text-button"
    assert result.text == "Not now"
    assert page.acts == [{"ref": "t2", "action": "click"}]


@pytest.mark.asyncio
async def test_dismiss_one_skips_failing_strategy(rules, dismisser, page):
    def collect(query):
        if query["selectors"] == rules.dismissal.close_selectors:
            raise RuntimeError("Execution context was destroyed")
        if "exactText" in query:
            return _scan({"ref": "g1", "text": "✕", "visible": True, "rect_width": 16, "rect_height": 16})
        return _scan()

    page.collect = collect

    result = await dismisser.dismiss_one(page)

    assert result.what == "x-icon"


@pytest.mark.asyncio
async def test_dismiss_one_nothing_to_do(dismisser, page):
    result = await dismisser.dismiss_one(page)

    assert not result.clicked
    assert result.what is None
    assert page.acts == []


@pytest.mark.asyncio
async def test_clear_all_dismisses_until_clear(rules, dismisser, tmp_path):
    page = FakePage(
        snapshots=[
            snapshot(dialogs=[POPUP_DIALOG]),
            snapshot(dialogs=[POPUP_DIALOG]),
            snapshot(),
        ]
    )
    page.collect = _close_button_only(rules)

    dismissed = await dismisser.clear_all(page, tmp_path)

    assert dismissed == 2
    assert len(page.acts) == 2
    assert page.waits == [3000, 3000]
    assert len(page.screenshots) == 2
    assert "dismiss-1-" in page.screenshots[0]
    assert "dismiss-2-" in page.screenshots[1]


@pytest.mark.asyncio
async def test_clear_all_respects_max_attempts(rules, dismisser):
    page = FakePage(snapshots=[snapshot(dialogs=[POPUP_DIALOG])])
    page.collect = _close_button_only(rules)

    dismissed = await dismisser.clear_all(page, max_attempts=3, wait_ms=10)

    assert dismissed == 3
    assert page.waits == [10, 10, 10]


@pytest.mark.asyncio
async def test_clear_all_force_removes_undismissable_popup(rules, dismisser):
    page = FakePage(snapshots=[snapshot(dialogs=[POPUP_DIALOG])])
    blocker = {
        "ref": "b1",
        "visible": True,
        "position": "fixed",
        "z_index": "60",
        "width": 300,
        "height": 250,
    }

    def collect(query):
        if query["selectors"] == [rules.dismissal.big_overlay_selector] and "childSelector" not in query:
            return _scan(blocker)
        return _scan()

    page.collect = collect

    dismissed = await dismisser.clear_all(page)

    assert dismissed == 0
    assert page.acts == []
    assert page.removed == ["b1"]
    # gives up after one forced removal
    assert page.snapshot_calls == 1


@pytest.mark.asyncio
async def test_force_remove_overlays_with_nothing_to_remove(dismisser, page):
    assert await dismisser.force_remove_overlays(page) == 0
    assert page.removed == []


@pytest.mark.asyncio
async def test_wait_until_clear(rules, dismisser):
    page = FakePage(
        snapshots=[
            snapshot(dialogs=[POPUP_DIALOG]),
            snapshot(dialogs=[POPUP_DIALOG]),
            snapshot(),
        ]
    )
    page.collect = _close_button_only(rules)

    assert await dismisser.wait_until_clear(page, timeout_ms=5000) is True
    assert len(page.acts) == 1


@pytest.mark.asyncio
async def test_wait_until_clear_times_out(dismisser):
    page = FakePage(snapshots=[snapshot(dialogs=[POPUP_DIALOG])])

    assert await dismisser.wait_until_clear(page, timeout_ms=50, check_interval_ms=10) is False


@pytest.mark.asyncio
async def test_clear_all_stops_at_deadline(rules, dismisser):
    page = FakePage(snapshots=[snapshot(dialogs=[POPUP_DIALOG])])
    page.collect = _close_button_only(rules)

    dismissed = await dismisser.clear_all(page, deadline=time.monotonic() - 1)

    assert dismissed == 0
    assert page.snapshot_calls == 0
    assert page.acts == []


@pytest.mark.asyncio
async def test_clear_all_clips_waits_to_deadline(rules, dismisser):
    page = FakePage(snapshots=[snapshot(dialogs=[POPUP_DIALOG])])
    page.collect = _close_button_only(rules)

    await dismisser.clear_all(page, max_attempts=2, deadline=time.monotonic() + 0.5)

    assert len(page.waits) == 2
    assert all(wait <= 500 for wait in page.waits)


@pytest.mark.asyncio
async def test_dismissal_releases_scroll_lock(rules, dismisser, page):
    page.collect = _close_button_only(rules)
    page.scroll_locked = True

    await dismisser.dismiss_one(page)

    assert page.scroll_unlocks == 1
    assert not page.scroll_locked


@pytest.mark.asyncio
async def test_force_removal_releases_scroll_lock(rules, dismisser, page):
    blocker = _scan({"ref": "b1", "position": "fixed", "z_index": "60", "width": 900, "height": 700})
    page.collect = lambda query: blocker
    page.scroll_locked = True

    assert await dismisser.force_remove_overlays(page) == 1
    assert page.removed == ["b1"]
    assert not page.scroll_locked


@pytest.mark.asyncio
async def test_nothing_dismissed_leaves_scroll_untouched(dismisser, page):
    page.scroll_locked = True

    await dismisser.dismiss_one(page)
    await dismisser.force_remove_overlays(page)

    assert page.scroll_unlocks == 0
    assert page.scroll_locked
