"""Shared fixtures: packaged rules and a scripted stand-in for a Playwright page."""

import asyncio
from typing import Any, Callable

import pytest
from playwright.async_api import Error as PlaywrightError

from portal_pilot.browser.scripts import (
    ACT_ON_ELEMENT,
    BODY_TEXT,
    COLLECT_ELEMENTS,
    PAGE_SNAPSHOT,
    RELEASE_SCROLL_LOCK,
    REMOVE_ELEMENTS,
)
from portal_pilot.rules import load_rules


@pytest.fixture
def rules():
    return load_rules()


def snapshot(**overrides: Any) -> dict[str, Any]:
    """A PAGE_SNAPSHOT result for a plain, popup-free page.

    Without a ``url`` override the FakePage fills in its current URL.
    """
    data = {
        "text": "",
        "viewport": {"width": 1000, "height": 800},
        "inputs": [],
        "button_labels": [],
        "dialogs": [],
        "overlays": [],
        "modals": [],
    }
    data.update(overrides)
    return data


POPUP_DIALOG = {"visible": True, "width": 400, "height": 300}


class FakeElement:
    """An input or button returned by ``wait_for_selector``."""

    def __init__(self, *, fail_click: bool = False, keep_value: bool = True) -> None:
        self.fail_click = fail_click
        self.keep_value = keep_value
        self.value = ""
        self.clicks = 0

    async def click(self, click_count: int = 1) -> None:
        if self.fail_click:
            raise PlaywrightError("element is not attached to the DOM")
        self.clicks += 1

    async def fill(self, value: str) -> None:
        self.value = value if self.keep_value else ""

    async def input_value(self) -> str:
        return self.value


class FakePage:
    """Scripted page.

    ``snapshots`` are returned in order by PAGE_SNAPSHOT evaluations (the
    last one repeats). ``collect`` answers COLLECT_ELEMENTS queries.
    ``elements`` maps selectors to FakeElements for ``wait_for_selector``.
    ``scroll_locked`` mimics an inline ``overflow: hidden`` on the body.
    """

    def __init__(
        self,
        *,
        url: str = "about:blank",
        snapshots: list[dict[str, Any]] | None = None,
        body_texts: list[str] | None = None,
        real_sleep: bool = False,
    ) -> None:
        self.url = url
        self.snapshots = snapshots or [snapshot()]
        self.body_texts = body_texts or [""]
        self.real_sleep = real_sleep
        self.collect: Callable[[dict[str, Any]], dict[str, Any]] = lambda query: {}
        self.elements: dict[str, FakeElement] = {}
        self.snapshot_error: Exception | None = None
        self.goto_errors: dict[str, Exception] = {}
        self.acts: list[dict[str, Any]] = []
        self.removed: list[str] = []
        self.screenshots: list[str] = []
        self.visited: list[str] = []
        self.waits: list[int] = []
        self.snapshot_calls = 0
        self.brought_to_front = 0
        self.scroll_locked = False
        self.scroll_unlocks = 0

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if script == PAGE_SNAPSHOT:
            self.snapshot_calls += 1
            if self.snapshot_error is not None:
                raise self.snapshot_error
            data = self.snapshots[0] if len(self.snapshots) == 1 else self.snapshots.pop(0)
            return data if "url" in data else {**data, "url": self.url}
        if script == COLLECT_ELEMENTS:
            return self.collect(arg)
        if script == ACT_ON_ELEMENT:
            self.acts.append(arg)
            return True
        if script == REMOVE_ELEMENTS:
            self.removed.extend(arg)
            return len(arg)
        if script == RELEASE_SCROLL_LOCK:
            self.scroll_unlocks += 1
            locked, self.scroll_locked = self.scroll_locked, False
            return locked
        if script == BODY_TEXT:
            return self.body_texts[0] if len(self.body_texts) == 1 else self.body_texts.pop(0)
        return None

    async def screenshot(self, path: str, full_page: bool = False) -> None:
        self.screenshots.append(path)

    async def goto(self, url: str, **kwargs: Any) -> None:
        self.visited.append(url)
        if url in self.goto_errors:
            raise self.goto_errors[url]
        self.url = url

    async def wait_for_timeout(self, timeout: float) -> None:
        self.waits.append(int(timeout))
        await asyncio.sleep(timeout / 1000 if self.real_sleep else 0)

    async def wait_for_selector(self, selector: str, timeout: float = 0, state: str = "visible"):
        element = self.elements.get(selector)
        if element is None:
            raise PlaywrightError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return element

    async def bring_to_front(self) -> None:
        self.brought_to_front += 1


@pytest.fixture
def page():
    return FakePage()
