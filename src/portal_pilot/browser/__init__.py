"""Browser automation engine.

This module provides page evaluation, popup dismissal, form filling, the
login state machine and scroll capture, on top of a Playwright persistent
context.
"""

from portal_pilot.browser.capture import PageVisitor
from portal_pilot.browser.context import BrowserManager
from portal_pilot.browser.evaluator import PageInspector
from portal_pilot.browser.forms import FormFiller
from portal_pilot.browser.login import LoginOrchestrator
from portal_pilot.browser.popups import PopupDismisser

__all__ = [
    "BrowserManager",
    "FormFiller",
    "LoginOrchestrator",
    "PageInspector",
    "PageVisitor",
    "PopupDismisser",
]
