"""Data models exchanged between the page scripts and the engine.

Raw facts (``ElementFacts``, ``PageSnapshot``) come straight out of
``page.evaluate`` calls; everything else is derived from them in Python so
decisions can be tested without a browser.
"""

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_LEADING_INT = re.compile(r"-?\d+")


class Viewport(BaseModel):
    width: float = 0
    height: float = 0


class ChildFacts(BaseModel):
    """An interactive child of a collected container."""

    ref: str | None = None
    text: str = ""
    visible: bool = False


class ElementFacts(BaseModel):
    """Geometry and context of one DOM element at collection time.

    ``ref`` is the value of the ``data-pp-ref`` attribute the collector
    stamped on the element, so a later script can act on the same node.
    """

    ref: str | None = None
    selector: str = ""
    tag: str = ""
    text: str = ""
    class_name: str = ""
    visible: bool = False
    position: str = "static"
    z_index: str = "auto"
    width: float = 0
    height: float = 0
    rect_width: float = 0
    rect_height: float = 0
    inside_popup: bool = False
    has_form: bool = False
    has_close_affordance: bool = False
    children: list[ChildFacts] = Field(default_factory=list)

    @property
    def z_order(self) -> int:
        """Computed z-index as an int; non-numeric values count as 0."""
        match = _LEADING_INT.match(self.z_index.strip())
        return int(match.group(0)) if match else 0

    @property
    def is_positioned(self) -> bool:
        return self.position in ("fixed", "absolute")


class ElementScan(BaseModel):
    viewport: Viewport = Field(default_factory=Viewport)
    elements: list[ElementFacts] = Field(default_factory=list)


class InputFacts(BaseModel):
    """A visible, non-hidden ``<input>``."""

    type: str = "text"
    name: str = ""
    placeholder: str = ""
    id: str = ""
    filled: bool = False


class PageSnapshot(BaseModel):
    """Everything a single evaluation round-trip reads from the page."""

    url: str = ""
    text: str = ""
    viewport: Viewport = Field(default_factory=Viewport)
    inputs: list[InputFacts] = Field(default_factory=list)
    button_labels: list[str] = Field(default_factory=list)
    dialogs: list[ElementFacts] = Field(default_factory=list)
    overlays: list[ElementFacts] = Field(default_factory=list)
    modals: list[ElementFacts] = Field(default_factory=list)


class EvaluationStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"


class PageState(BaseModel):
    """Point-in-time classification of a page.

    A degraded state means the evaluation itself failed: every flag is
    False and ``error_reason`` says why, which lets callers tell "nothing
    detected" apart from "detection failed".
    """

    url: str = ""
    status: EvaluationStatus = EvaluationStatus.OK
    error_reason: str | None = None
    is_login: bool = False
    is_dashboard: bool = False
    is_2fa: bool = False
    has_popup: bool = False
    popup_rule: str | None = None
    has_email_field: bool = False
    has_password_field: bool = False
    has_dollar_amounts: bool = False
    input_count: int = 0
    filled_input_count: int = 0
    button_labels: list[str] = Field(default_factory=list)
    text_snippet: str = ""
    screenshot: str | None = None

    @property
    def error(self) -> bool:
        return self.status is EvaluationStatus.DEGRADED

    @classmethod
    def degraded(cls, url: str, reason: str) -> "PageState":
        return cls(url=url, status=EvaluationStatus.DEGRADED, error_reason=reason)


class DismissResult(BaseModel):
    clicked: bool = False
    what: str | None = None
    text: str | None = None


class FieldSpec(BaseModel):
    """Describes one form input to fill.

    Matching priority: ``selector``, then ``type``, then ``name`` (matched
    against the name, id and placeholder attributes), then ``label``.
    """

    model_config = ConfigDict(populate_by_name=True)

    selector: str | None = None
    input_type: str | None = Field(default=None, alias="type")
    name: str | None = None
    label: str | None = None
    value: str = Field(repr=False)


class FillResult(BaseModel):
    field: FieldSpec
    filled: bool = False
    selector: str = ""
    verified: bool = False


class CaptureResult(BaseModel):
    screenshots: list[str] = Field(default_factory=list)
    full_text: str = ""


class VisitTarget(BaseModel):
    """A page to visit after login."""

    name: str
    url: str
    desc: str | None = None


class VisitResult(BaseModel):
    name: str
    url: str
    text: str = ""
    screenshots: list[str] = Field(default_factory=list)
    scrape_data: Any = None
    scrape_error: str | None = None
    error: str | None = None


class LoginPhase(str, Enum):
    NAVIGATING = "navigating"
    SETTLING = "settling"
    CLEARING_POPUPS = "clearing_popups"
    CHECK_CUSTOM_DONE = "check_custom_done"
    DASHBOARD_WITH_DATA = "dashboard_with_data"
    DASHBOARD_LOADING = "dashboard_loading"
    POPUP_PRESENT = "popup_present"
    AWAITING_2FA = "awaiting_2fa"
    FILL_EMAIL = "fill_email"
    FILL_PASSWORD = "fill_password"
    AUTOFILL_SUBMIT = "autofill_submit"
    MANUAL_WAIT = "manual_wait"
    UNRECOGNIZED = "unrecognized"
    TIMEOUT = "timeout"


class LoginOutcome(str, Enum):
    SUCCESS = "success"
    TIMED_OUT = "timed_out"


class LoginResult(BaseModel):
    success: bool
    outcome: LoginOutcome
    phase: LoginPhase
    state: PageState
    needs_2fa: bool = False
