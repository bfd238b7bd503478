"""Pure decision rules over collected page facts.

Nothing in this module touches a page. Popup detection and popup dismissal
are each an ordered table of tagged rules, tried first-match-wins:

- ``POPUP_RULES``: ``(tag, predicate)`` pairs evaluated over a PageSnapshot.
- ``DISMISS_STRATEGIES``: each strategy builds a collector query, then picks
  at most one element from the collected facts. Strategies escalate from
  clicks to DOM removal.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable

from portal_pilot.browser.models import ElementFacts, ElementScan, InputFacts, PageSnapshot, PageState
from portal_pilot.rules import DismissalRules, HeuristicRules, PageRules, PopupDetectionRules

# ─── Popup detection ─────────────────────────────────────────────


def _visible_dialog(snapshot: PageSnapshot, rules: PopupDetectionRules) -> bool:
    return any(el.visible and el.width > rules.dialog_min_width for el in snapshot.dialogs)


def _large_overlay(snapshot: PageSnapshot, rules: PopupDetectionRules) -> bool:
    viewport = snapshot.viewport
    fraction = rules.overlay_viewport_fraction
    for el in snapshot.overlays:
        if not el.is_positioned or el.z_order <= rules.overlay_min_z_index:
            continue
        if el.width <= viewport.width * fraction or el.height <= viewport.height * fraction:
            continue
        # thin nav/footer bars
        if el.rect_height < rules.overlay_min_height:
            continue
        return True
    return False


def _closable_modal(snapshot: PageSnapshot, rules: PopupDetectionRules) -> bool:
    for el in snapshot.modals:
        if not el.visible or el.width < rules.modal_min_width:
            continue
        if (el.z_order > rules.modal_min_z_index or el.is_positioned) and el.has_close_affordance:
            return True
    return False


POPUP_RULES: list[tuple[str, Callable[[PageSnapshot, PopupDetectionRules], bool]]] = [
    ("dialog", _visible_dialog),
    ("overlay", _large_overlay),
    ("modal", _closable_modal),
]


def detect_popup(snapshot: PageSnapshot, rules: PopupDetectionRules) -> str | None:
    """Return the tag of the first popup rule that fires, or None."""
    for tag, predicate in POPUP_RULES:
        if predicate(snapshot, rules):
            return tag
    return None


# ─── Page classification ─────────────────────────────────────────


def is_email_input(field: InputFacts, rules: PageRules) -> bool:
    if field.type == "email":
        return True
    haystacks = (field.name.lower(), field.placeholder.lower(), field.id.lower())
    return any(keyword in hay for keyword in rules.email_field_keywords for hay in haystacks)


def classify_url(url: str, text: str, rules: PageRules) -> tuple[bool, bool, bool]:
    """Classify a page as login, dashboard and/or 2FA.

    Returns:
        ``(is_login, is_dashboard, is_2fa)``.
    """
    lowered = text.lower()
    is_login = any(k in url for k in rules.login_url_keywords)
    is_dashboard = any(k in url for k in rules.dashboard_url_keywords)
    is_2fa = any(k in url for k in rules.two_factor_url_keywords) or any(
        k in lowered for k in rules.two_factor_text_keywords
    )
    return is_login, is_dashboard, is_2fa


def build_page_state(
    snapshot: PageSnapshot,
    rules: HeuristicRules,
    screenshot: str | None = None,
) -> PageState:
    """Derive a PageState from one snapshot."""
    page_rules = rules.page
    is_login, is_dashboard, is_2fa = classify_url(snapshot.url, snapshot.text, page_rules)
    popup_rule = detect_popup(snapshot, rules.popup_detection)

    labels = [label[: page_rules.max_button_label_chars] for label in snapshot.button_labels]
    labels = [label for label in labels[: page_rules.max_button_labels] if label]
    snippet = re.sub(r"\n+", " | ", snapshot.text[: page_rules.max_snippet_chars])

    return PageState(
        url=snapshot.url,
        is_login=is_login,
        is_dashboard=is_dashboard,
        is_2fa=is_2fa,
        has_popup=popup_rule is not None,
        popup_rule=popup_rule,
        has_email_field=any(is_email_input(i, page_rules) for i in snapshot.inputs),
        has_password_field=any(i.type == "password" for i in snapshot.inputs),
        has_dollar_amounts=re.search(page_rules.dollar_pattern, snapshot.text) is not None,
        input_count=len(snapshot.inputs),
        filled_input_count=sum(1 for i in snapshot.inputs if i.filled),
        button_labels=labels,
        text_snippet=snippet,
        screenshot=screenshot,
    )


def snapshot_query(rules: HeuristicRules) -> dict[str, Any]:
    """Collector options for the PAGE_SNAPSHOT script."""
    detection = rules.popup_detection
    return {
        "maxButtons": rules.page.max_button_labels,
        "dialogs": {"selectors": [detection.dialog_selector]},
        "overlays": {
            "selectors": [detection.overlay_selector],
            "positionedOnly": True,
        },
        "modals": {
            "selectors": [detection.modal_selector],
            "closeAffordance": detection.close_affordance_selector,
        },
    }


# ─── Popup dismissal ─────────────────────────────────────────────


@dataclass(frozen=True)
class Choice:
    """The single element a dismissal strategy decided to act on."""

    ref: str
    what: str
    text: str | None
    action: str = "click"


@dataclass(frozen=True)
class DismissStrategy:
    tag: str
    query: Callable[[DismissalRules], dict[str, Any]]
    choose: Callable[[ElementScan, DismissalRules], Choice | None]


def matches_phrase(text: str, phrase: str) -> bool:
    """Word-bounded phrase match; symbol-only phrases match as substrings."""
    if not any(ch.isalnum() for ch in phrase):
        return phrase in text
    return re.search(rf"(?<!\w){re.escape(phrase)}(?!\w)", text) is not None


def matches_any(text: str, phrases: list[str]) -> bool:
    return any(matches_phrase(text, phrase) for phrase in phrases)


def _clip(text: str, limit: int = 30) -> str:
    return text.strip()[:limit]


def _query_close_buttons(rules: DismissalRules) -> dict[str, Any]:
    return {"selectors": rules.close_selectors, "mark": True, "visibleOnly": True, "limit": 1}


def _choose_close_button(scan: ElementScan, rules: DismissalRules) -> Choice | None:
    for el in scan.elements:
        if el.visible and el.ref:
            return Choice(el.ref, f"close-button: {el.selector}", _clip(el.text))
    return None


def _query_text_buttons(rules: DismissalRules) -> dict[str, Any]:
    return {
        "selectors": [rules.button_selector],
        "mark": True,
        "visibleOnly": True,
        "maxTextLength": rules.max_button_text_chars,
        "popupContainer": rules.popup_container_selector,
    }


def _choose_text_button(scan: ElementScan, rules: DismissalRules) -> Choice | None:
    for el in scan.elements:
        text = el.text.strip().lower()
        if not text or len(text) > rules.max_button_text_chars or not el.visible or not el.ref:
            continue
        # login/submit words are never dismissed, even inside a popup
        if matches_any(text, rules.skip_words):
            continue
        if matches_any(text, rules.dismiss_words):
            return Choice(el.ref, "text-button", _clip(el.text))
        if el.inside_popup and matches_any(text, rules.ambiguous_words):
            return Choice(el.ref, "popup-next-button", _clip(el.text))
    return None


def _query_floating_banners(rules: DismissalRules) -> dict[str, Any]:
    return {
        "selectors": [rules.floating_selector],
        "mark": True,
        "visibleOnly": True,
        "positionedOnly": True,
        "childSelector": rules.floating_interactive_selector,
    }


def _choose_floating_banner(scan: ElementScan, rules: DismissalRules) -> Choice | None:
    for el in scan.elements:
        if not (el.is_positioned and el.visible and el.z_order > 0) or el.has_form:
            continue
        children = [c for c in el.children if c.visible and c.ref]
        if not 1 <= len(children) <= rules.floating_max_children:
            continue
        # the last control is usually the "OK" / "Next" one
        target = children[-1]
        if matches_any(target.text.strip().lower(), rules.skip_words):
            continue
        return Choice(target.ref, "floating-banner-link", _clip(target.text))
    return None


def _query_glyphs(rules: DismissalRules) -> dict[str, Any]:
    return {
        "selectors": [rules.glyph_selector],
        "mark": True,
        "visibleOnly": True,
        "exactText": rules.glyphs,
    }


def _choose_glyph(scan: ElementScan, rules: DismissalRules) -> Choice | None:
    for el in scan.elements:
        text = el.text.strip()
        if not el.visible or not el.ref or text not in rules.glyphs:
            continue
        if el.rect_width < rules.glyph_max_size and el.rect_height < rules.glyph_max_size:
            return Choice(el.ref, "x-icon", text)
    return None


def _query_overlays(rules: DismissalRules) -> dict[str, Any]:
    return {
        "selectors": [rules.overlay_selector],
        "mark": True,
        "visibleOnly": True,
        "positionedOnly": True,
    }


def _choose_overlay(scan: ElementScan, rules: DismissalRules) -> Choice | None:
    for el in scan.elements:
        if el.visible and el.ref and el.is_positioned and el.z_order > rules.overlay_min_z_index:
            return Choice(el.ref, "removed-overlay", el.class_name[:40], action="remove")
    return None


def _query_big_overlays(rules: DismissalRules) -> dict[str, Any]:
    return {
        "selectors": [rules.big_overlay_selector],
        "mark": True,
        "positionedOnly": True,
    }


def _covers(el: ElementFacts, scan: ElementScan, fraction: float) -> bool:
    return (
        el.width > scan.viewport.width * fraction
        and el.height > scan.viewport.height * fraction
    )


def _choose_big_overlay(scan: ElementScan, rules: DismissalRules) -> Choice | None:
    for el in scan.elements:
        if not el.ref or el.position != "fixed" or el.z_order <= rules.big_overlay_min_z_index:
            continue
        if _covers(el, scan, rules.big_overlay_viewport_fraction):
            return Choice(el.ref, "removed-big-overlay", el.class_name[:40], action="remove")
    return None


# A broad "click any short nav link" strategy used to sit between the text
# and floating-banner strategies. It clicked unrelated page navigation
# ("Security Center") and must not come back without the same scoping the
# ambiguous-word rule has.
DISMISS_STRATEGIES: list[DismissStrategy] = [
    DismissStrategy("close-button", _query_close_buttons, _choose_close_button),
    DismissStrategy("text-button", _query_text_buttons, _choose_text_button),
    DismissStrategy("floating-banner-link", _query_floating_banners, _choose_floating_banner),
    DismissStrategy("x-icon", _query_glyphs, _choose_glyph),
    DismissStrategy("removed-overlay", _query_overlays, _choose_overlay),
    DismissStrategy("removed-big-overlay", _query_big_overlays, _choose_big_overlay),
]


def forced_removal_query(rules: DismissalRules) -> dict[str, Any]:
    return {
        "selectors": [rules.big_overlay_selector],
        "mark": True,
        "positionedOnly": True,
    }


def select_forced_removals(scan: ElementScan, rules: DismissalRules) -> list[str]:
    """Refs of every fixed element big enough to block the page."""
    return [
        el.ref
        for el in scan.elements
        if el.ref
        and el.position == "fixed"
        and el.z_order > rules.forced_removal_min_z_index
        and _covers(el, scan, rules.forced_removal_viewport_fraction)
    ]
