"""Heuristic rule tables.

The selectors, keyword lists and size thresholds the engine matches pages
against are data, not code: they ship in ``rules.yaml`` next to this module
and are validated into the models below. A different file can be supplied
through ``Settings.rules_path``.
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

from portal_pilot.errors import RulesError

DEFAULT_RULES_PATH = Path(__file__).with_name("rules.yaml")


class PageRules(BaseModel):
    login_url_keywords: list[str]
    dashboard_url_keywords: list[str]
    two_factor_url_keywords: list[str]
    two_factor_text_keywords: list[str]
    email_field_keywords: list[str]
    dollar_pattern: str
    max_button_labels: int
    max_button_label_chars: int
    max_snippet_chars: int


class PopupDetectionRules(BaseModel):
    dialog_selector: str
    dialog_min_width: float
    overlay_selector: str
    overlay_min_z_index: int
    overlay_viewport_fraction: float
    overlay_min_height: float
    modal_selector: str
    modal_min_width: float
    modal_min_z_index: int
    close_affordance_selector: str


class DismissalRules(BaseModel):
    close_selectors: list[str]
    button_selector: str
    max_button_text_chars: int
    skip_words: list[str]
    dismiss_words: list[str]
    ambiguous_words: list[str]
    popup_container_classes: list[str]
    floating_selector: str
    floating_interactive_selector: str
    floating_max_children: int
    glyph_selector: str
    glyphs: list[str]
    glyph_max_size: float
    overlay_selector: str
    overlay_min_z_index: int
    big_overlay_selector: str
    big_overlay_min_z_index: int
    big_overlay_viewport_fraction: float
    forced_removal_min_z_index: int
    forced_removal_viewport_fraction: float

    @property
    def popup_container_selector(self) -> str:
        """CSS selector matching any popup-like ancestor."""
        parts = ['[role="dialog"]']
        parts += [f'[class*="{name}"]' for name in self.popup_container_classes]
        return ", ".join(parts)


class SubmitRules(BaseModel):
    selectors: list[str]
    labels: list[str]
    selector_timeout_ms: int
    label_timeout_ms: int


class HeuristicRules(BaseModel):
    """All heuristic tables used by the engine."""

    page: PageRules
    popup_detection: PopupDetectionRules
    dismissal: DismissalRules
    submit: SubmitRules


def load_rules(path: str | Path | None = None) -> HeuristicRules:
    """Load heuristic rules from YAML.

    Args:
        path: Rules file to read. Defaults to the packaged ``rules.yaml``.

    Returns:
        Validated HeuristicRules.

    Raises:
        RulesError: If the file is missing, is not valid YAML, or lacks a
            table or field.
    """
    rules_path = Path(path) if path else DEFAULT_RULES_PATH
    try:
        with open(rules_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return HeuristicRules.model_validate(data)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        raise RulesError(f"Cannot load rules from {rules_path}: {e}") from e
