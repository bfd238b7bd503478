"""Application configuration management using Pydantic Settings.

This module provides the runtime settings (browser, capture and logging
options) loaded from environment variables or a .env file.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Every variable is prefixed with ``PORTAL_PILOT_`` (for example
    ``PORTAL_PILOT_BROWSER_HEADLESS=false``).
    """

    # Browser Configuration
    browser_profile_dir: str = Field(
        default="data/browser-profile",
        description="Directory for the Playwright persistent context (cookies/sessions)",
    )
    browser_headless: bool = Field(
        default=False,
        description="Run browser headless (2FA and manual login need a visible window)",
    )
    browser_viewport_width: int = Field(default=1280, description="Viewport width in px")
    browser_viewport_height: int = Field(default=900, description="Viewport height in px")

    # Capture Configuration
    screenshots_dir: str = Field(
        default="data/screenshots", description="Directory for page screenshots"
    )
    login_timeout_ms: int = Field(
        default=600_000, description="Overall login deadline in milliseconds"
    )
    wait_for_data_ms: int = Field(
        default=45_000, description="Per-page content readiness deadline in milliseconds"
    )
    scroll_count: int = Field(default=5, description="Scroll steps per visited page")

    # Heuristics / Profiles
    rules_path: str | None = Field(
        default=None,
        description="Optional YAML file overriding the packaged heuristic rules",
    )
    profiles_path: str = Field(
        default="profiles.yaml", description="Path to the portal profiles YAML file"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: str = Field(
        default="console", description="Log output format (json or console)"
    )

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_PILOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Import this to access settings throughout the application
settings = Settings()
