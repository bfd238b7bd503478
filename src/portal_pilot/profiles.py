"""Portal profiles: where to log in, how to tell it worked, what to capture.

Profiles live in a YAML file::

    profiles:
      example:
        login_url: https://portal.example.com/login
        success_patterns: ["/dashboard"]
        submit_labels: ["Log In", "Continue"]
        credential_env: {email: EXAMPLE_EMAIL, password: EXAMPLE_PASSWORD}
        targets:
          - {name: overview, url: "https://portal.example.com/dashboard"}
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError

from portal_pilot.browser.models import VisitTarget
from portal_pilot.config import settings
from portal_pilot.errors import ProfileError


class CredentialEnv(BaseModel):
    """Names of the environment variables holding a portal's credentials."""

    email: str
    password: str


class PortalProfile(BaseModel):
    """Everything the runner needs to log into one portal and capture it."""

    name: str
    login_url: str
    success_patterns: list[str] = Field(default_factory=list)
    submit_labels: list[str] | None = None
    credential_env: CredentialEnv | None = None
    targets: list[VisitTarget] = Field(default_factory=list)

    def credentials(self) -> tuple[str | None, SecretStr | None]:
        """Resolve the profile's credentials from the environment.

        Returns:
            ``(email, password)``; either may be None when unset, in which
            case the login flow waits for a manual login.
        """
        if self.credential_env is None:
            return None, None
        email = os.getenv(self.credential_env.email) or None
        password = os.getenv(self.credential_env.password) or None
        return email, SecretStr(password) if password else None

    def matches_success(self, url: str) -> bool:
        """True when ``url`` is off the login pages and hits a success pattern."""
        lowered = url.lower()
        if any(marker in lowered for marker in ("/login", "/signin", "/sign-in")):
            return False
        return any(pattern in url for pattern in self.success_patterns)


def load_profiles(config_path: str | None = None) -> dict[str, PortalProfile]:
    """Load portal profiles from a YAML file.

    Args:
        config_path: Path to the profiles YAML file. If None, uses settings default.

    Returns:
        Mapping of profile name to PortalProfile.

    Raises:
        ProfileError: If the file does not exist or a profile is invalid.
    """
    path = Path(config_path) if config_path else Path(settings.profiles_path)
    if not path.exists():
        raise ProfileError(f"Profiles config not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data: dict[str, Any] = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ProfileError(f"Profiles config is not valid YAML: {path}: {e}") from e

    if not isinstance(data, dict):
        raise ProfileError(f"Profiles config must be a mapping: {path}")

    profiles: dict[str, PortalProfile] = {}
    for name, raw in (data.get("profiles") or {}).items():
        try:
            profiles[name] = PortalProfile(name=name, **(raw or {}))
        except (TypeError, ValidationError) as e:
            raise ProfileError(f"Invalid profile '{name}' in {path}: {e}") from e

    return profiles
