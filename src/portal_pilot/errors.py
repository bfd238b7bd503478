"""Exceptions raised outside the engine's result-returning entry points."""


class PortalPilotError(Exception):
    """Base class for runner and configuration failures."""

    pass


class ProfileError(PortalPilotError):
    """Raised when a portal profile is missing or invalid."""

    pass


class BrowserLaunchError(PortalPilotError):
    """Raised when the browser context cannot be started."""

    pass


class RulesError(PortalPilotError):
    """Raised when the heuristic rules file is missing or invalid."""

    pass


class NavigationError(PortalPilotError):
    """Raised when the login page cannot be reached."""

    pass
