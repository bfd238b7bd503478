"""Visual browser automation for web portals without an API.

Logs in the way a person would (read the page, dismiss popups, fill the
form, wait out 2FA) and captures the rendered pages afterwards.
"""

__version__ = "0.1.0"
