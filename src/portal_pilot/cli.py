"""Command-line entry point.

Usage:
    portal-pilot [--profiles PATH] [--env-file PATH] PROFILE

Prints the run report as JSON on stdout; logs go to stderr.
Exit codes: 0 on success, 1 on configuration, launch or navigation errors,
2 when the login did not succeed.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import structlog
from dotenv import load_dotenv
from pydantic import ValidationError

from portal_pilot.config import Settings
from portal_pilot.errors import PortalPilotError, ProfileError
from portal_pilot.profiles import load_profiles
from portal_pilot.runner import run_profile


def configure_logging(app_settings: Settings) -> None:
    """Configure structlog for JSON or console output on stderr."""
    if app_settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, app_settings.log_level.upper(), logging.INFO)
        ),
        cache_logger_on_first_use=True,
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="portal-pilot",
        description="Log into a web portal visually and capture its pages",
    )
    p.add_argument("profile", help="Name of the profile to run")
    p.add_argument(
        "--profiles",
        default=None,
        help="Path to the profiles YAML file (default: PORTAL_PILOT_PROFILES_PATH or profiles.yaml)",
    )
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )
    return p


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # credentials and PORTAL_PILOT_* may both come from the env file
    try:
        app_settings = Settings()
    except ValidationError as e:
        structlog.get_logger("portal_pilot.cli").error("invalid_settings", error=str(e))
        return 1
    configure_logging(app_settings)
    logger = structlog.get_logger("portal_pilot.cli")

    try:
        profiles = load_profiles(args.profiles or app_settings.profiles_path)
        if args.profile not in profiles:
            raise ProfileError(
                f"Unknown profile '{args.profile}' (available: {', '.join(sorted(profiles)) or 'none'})"
            )
        report = asyncio.run(run_profile(profiles[args.profile], app_settings))
    except PortalPilotError as e:
        logger.error("run_aborted", error=str(e))
        return 1

    print(report.model_dump_json(indent=2))
    return 0 if report.login.success else 2


if __name__ == "__main__":
    sys.exit(main())
