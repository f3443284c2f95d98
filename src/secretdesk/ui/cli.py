from __future__ import annotations

import argparse
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from secretdesk.adapters.sqlalchemy import SqlAlchemyDefaultsProvisioner
from secretdesk.app import (
    CallbackFailure,
    current_profile,
    provision_defaults,
    run_oauth_callback,
    sign_out,
    start_sign_in,
)
from secretdesk.config import configure_logging

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="secretdesk sign-in tools")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sign_in = subparsers.add_parser("sign-in", help="Print the OAuth authorization URL")
    sign_in.add_argument(
        "--provider",
        type=str,
        help="Identity provider to sign in with (defaults to config)",
    )

    callback = subparsers.add_parser("callback", help="Complete sign-in from a redirect URL")
    callback.add_argument("url", type=str, help="Full URL the provider redirected to")
    callback.add_argument(
        "--local-provisioning",
        action="store_true",
        help="Create default projects in the local database instead of the remote RPC",
    )

    subparsers.add_parser("sign-out", help="Sign out and forget the stored session")
    subparsers.add_parser("whoami", help="Show the signed-in user's profile")

    provision = subparsers.add_parser(
        "provision",
        help="Create default projects for a user in the local database",
    )
    provision.add_argument("user_id", type=str, help="User id to provision")

    return parser.parse_args(list(argv))


def _complete_callback(args: argparse.Namespace) -> int:
    provisioner = SqlAlchemyDefaultsProvisioner() if args.local_provisioning else None
    outcome = run_oauth_callback(args.url, provisioner=provisioner)
    if isinstance(outcome, CallbackFailure):
        log.error("Authentication failed (%s): %s", outcome.kind, outcome.message)
        log.info(
            "Returning to %s in %.0f seconds",
            outcome.redirect_to,
            outcome.redirect_after_seconds,
        )
        return 1
    log.info("Successfully signed in as %s", outcome.user.email or outcome.user.id)
    log.info("Continue at %s", outcome.redirect_to)
    return 0


def _show_profile() -> int:
    profile = current_profile()
    if profile is None:
        log.info("Not signed in")
        return 1
    log.info(
        "Signed in as %s (id=%s, name=%s, provider=%s)",
        profile.email,
        profile.id,
        profile.full_name,
        profile.provider,
    )
    return 0


def _provision(args: argparse.Namespace) -> int:
    warning = provision_defaults(args.user_id, provisioner=SqlAlchemyDefaultsProvisioner())
    if warning is not None:
        log.warning("Provisioning incomplete (%s)", warning.category)
        return 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
    except SystemExit as exc:
        return int(exc.code or 0)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        if parsed_args.command == "sign-in":
            url = start_sign_in(parsed_args.provider)
            log.info("Open this URL in your browser to sign in:\n%s", url)
            return 0
        if parsed_args.command == "callback":
            return _complete_callback(parsed_args)
        if parsed_args.command == "sign-out":
            sign_out()
            return 0
        if parsed_args.command == "whoami":
            return _show_profile()
        if parsed_args.command == "provision":
            return _provision(parsed_args)
        raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error")
        return 1


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    sys.exit(main())


if __name__ == "__main__":
    run()
