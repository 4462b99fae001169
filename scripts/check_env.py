"""Utility for verifying that required environment configuration is intact.

Run it before starting the API. It performs two checks:

1. It instantiates ``AppSettings`` from the provided ``.env`` file, surfacing
   missing TrueLayer, session or JWT secrets before the first link attempt
   fails at runtime.
2. It can record and verify a checksum for the ``.env`` file so unexpected
   edits (for example, from an accidental ``git pull``) are detected.

Example usages::

    # Validate required settings are present and record the expected checksum.
    python -m scripts.check_env record --env-file /srv/banklink/.env \
        --hash-file /srv/banklink/.env.sha256

    # Run later (e.g. from cron/systemd) to alert on drift.
    python -m scripts.check_env verify --env-file /srv/banklink/.env \
        --hash-file /srv/banklink/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from banklink.core.config import AppSettings, _load_env_file

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5

MIN_SECRET_LENGTH = 32


def _compute_hash(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _load_settings(env_file: Path) -> AppSettings:
    """Load settings the same way the API does, seeded from ``env_file``."""
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _settings_warnings(settings: AppSettings) -> list[str]:
    """Non-fatal problems worth surfacing before a deploy."""
    warnings = []
    if len(settings.session.secret_key) < MIN_SECRET_LENGTH:
        warnings.append(
            f"SESSION_SECRET is shorter than {MIN_SECRET_LENGTH} characters."
        )
    if len(settings.security.jwt_secret) < MIN_SECRET_LENGTH:
        warnings.append(f"JWT_SECRET is shorter than {MIN_SECRET_LENGTH} characters.")
    if not settings.security.token_encryption_secret:
        warnings.append(
            "TOKEN_ENCRYPTION_SECRET is unset; stored tokens are keyed on TL_CLIENT_SECRET "
            "and become unreadable if that secret is rotated."
        )
    if settings.is_production and not settings.truelayer.redirect_uri.startswith("https://"):
        warnings.append("TL_REDIRECT_URI must use https in production.")
    return warnings


def _format_validation_error(exc: ValidationError) -> str:
    lines = []
    for error in exc.errors():
        variable = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
        lines.append(f"  {variable}: {error.get('msg')}")
    return "\n".join(lines)


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    """Compare the current checksum to the recorded baseline."""
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Re-run with the 'record' command to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _compute_hash(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}\n"
        "Investigate recent changes before restarting the API.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


_COMMANDS = {
    "record": ("Validate settings and store the checksum baseline.", True),
    "verify": ("Validate settings and compare the checksum with the baseline.", True),
    "check": ("Validate settings without touching any checksum files.", False),
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate bank-link API settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    for name, (help_text, needs_hash_file) in _COMMANDS.items():
        subparser = subparsers.add_parser(name, help=help_text)
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )
        if needs_hash_file:
            subparser.add_argument(
                "--hash-file",
                required=True,
                type=Path,
                help="Location of the checksum baseline.",
            )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    if not env_file.exists():
        print(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    try:
        settings = _load_settings(env_file)
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{_format_validation_error(exc)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error during validation: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    for warning in _settings_warnings(settings):
        print(f"warning: {warning}", file=sys.stderr)

    handlers: dict[str, Callable[[], int]] = {
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "check": lambda: EXIT_OK,
    }
    return handlers[args.command]()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
