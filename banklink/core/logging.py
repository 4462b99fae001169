"""
Logging setup for the API process.

Aggregator credentials pass through this service on every request, so records
are scrubbed of bearer tokens and ``access_token``/``refresh_token`` values
before they reach a handler.
"""

import logging
import re
import sys

_SECRET_PATTERN = re.compile(
    r"(?P<prefix>Bearer\s+|(?:access|refresh)_token[\"']?\s*[:=]\s*[\"']?)"
    r"[A-Za-z0-9._~+/-]+=*",
    re.IGNORECASE,
)


def redact_secrets(message: str) -> str:
    return _SECRET_PATTERN.sub(lambda match: f"{match.group('prefix')}[redacted]", message)


class RedactSecretsFilter(logging.Filter):
    """Rewrite the rendered message with token values masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RedactSecretsFilter) for f in handler.filters):
            handler.addFilter(RedactSecretsFilter())
    # httpx emits one INFO line per outbound request.
    logging.getLogger("httpx").setLevel(logging.WARNING)


__all__ = ["RedactSecretsFilter", "configure_logging", "redact_secrets"]
