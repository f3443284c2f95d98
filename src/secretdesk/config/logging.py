"""Logging setup for the secretdesk CLI."""

from __future__ import annotations

import logging
import re

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_SECRET_PARAM = re.compile(
    r"\b(?P<name>access_token|refresh_token|provider_token|code|code_verifier)=(?P<value>[^&#\s]+)"
)


class RedactTokensFilter(logging.Filter):
    """Masks OAuth credentials that end up in URLs passed to log calls."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_PARAM.sub(r"\g<name>=***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Configure the root logger for CLI output.

    A thin wrapper over ``logging.basicConfig``; pass ``force=True`` to replace
    handlers installed earlier. Every root handler gets ``RedactTokensFilter``.
    """

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S", force=force)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RedactTokensFilter) for f in handler.filters):
            handler.addFilter(RedactTokensFilter())
    # httpx logs every request line at INFO, including token grant URLs
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
