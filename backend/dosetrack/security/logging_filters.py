"""Logging filters that scrub bearer tokens from log output."""

from __future__ import annotations

import logging
import re

_SENSITIVE_PATTERN = re.compile(
    r"(Authorization: Bearer\s+[\w\.-]+|access_token\"\s*:\s*\"[^\"]+\"|eyJ[\w-]+\.[\w-]+\.[\w-]+)",
    re.IGNORECASE,
)
_REDACTED = "**REDACTED**"


def redact(message: str) -> str:
    """Replace bearer headers and bare JWTs in ``message``."""
    return _SENSITIVE_PATTERN.sub(_REDACTED, message)


class SensitiveFilter(logging.Filter):
    """Redact tokens in log messages and string arguments."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(
                redact(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        return True


def install_sensitive_filter(*logger_names: str) -> None:
    """Attach a single SensitiveFilter to each named logger."""
    for name in logger_names:
        target = logging.getLogger(name)
        if not any(isinstance(flt, SensitiveFilter) for flt in target.filters):
            target.addFilter(SensitiveFilter())


__all__ = ["SensitiveFilter", "install_sensitive_filter", "redact"]
