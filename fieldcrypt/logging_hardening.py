"""Logging Hardening and Redaction.

This module provides filters to prevent envelope components from appearing
in application logs.
"""
import logging
import re
from typing import Any, Mapping, Union

ENVELOPE_COMPONENTS = frozenset({"data", "iv", "salt", "tag"})

_B64 = r"[A-Za-z0-9+/]+={0,2}"

# Envelope components in JSON ("iv": "...") or Python repr ('iv': '...') form,
# and keyword-style assignments (iv=...).
SECRET_PATTERNS = [
    (re.compile(r'(["\'](?:data|iv|salt|tag)["\']:\s*["\'])' + _B64 + r'(["\'])'), r'\1[REDACTED]\2'),
    (re.compile(r'\b(data|iv|salt|tag)=(["\']?)' + _B64 + r'\2'), r'\1=[REDACTED]'),
]


def redact(text: str) -> str:
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _redact_arg(arg: Any) -> Any:
    if isinstance(arg, str):
        return redact(arg)
    if isinstance(arg, Mapping):
        return {
            k: "[REDACTED]" if k in ENVELOPE_COMPONENTS else _redact_arg(v)
            for k, v in arg.items()
        }
    return arg


class SecretRedactionFilter(logging.Filter):
    """Filter that redacts envelope-like patterns from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)

        # A single mapping argument is stored as record.args itself
        if isinstance(record.args, Mapping):
            record.args = _redact_arg(record.args)
        elif record.args:
            record.args = tuple(_redact_arg(arg) for arg in record.args)

        return True


def setup_logging(level: Union[str, int] = "INFO") -> None:
    """Configure the root logger and install the SecretRedactionFilter on its handlers."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    setup_logging_redaction()


def setup_logging_redaction() -> None:
    """Apply the SecretRedactionFilter to the root logger, its handlers and known loggers."""
    redact_filter = SecretRedactionFilter()

    root_logger = logging.getLogger()

    # Remove existing filters if any (to avoid duplicates)
    for f in root_logger.filters[:]:
        if isinstance(f, SecretRedactionFilter):
            root_logger.removeFilter(f)
    root_logger.addFilter(redact_filter)

    for handler in root_logger.handlers:
        if not any(isinstance(f, SecretRedactionFilter) for f in handler.filters):
            handler.addFilter(redact_filter)

    for name in list(logging.root.manager.loggerDict):
        logger = logging.getLogger(name)
        if not any(isinstance(f, SecretRedactionFilter) for f in logger.filters):
            logger.addFilter(redact_filter)

    logging.info("Logging redaction filters active.")
