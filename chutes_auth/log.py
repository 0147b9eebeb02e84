"""Logging utilities for chutes-auth.

Modules log through child loggers of ``chutes_auth``
(``chutes_auth.flow``, ``chutes_auth.idp``, ...). This module owns the
package logger's handler and level and the redaction helper used
before any token or configuration payload reaches a log line.
"""

from __future__ import annotations

import logging
import sys

from typing import Any


class _LoggerHolder:
    """Holder for the package logger instance."""

    instance: logging.Logger | None = None


def get_logger() -> logging.Logger:
    """Get the chutes_auth logger instance.

    Returns
    -------
    logging.Logger
        The package logger configured with a stream handler.
    """
    if _LoggerHolder.instance is None:
        logger = logging.getLogger("chutes_auth")
        logger.setLevel(logging.WARNING)

        # Only add handler if none exists
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setLevel(logging.DEBUG)
            formatter = logging.Formatter("%(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        _LoggerHolder.instance = logger

    return _LoggerHolder.instance


def set_level(level: int | str) -> None:
    """Set the logging level.

    Parameters
    ----------
    level : int or str
        The logging level (e.g., logging.DEBUG, "DEBUG").
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    get_logger().setLevel(level)


def enable_debug() -> None:
    """Enable verbose logging of flow transitions and IDP calls."""
    set_level(logging.DEBUG)


# Keys that should be redacted in log output
_SENSITIVE_KEYS = frozenset(
    {
        "secret",
        "password",
        "token",
        "verifier",
        "code",
        "credential",
        "authorization",
    }
)

REDACTED = "[REDACTED]"


def redact_sensitive_data(
    data: dict[str, Any] | list[Any] | str | None, max_depth: int = 5
) -> dict[str, Any] | list[Any] | str | None:
    """Redact sensitive values from data for safe logging.

    Recursively traverses dicts/lists and replaces values for keys
    that match sensitive patterns with ``[REDACTED]``.

    Parameters
    ----------
    data : dict or list or str or None
        The data to redact.
    max_depth : int, optional
        Maximum recursion depth (default: 5).

    Returns
    -------
    dict or list or str or None
        A copy of the data with sensitive values redacted.
    """
    if max_depth <= 0:
        return "[MAX_DEPTH]"

    if data is None:
        return None

    if isinstance(data, dict):
        result: dict[str, Any] = {}
        for k, v in data.items():
            key_lower = k.lower() if isinstance(k, str) else str(k).lower()
            if any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS):
                result[k] = REDACTED
            else:
                result[k] = redact_sensitive_data(v, max_depth - 1)
        return result

    if isinstance(data, list):
        return [redact_sensitive_data(item, max_depth - 1) for item in data]

    return data
