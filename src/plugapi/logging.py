"""Logging configuration using loguru.

The library logs user-facing notices (absorbed credential failures, stored
credentials, refreshed tokens) and optional request traces through loguru.
Applications that want a different format call :func:`setup_logging`.
"""

import sys

from loguru import logger

from plugapi.config import get_settings

_HUMAN_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> | "
    "<level>{message}</level>\n"
    "{exception}"
)


def setup_logging(log_level: str | None = None, json_logs: bool = False) -> int:
    """Configure loguru for the Plug client.

    Args:
        log_level: Minimum log level to output. Defaults to ``PLUG_LOG_LEVEL``
            (see :class:`plugapi.config.Settings`).
        json_logs: If True, output serialized JSON records instead of text.

    Returns:
        The id of the installed handler, usable with ``logger.remove()``.
    """
    if log_level is None:
        log_level = get_settings().log_level

    # Remove default handler
    logger.remove()

    if json_logs:
        return logger.add(
            sys.stderr,
            format="{message}",
            level=log_level,
            serialize=True,
        )

    return logger.add(
        sys.stderr,
        format=_HUMAN_FORMAT,
        level=log_level,
        colorize=True,
    )


def redact_authorization(headers: dict[str, str]) -> dict[str, str]:
    """Return a copy of ``headers`` with the bearer token masked."""
    redacted = {}
    for key, value in headers.items():
        if key.lower() == "authorization":
            scheme = value.split(" ", 1)[0] if " " in value else ""
            value = f"{scheme} <redacted>".strip()
        redacted[key] = value
    return redacted
