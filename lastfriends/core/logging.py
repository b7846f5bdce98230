"""
Logging utilities for the FastAPI application and operator scripts.

Provides a consistent logging format and configuration.
"""

import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    # httpx logs every outbound request line at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def redact(session_token: str | None) -> str:
    """Shorten an opaque session token to a prefix that is safe to log."""
    if not session_token:
        return "<none>"
    return f"{session_token[:8]}..."


__all__ = ["configure_logging", "redact"]
