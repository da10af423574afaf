"""Process-wide logging setup for the assignment service."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from backend.utils.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Third-party loggers that flood INFO with per-request noise.
_QUIET_LOGGERS = ("httpx", "httpcore", "multipart")

_configured = False


def configure_logging(level: Optional[str] = None, force: bool = False) -> None:
    """Install one stdout handler for every layer.

    Ledger mutations, remote-write failures and capacity rejections all go
    through this handler, so they interleave in a single stream. Pass
    ``force=True`` to re-apply after another library touched the root logger.
    """

    global _configured
    if _configured and not force:
        return

    resolved_level = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=resolved_level,
        format=LOG_FORMAT,
        stream=sys.stdout,
        force=force,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
