"""Line-by-line logging of multi-line text under a prefix."""

from __future__ import annotations

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


def _default_log(message: str) -> None:
    logger.info("%s", message)


def log_with_prefix(
    prefix: str, text: str, log_func: Callable[[str], None] | None = None
) -> None:
    """Log every line of text as "<prefix> | <line>" so output stays readable."""
    emit = log_func if log_func is not None else _default_log
    for line in text.split("\n"):
        emit(f"{prefix} | {line}")