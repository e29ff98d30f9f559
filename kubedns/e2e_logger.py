"""Logging used by the end-to-end test support code."""

from __future__ import annotations

import logging
from typing import NoReturn

from kubedns.logutil import log_with_prefix as _log_lines

_LOGGER_NAME = "kubedns.e2e"


class StandardLogger:
    """Logs through the standard logging module; fatal errors end the run."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger if logger is not None else logging.getLogger(_LOGGER_NAME)

    def fatal(self, message: object) -> NoReturn:
        """Log the message and stop the run by raising SystemExit."""
        text = str(message)
        self._logger.critical("%s", text)
        raise SystemExit(text)

    def log(self, message: object) -> None:
        """Log a message."""
        self._logger.info("%s", message)

    def log_with_prefix(self, prefix: str, text: str) -> None:
        """Log every line of text as "<prefix> | <line>"."""
        _log_lines(prefix, text, self.log)


LOG = StandardLogger()