"""The --version flag and version printing."""

from __future__ import annotations

import argparse
import json
import sys
from enum import IntEnum

VERSION = "UNKNOWN"

_RAW = "raw"
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class VersionValue(IntEnum):
    """What the --version flag asks for."""

    FALSE = 0
    TRUE = 1
    RAW = 2


def parse_version_value(value: str) -> VersionValue:
    """Parse "raw" or a boolean word; raises ValueError otherwise."""
    if value == _RAW:
        return VersionValue.RAW
    if value in _TRUE_WORDS:
        return VersionValue.TRUE
    if value in _FALSE_WORDS:
        return VersionValue.FALSE
    raise ValueError(f"invalid version value {value!r}")


def format_version_value(value: VersionValue) -> str:
    """Text form of a flag value: "raw", "true" or "false"."""
    if value is VersionValue.RAW:
        return _RAW
    return "true" if value is VersionValue.TRUE else "false"


def _version_type(text: str) -> VersionValue:
    try:
        return parse_version_value(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def add_version_argument(parser: argparse.ArgumentParser) -> argparse.Action:
    """Add --version to parser; a bare --version means --version=true."""
    return parser.add_argument(
        "--version",
        nargs="?",
        const=VersionValue.TRUE,
        default=VersionValue.FALSE,
        type=_version_type,
        metavar="VERSION",
        help="Print version information and quit",
    )


def print_and_exit_if_requested(value: VersionValue) -> None:
    """Print the version and exit with status 0 if the flag asked for it."""
    if value is VersionValue.RAW:
        print(json.dumps(VERSION))
        sys.exit(0)
    if value is VersionValue.TRUE:
        print(f"Kube-DNS {VERSION}")
        sys.exit(0)