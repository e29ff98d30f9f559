"""Parsing and validation of federation names and domains."""

from __future__ import annotations

import json
import re


class InvalidFederationError(ValueError):
    """Raised when a federation flag, name or domain is invalid."""


DNS1123_LABEL_MAX_LENGTH = 63
DNS1123_SUBDOMAIN_MAX_LENGTH = 253

_LABEL_FMT = "[a-z0-9]([-a-z0-9]*[a-z0-9])?"
_SUBDOMAIN_FMT = _LABEL_FMT + r"(\." + _LABEL_FMT + ")*"
_LABEL_RE = re.compile(_LABEL_FMT)
_SUBDOMAIN_RE = re.compile(_SUBDOMAIN_FMT)

_LABEL_ERROR = (
    "a DNS-1123 label must consist of lower case alphanumeric characters or '-', "
    "and must start and end with an alphanumeric character "
    f"(e.g. 'my-name', or '123-abc', regex used for validation is '{_LABEL_FMT}')"
)
_SUBDOMAIN_ERROR = (
    "a DNS-1123 subdomain must consist of lower case alphanumeric characters, "
    "'-' or '.', and must start and end with an alphanumeric character "
    f"(e.g. 'example.com', regex used for validation is '{_SUBDOMAIN_FMT}')"
)

EXPECTED_KEY_EQUALS_VALUE = "invalid format, must be key=value"


def is_dns1123_label(value: str) -> list[str]:
    """Return the reasons the value is not a DNS-1123 label; empty if it is."""
    errors = []
    if len(value) > DNS1123_LABEL_MAX_LENGTH:
        errors.append(f"must be no more than {DNS1123_LABEL_MAX_LENGTH} characters")
    if not _LABEL_RE.fullmatch(value):
        errors.append(_LABEL_ERROR)
    return errors


def is_dns1123_subdomain(value: str) -> list[str]:
    """Return the reasons the value is not a DNS-1123 subdomain; empty if it is."""
    errors = []
    if len(value) > DNS1123_SUBDOMAIN_MAX_LENGTH:
        errors.append(f"must be no more than {DNS1123_SUBDOMAIN_MAX_LENGTH} characters")
    if not _SUBDOMAIN_RE.fullmatch(value):
        errors.append(_SUBDOMAIN_ERROR)
    return errors


def _quote_all(errors: list[str]) -> str:
    return "[" + " ".join(json.dumps(error) for error in errors) + "]"


def parse_federations_flag(value: str) -> dict[str, str]:
    """Parse a comma-separated list of "name=domain" pairs into a dict."""
    federations: dict[str, str] = {}
    if not value.strip():
        return federations

    for item in value.split(","):
        parts = item.strip().split("=", 1)
        if len(parts) != 2:
            raise InvalidFederationError(EXPECTED_KEY_EQUALS_VALUE)
        name, domain = (part.strip() for part in parts)
        validate_name(name)
        validate_domain(domain)
        federations[name] = domain

    return federations


def validate_name(name: str) -> None:
    """Raise InvalidFederationError unless name is a DNS-1123 label."""
    errors = is_dns1123_label(name)
    if errors:
        raise InvalidFederationError(
            f"{json.dumps(name)} not a valid federation name: {_quote_all(errors)}"
        )


def validate_domain(name: str) -> None:
    """Raise InvalidFederationError unless name is a DNS-1123 subdomain."""
    errors = is_dns1123_subdomain(name)
    if errors:
        raise InvalidFederationError(
            f"{json.dumps(name)} not a valid domain name: {_quote_all(errors)}"
        )