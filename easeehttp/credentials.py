"""Credential validation for the Easee cloud account."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, NamedTuple

from .const import MIN_PASSWORD_LENGTH

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class Credentials:
    """Username and password of one Easee account."""

    username: str
    password: str = field(repr=False)


class ValidationResult(NamedTuple):
    """Outcome of a credential check."""

    valid: bool
    message: str
    field: str | None = None


def _get(credentials: Any, key: str) -> Any:
    if isinstance(credentials, Mapping):
        return credentials.get(key)
    return getattr(credentials, key, None)


def _stripped(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()


def validate_credentials(credentials: Credentials | Mapping | None) -> ValidationResult:
    """Validate credentials for completeness and basic format.

    Checks run in order and the first failure is returned: credentials
    present, username set, username shaped like an email address, password
    set, password at least six characters long.
    """
    if not credentials:
        return ValidationResult(False, "No credentials object found", "credentials")

    username = _stripped(_get(credentials, "username"))
    password = _stripped(_get(credentials, "password"))

    if not username:
        return ValidationResult(False, "Username is required", "username")
    if not EMAIL_PATTERN.match(username):
        return ValidationResult(
            False, "Username must be a valid email address", "username"
        )
    if not password:
        return ValidationResult(False, "Password is required", "password")
    if len(password) < MIN_PASSWORD_LENGTH:
        return ValidationResult(
            False,
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
            "password",
        )
    return ValidationResult(True, "Credentials are valid")


def validate_login_credentials(username: Any, password: Any) -> ValidationResult:
    """Check that a username and password were provided for a direct login."""
    if not username:
        return ValidationResult(False, "No username provided for login", "username")
    if not password:
        return ValidationResult(False, "No password provided for login", "password")
    return ValidationResult(True, "Login credentials provided")


def sanitize_credentials(credentials: Credentials | Mapping | None) -> dict[str, str]:
    """Return trimmed credentials without empty values."""
    sanitized: dict[str, str] = {}
    if not credentials:
        return sanitized
    for key in ("username", "password"):
        value = _stripped(_get(credentials, key))
        if value:
            sanitized[key] = value
    return sanitized
