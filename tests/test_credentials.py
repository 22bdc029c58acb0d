"""Tests for credential validation."""

import dataclasses

import pytest

from easeehttp.credentials import (
    Credentials,
    sanitize_credentials,
    validate_credentials,
    validate_login_credentials,
)


@pytest.mark.parametrize(
    "username, password",
    [
        ("user@example.com", "secret"),
        ("first.last@sub.example.org", "a much longer password"),
        ("  padded@example.com  ", "  123456  "),
    ],
)
def test_valid_credentials(username, password):
    """Test well formed credentials are accepted."""
    result = validate_credentials({"username": username, "password": password})
    assert result.valid
    assert result.message == "Credentials are valid"
    assert result.field is None


def test_valid_credentials_object():
    """Test a Credentials instance is accepted."""
    result = validate_credentials(Credentials("user@example.com", "secret"))
    assert result.valid


@pytest.mark.parametrize(
    "credentials, message, field",
    [
        (None, "No credentials object found", "credentials"),
        ({}, "No credentials object found", "credentials"),
        ({"password": "secret"}, "Username is required", "username"),
        ({"username": "   ", "password": "secret"}, "Username is required", "username"),
        (
            {"username": "not-an-email", "password": "secret"},
            "Username must be a valid email address",
            "username",
        ),
        (
            {"username": "user@example", "password": "secret"},
            "Username must be a valid email address",
            "username",
        ),
        ({"username": "user@example.com"}, "Password is required", "password"),
        (
            {"username": "user@example.com", "password": "   "},
            "Password is required",
            "password",
        ),
        (
            {"username": "user@example.com", "password": "12345"},
            "Password must be at least 6 characters long",
            "password",
        ),
    ],
)
def test_invalid_credentials(credentials, message, field):
    """Test the first failing rule is reported with its field."""
    result = validate_credentials(credentials)
    assert not result.valid
    assert result.message == message
    assert result.field == field


def test_username_checked_before_password():
    """Test checks run in order."""
    result = validate_credentials({"username": "", "password": ""})
    assert result.field == "username"


def test_validate_login_credentials():
    """Test the presence only variant skips format checks."""
    assert validate_login_credentials("not-an-email", "1").valid

    result = validate_login_credentials("", "secret")
    assert not result.valid
    assert result.field == "username"
    assert result.message == "No username provided for login"

    result = validate_login_credentials("user", None)
    assert not result.valid
    assert result.field == "password"


def test_sanitize_credentials():
    """Test values are trimmed and empty ones dropped."""
    assert sanitize_credentials({"username": " user@example.com ", "password": " "}) == {
        "username": "user@example.com"
    }
    assert sanitize_credentials(None) == {}


def test_credentials_immutable_and_hidden():
    """Test credentials cannot change and hide the password."""
    credentials = Credentials("user@example.com", "secret")
    with pytest.raises(dataclasses.FrozenInstanceError):
        credentials.username = "other@example.com"
    assert "secret" not in repr(credentials)
