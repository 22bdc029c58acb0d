"""Tests for the account configuration."""

import logging

from easeehttp.config import EaseeConfig
from easeehttp.const import API_URL, DEFAULT_TIMEOUT, SIGNALR_URL


def test_defaults():
    """Test the cloud endpoints are the defaults."""
    config = EaseeConfig("user@example.com", "secret")
    assert config.rest_api_url == API_URL
    assert config.signalr_url == SIGNALR_URL
    assert config.timeout == DEFAULT_TIMEOUT
    assert config.charger is None
    assert "secret" not in repr(config)


def test_trailing_slash():
    """Test urls are normalized."""
    config = EaseeConfig(rest_api_url="https://proxy.test/api/")
    assert config.rest_api_url == "https://proxy.test/api"


def test_from_dict_aliases():
    """Test camelCase keys from flow configuration."""
    config = EaseeConfig.from_dict(
        {
            "username": "user@example.com",
            "password": "secret",
            "restApiUrl": "https://proxy.test/api/",
            "signalRUrl": "https://proxy.test/hub",
            "chargerId": "EH123456",
            "siteId": "12345",
            "circuit_id": "67890",
            "skipNegotiation": True,
            "maxLoginRetries": 2,
        }
    )
    assert config.rest_api_url == "https://proxy.test/api"
    assert config.signalr_url == "https://proxy.test/hub"
    assert config.charger == "EH123456"
    assert config.site == "12345"
    assert config.circuit == "67890"
    assert config.skip_negotiation is True
    assert config.max_login_retries == 2
    assert config.credentials.username == "user@example.com"


def test_from_dict_ignores_unknown_and_empty():
    """Test unknown keys and empty values fall back to defaults."""
    config = EaseeConfig.from_dict(
        {"username": "", "restApiUrl": "", "chargerId": None, "color": "blue"}
    )
    assert config.username == ""
    assert config.rest_api_url == API_URL
    assert config.charger is None


def test_debug_logging():
    """Test the debug flag raises the package log level."""
    logger = logging.getLogger("easeehttp")
    level = logger.level
    try:
        EaseeConfig(debug_logging=True)
        assert logger.level == logging.DEBUG
    finally:
        logger.setLevel(level)
