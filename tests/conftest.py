"""Provide common pytest fixtures."""

import pytest
from aioresponses import aioresponses

import easeehttp.__main__ as main
from easeehttp.config import EaseeConfig
from easeehttp.token import TokenManager
from tests.common import load_fixture

TEST_USER = "user@example.com"
TEST_PASSWORD = "fakepassword"
TEST_CHARGER = "EH123456"
TEST_SITE = "12345"
TEST_CIRCUIT = "67890"

TEST_API = "https://api.easee.com/api"
TEST_URL_LOGIN = f"{TEST_API}/accounts/login"
TEST_URL_REFRESH = f"{TEST_API}/accounts/refresh_token"
TEST_URL_CHARGER = f"{TEST_API}/chargers/{TEST_CHARGER}"
TEST_URL_STATE = f"{TEST_URL_CHARGER}/state"
TEST_URL_DYNAMIC = f"{TEST_API}/sites/{TEST_SITE}/circuits/{TEST_CIRCUIT}/dynamicCurrent"
TEST_URL_HUB = "https://streams.easee.com/hubs/chargers"


@pytest.fixture(name="config")
def config():
    """Return a configuration with valid credentials and defaults."""
    return EaseeConfig(
        username=TEST_USER,
        password=TEST_PASSWORD,
        charger=TEST_CHARGER,
        site=TEST_SITE,
        circuit=TEST_CIRCUIT,
    )


@pytest.fixture(name="token_manager")
def token_manager(config):
    """Return a token manager without tokens."""
    return TokenManager(config)


@pytest.fixture(name="test_account")
def test_account(mock_aioclient, config):
    """Return an account that logs in on first use."""
    mock_aioclient.post(
        TEST_URL_LOGIN,
        status=200,
        body=load_fixture("login.json"),
    )
    return main.Easee(config=config)


@pytest.fixture(name="test_account_auth_err")
def test_account_auth_err(mock_aioclient, config):
    """Return an account whose login is rejected."""
    mock_aioclient.post(
        TEST_URL_LOGIN,
        status=401,
        body='{"title": "Unauthorized", "status": 401, "detail": "Invalid username or password"}',
        repeat=True,
    )
    return main.Easee(config=config)


@pytest.fixture
def mock_aioclient():
    """Fixture to mock aioclient calls."""
    with aioresponses() as m:
        yield m
