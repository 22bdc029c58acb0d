"""Library tests."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from yarl import URL

import easeehttp.__main__ as main
from easeehttp.config import EaseeConfig
from easeehttp.exceptions import (
    AlreadyListening,
    AuthenticationError,
    InvalidMethod,
    MissingParameter,
    NetworkError,
    RequestError,
    TerminalAuthError,
    UnknownTopic,
)
from easeehttp.token import SIGNAL_AUTH_STATE, STATUS_AUTHENTICATED
from easeehttp.websocket import STATE_STOPPED, EaseeStream
from tests.common import load_fixture
from tests.conftest import (
    TEST_API,
    TEST_CHARGER,
    TEST_PASSWORD,
    TEST_URL_CHARGER,
    TEST_URL_DYNAMIC,
    TEST_URL_LOGIN,
    TEST_URL_STATE,
    TEST_USER,
)

pytestmark = pytest.mark.asyncio

TEST_URL_ACCESS = f"{TEST_URL_CHARGER}?alwaysGetChargerAccessLevel=true"
TEST_URL_CONFIG = f"{TEST_URL_CHARGER}/config"
TEST_URL_DETAILS = f"{TEST_URL_CHARGER}/details"


async def test_charger_state(test_account, mock_aioclient):
    """Test the charger state is decoded by name."""
    mock_aioclient.get(
        TEST_URL_STATE,
        status=200,
        body=load_fixture("charger_state.json"),
    )
    state = await test_account.charger_state()

    assert state["chargerOpMode"].observation_id == 109
    assert "Charging" in state["chargerOpMode"].value_text
    assert state["totalPower"].value == 7.2
    assert state["totalPower"].unit == "W"
    assert state["inVoltageT1T2"].observation_id == 190
    assert state["chargerFirmware"].observation_id is None
    assert state["chargerFirmware"].value == 302

    request = mock_aioclient.requests[("GET", URL(TEST_URL_STATE))][0]
    assert request.kwargs["headers"]["Authorization"].startswith("Bearer ")


async def test_charger_state_unexpected(test_account, mock_aioclient):
    """Test a non object state is an error."""
    mock_aioclient.get(TEST_URL_STATE, status=200, body="[]")
    with pytest.raises(main.ParseJSONError):
        await test_account.charger_state()


async def test_get_charger(test_account, mock_aioclient):
    """Test the charger is read with its access level."""
    mock_aioclient.get(TEST_URL_ACCESS, status=200, body=load_fixture("charger.json"))
    charger = await test_account.get_charger()
    assert charger["id"] == TEST_CHARGER
    assert charger["name"] == "Garage"


async def test_single_login(test_account, mock_aioclient):
    """Test consecutive calls reuse the token."""
    mock_aioclient.get(TEST_URL_CONFIG, status=200, body="{}", repeat=True)
    await test_account.generic_call("/chargers/EH123456/config")
    await test_account.generic_call("/chargers/EH123456/config")
    assert len(mock_aioclient.requests[("POST", URL(TEST_URL_LOGIN))]) == 1
    assert test_account.auth_status == STATUS_AUTHENTICATED


async def test_invalid_credentials_no_request(mock_aioclient):
    """Test invalid credentials fail before any request."""
    account = main.Easee("not-an-email", TEST_PASSWORD)
    with pytest.raises(AuthenticationError) as err:
        await account.generic_call("/chargers/EH123456/config")
    assert not isinstance(err.value, TerminalAuthError)
    assert str(err.value) == "Username must be a valid email address"
    assert not mock_aioclient.requests


async def test_auth_err(test_account_auth_err):
    """Test a rejected login."""
    with pytest.raises(AuthenticationError, match="Invalid username or password"):
        await test_account_auth_err.charger_state()


async def test_auth_err_terminal(test_account_auth_err, mock_aioclient):
    """Test the terminal state after exhausted logins."""
    test_account_auth_err.config.max_login_retries = 1
    with pytest.raises(TerminalAuthError):
        await test_account_auth_err.charger_state()
    with pytest.raises(TerminalAuthError):
        await test_account_auth_err.charger_state()
    assert len(mock_aioclient.requests[("POST", URL(TEST_URL_LOGIN))]) == 1


async def test_request_error(test_account, mock_aioclient):
    """Test error responses carry the status."""
    mock_aioclient.get(
        TEST_URL_DETAILS,
        status=404,
        body='{"title": "Not Found", "status": 404}',
    )
    with pytest.raises(RequestError) as err:
        await test_account.generic_call("/chargers/EH123456/details")
    assert err.value.status == 404
    assert str(err.value) == "HTTP 404: Not Found"


async def test_request_unauthorized(test_account, mock_aioclient):
    """Test a rejected access token."""
    mock_aioclient.get(TEST_URL_DETAILS, status=401, body="")
    with pytest.raises(AuthenticationError):
        await test_account.generic_call("/chargers/EH123456/details")


async def test_request_timeout(test_account, mock_aioclient):
    """Test timeouts are network errors."""
    mock_aioclient.get(TEST_URL_ACCESS, exception=asyncio.TimeoutError())
    with pytest.raises(NetworkError):
        await test_account.get_charger()


async def test_request_non_json(test_account, mock_aioclient):
    """Test plain text responses are returned as text."""
    mock_aioclient.get(TEST_URL_CONFIG, status=200, body="OK")
    assert await test_account.generic_call("/chargers/EH123456/config") == "OK"


async def test_process_request_invalid_method(test_account):
    """Test unsupported methods are rejected."""
    with pytest.raises(InvalidMethod):
        await test_account.process_request(TEST_URL_CONFIG, method="patch")


async def test_send_command(test_account, mock_aioclient):
    """Test commands post with an empty body."""
    url = f"{TEST_URL_CHARGER}/commands/start_charging"
    mock_aioclient.post(url, status=202, body="")
    assert await test_account.send_command("start_charging") is None
    assert len(mock_aioclient.requests[("POST", URL(url))]) == 1


async def test_send_command_unknown(test_account):
    """Test unknown commands are rejected."""
    with pytest.raises(UnknownTopic):
        await test_account.send_command("self_destruct")


async def test_dynamic_current(test_account, mock_aioclient):
    """Test reading and updating the circuit limits."""
    mock_aioclient.get(
        TEST_URL_DYNAMIC, status=200, body=load_fixture("dynamic_current.json")
    )
    mock_aioclient.post(TEST_URL_DYNAMIC, status=200, body="")

    limits = await test_account.get_dynamic_current()
    assert limits["phase1"] == 16.0

    await test_account.set_dynamic_current(phase1=10, phase2=10, phase3=10)
    request = mock_aioclient.requests[("POST", URL(TEST_URL_DYNAMIC))][0]
    assert request.kwargs["json"] == {"phase1": 10, "phase2": 10, "phase3": 10}


async def test_set_dynamic_current_no_limits(test_account):
    """Test an update needs at least one limit."""
    with pytest.raises(ValueError):
        await test_account.set_dynamic_current()


async def test_dispatch_ok(test_account, mock_aioclient):
    """Test a successful message."""
    mock_aioclient.get(TEST_URL_CONFIG, status=200, body='{"isEnabled": true}')
    result = await test_account.dispatch({"topic": "charger_config"})
    assert result == {
        "status": "ok",
        "topic": "/chargers/EH123456/config",
        "payload": {"isEnabled": True},
    }


async def test_dispatch_direct_path(test_account, mock_aioclient):
    """Test a direct path with a body."""
    url = f"{TEST_API}/chargers/EH123456/settings"
    mock_aioclient.post(url, status=200, body="")
    result = await test_account.dispatch(
        {"payload": {"path": "chargers/EH123456/settings", "body": {"enabled": True}}}
    )
    assert result["status"] == "ok"
    assert result["topic"] == "/chargers/EH123456/settings"
    request = mock_aioclient.requests[("POST", URL(url))][0]
    assert request.kwargs["json"] == {"enabled": True}


async def test_dispatch_dynamic_current(test_account, mock_aioclient):
    """Test a current update message."""
    mock_aioclient.post(TEST_URL_DYNAMIC, status=200, body="")
    result = await test_account.dispatch(
        {"topic": "dynamic_current", "payload": {"dynamicChargerCurrent": 16}}
    )
    assert result["status"] == "ok"
    request = mock_aioclient.requests[("POST", URL(TEST_URL_DYNAMIC))][0]
    assert request.kwargs["json"] == {"dynamicChargerCurrent": 16}


async def test_dispatch_login(test_account):
    """Test the login topic goes through the token manager."""
    result = await test_account.dispatch({"topic": "login"})
    assert result["status"] == "ok"
    assert result["topic"] == "/accounts/login"
    assert result["payload"]["refreshToken"] == "mock-refresh-token-12345"
    assert test_account.tokens.access_token


async def test_dispatch_missing_parameter(mock_aioclient):
    """Test a missing id is reported in the message."""
    account = main.Easee(config=EaseeConfig(username=TEST_USER, password=TEST_PASSWORD))
    result = await account.dispatch({"topic": "charger_details"})
    assert result["status"] == "error"
    assert result["payload"] is None
    assert result["topic"].startswith("charger_details failed: charger missing")
    assert not mock_aioclient.requests


async def test_dispatch_unknown_topic(test_account):
    """Test an unknown topic is reported in the message."""
    result = await test_account.dispatch({"topic": "lights_on"})
    assert result["status"] == "error"
    assert result["topic"] == "Unknown topic 'lights_on'"


async def test_dispatch_request_error(test_account, mock_aioclient):
    """Test a failed call is reported with its url."""
    mock_aioclient.get(
        TEST_URL_DETAILS,
        status=404,
        body=json.dumps({"title": "Not Found", "status": 404}),
    )
    result = await test_account.dispatch({"topic": "charger_details"})
    assert result == {
        "status": "error",
        "topic": "charger_details: failed",
        "payload": None,
        "error": "HTTP 404: Not Found",
        "url": "/chargers/EH123456/details",
    }


async def test_dispatch_auth_error(test_account_auth_err):
    """Test authentication failures are reported, not raised."""
    result = await test_account_auth_err.dispatch({"topic": "charger_state"})
    assert result["status"] == "error"
    assert result["topic"] == "charger_state: failed"


async def test_callback(test_account, mock_aioclient):
    """Test status changes reach the callback."""
    test_account.callback = MagicMock()
    mock_aioclient.get(TEST_URL_CONFIG, status=200, body="{}")
    await test_account.generic_call("/chargers/EH123456/config")
    test_account.callback.assert_called_with(SIGNAL_AUTH_STATE, STATUS_AUTHENTICATED)


async def test_callback_async(test_account):
    """Test coroutine callbacks are awaited."""
    test_account.callback = AsyncMock()
    await test_account._update_status("ProductUpdate", {"id": 1}, None)
    test_account.callback.assert_awaited_once_with("ProductUpdate", {"id": 1})


async def test_ws_start_missing_charger():
    """Test the stream needs a charger."""
    account = main.Easee(TEST_USER, TEST_PASSWORD)
    with pytest.raises(MissingParameter):
        account.ws_start()


async def test_ws_start_and_disconnect(test_account):
    """Test the listener tasks are started once and cancelled."""
    assert test_account.ws_state == STATE_STOPPED
    with patch.object(EaseeStream, "listen", new_callable=AsyncMock):
        test_account.ws_start()
        assert test_account.websocket.charger_id == TEST_CHARGER
        assert len(test_account.tasks) == 2

        with pytest.raises(AlreadyListening):
            test_account.ws_start()

        await test_account.ws_disconnect()

    assert test_account.ws_state == STATE_STOPPED
    assert test_account.tasks == []


async def test_ws_start_new_charger(test_account):
    """Test a different charger gets a new stream."""
    with patch.object(EaseeStream, "listen", new_callable=AsyncMock):
        test_account.ws_start()
        first = test_account.websocket
        await test_account.ws_disconnect()

        test_account.ws_start("EH999999")
        assert test_account.websocket is not first
        assert test_account.websocket.charger_id == "EH999999"
        await test_account.close()


async def test_start_and_close(test_account):
    """Test background token checks follow the account."""
    test_account.start()
    assert test_account.tokens._check_task is not None
    await test_account.close()
    assert test_account.tokens._check_task is None
