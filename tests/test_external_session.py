"""Test external session management."""

from unittest.mock import MagicMock

import aiohttp
import pytest
from yarl import URL

from easeehttp.__main__ import Easee
from easeehttp.websocket import EaseeStream
from tests.common import load_fixture
from tests.conftest import TEST_CHARGER, TEST_URL_HUB, TEST_URL_LOGIN, TEST_URL_STATE

pytestmark = pytest.mark.asyncio


async def test_external_session_provided(mock_aioclient, config):
    """Test that an external session is used for login and requests."""
    mock_aioclient.post(TEST_URL_LOGIN, status=200, body=load_fixture("login.json"))
    mock_aioclient.get(
        TEST_URL_STATE, status=200, body=load_fixture("charger_state.json")
    )

    async with aiohttp.ClientSession() as session:
        account = Easee(config=config, session=session)
        assert account._session is session

        state = await account.charger_state()
        assert state["totalPower"].value == 7.2

        await account.close()
        assert not session.closed

    assert len(mock_aioclient.requests[("POST", URL(TEST_URL_LOGIN))]) == 1


async def test_closed_external_session(mock_aioclient, config):
    """Test a closed external session falls back to a temporary one."""
    mock_aioclient.post(TEST_URL_LOGIN, status=200, body=load_fixture("login.json"))
    mock_aioclient.get(TEST_URL_STATE, status=200, body="{}")

    session = aiohttp.ClientSession()
    await session.close()
    account = Easee(config=config, session=session)

    assert await account.charger_state() == {}


async def test_stream_external_session(token_manager):
    """Test the stream leaves an external session open."""
    async with aiohttp.ClientSession() as session:
        stream = EaseeStream(
            TEST_URL_HUB, TEST_CHARGER, token_manager, MagicMock(), session
        )
        assert stream._get_session() is session

        await stream.close()
        assert not session.closed


async def test_stream_internal_session(token_manager):
    """Test the stream closes the session it created."""
    stream = EaseeStream(TEST_URL_HUB, TEST_CHARGER, token_manager, MagicMock())
    session = stream._get_session()
    assert stream._session_external is False

    await stream.close()
    assert session.closed
    assert stream._session is None
