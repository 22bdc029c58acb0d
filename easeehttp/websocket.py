"""Websocket class for the Easee streaming hub.

The hub speaks the SignalR JSON protocol. Only the parts needed to receive
charger events and send one subscription call are implemented: negotiation,
the handshake, invocations, pings and the close record.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Callable
from urllib.parse import urlencode

import aiohttp  # type: ignore

from .const import DEFAULT_RECONNECT_INTERVAL, DEFAULT_TIMEOUT
from .exceptions import HubError
from .observations import parse_observation

_LOGGER = logging.getLogger(__name__)

RECORD_SEPARATOR = "\x1e"
HANDSHAKE = {"protocol": "json", "version": 1}
MAX_REDIRECTS = 5

TYPE_INVOCATION = 1
TYPE_COMPLETION = 3
TYPE_PING = 6
TYPE_CLOSE = 7

SUBSCRIBE = "SubscribeWithCurrentState"
EVENT_PRODUCT_UPDATE = "ProductUpdate"
EVENT_CHARGER_UPDATE = "ChargerUpdate"
EVENT_COMMAND_RESPONSE = "CommandResponse"
EVENTS = (EVENT_PRODUCT_UPDATE, EVENT_CHARGER_UPDATE, EVENT_COMMAND_RESPONSE)

ERROR_AUTH_FAILURE = "Authorization failure"
ERROR_AUTH_UNAVAILABLE = "No access token available"
ERROR_HANDSHAKE = "Handshake failed"

SIGNAL_CONNECTION_STATE = "websocket_state"
STATE_CONNECTED = "connected"
STATE_CONNECTING = "connecting"
STATE_DISCONNECTED = "disconnected"
STATE_STOPPED = "stopped"
STATE_SUBSCRIBED = "subscribed"


def encode_record(message: dict) -> str:
    """Serialize one hub record."""
    return json.dumps(message) + RECORD_SEPARATOR


def decode_records(data: str) -> list[dict]:
    """Split a frame into hub records, skipping malformed ones."""
    records = []
    for chunk in data.split(RECORD_SEPARATOR):
        if not chunk.strip():
            continue
        try:
            record = json.loads(chunk)
        except ValueError:
            _LOGGER.warning("Invalid hub record: %s", chunk)
            continue
        if isinstance(record, dict):
            records.append(record)
    return records


def websocket_url(url: str, query: dict[str, Any]) -> str:
    """Turn an http(s) hub url into a websocket url with a query."""
    if url.startswith("http"):
        url = "ws" + url[4:]
    params = {key: value for key, value in query.items() if value}
    if not params:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


class EaseeStream:
    """Represent a streaming connection for one Easee charger."""

    def __init__(
        self,
        url: str,
        charger_id: str,
        token_manager,
        callback: Callable[..., Any],
        session: aiohttp.ClientSession | None = None,
        reconnect_interval: float = DEFAULT_RECONNECT_INTERVAL,
        skip_negotiation: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize an EaseeStream instance."""
        self.url = url.rstrip("/")
        self.charger_id = charger_id
        self.tokens = token_manager
        self.callback = callback
        self.reconnect_interval = reconnect_interval
        self.skip_negotiation = skip_negotiation
        self.timeout = timeout
        self.closing = False
        self._session = session
        self._session_external = session is not None
        self._state = STATE_DISCONNECTED
        self._error_reason: Any = None
        self._client = None

    @property
    def state(self):
        """Return the current state."""
        return self._state

    @state.setter
    async def state(self, value):
        """Set the state."""
        self._state = value
        _LOGGER.debug("Stream %s", value)
        await self._notify(SIGNAL_CONNECTION_STATE, value, self._error_reason)
        self._error_reason = None

    async def _notify(self, msgtype, data, error):
        if inspect.iscoroutinefunction(self.callback):
            await self.callback(msgtype, data, error)
        else:
            self.callback(msgtype, data, error)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._session_external = False
        return self._session

    async def negotiate(self, session: aiohttp.ClientSession) -> str:
        """Return the websocket url for a new hub connection."""
        url = self.url
        token = self.tokens.access_token
        if self.skip_negotiation:
            return websocket_url(url, {"access_token": token})

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        for _ in range(MAX_REDIRECTS):
            _LOGGER.debug("Negotiating with %s", url)
            async with session.post(
                f"{url}/negotiate?negotiateVersion=1",
                headers={"Authorization": f"Bearer {token}"},
                timeout=timeout,
            ) as resp:
                resp.raise_for_status()
                data = await resp.json(content_type=None)

            if not isinstance(data, dict):
                raise HubError("Unexpected negotiate response")
            if data.get("error"):
                raise HubError(data["error"])
            if data.get("url"):
                # Redirected to another service, negotiate again there
                url = data["url"].split("?", maxsplit=1)[0].rstrip("/")
                token = data.get("accessToken") or token
                continue

            connection = data.get("connectionToken") or data.get("connectionId")
            return websocket_url(url, {"id": connection, "access_token": token})
        raise HubError("Too many negotiate redirects")

    async def running(self):
        """Open a persistent hub connection and act on events."""
        await EaseeStream.state.fset(self, STATE_CONNECTING)

        if not await self.tokens.ensure_authenticated():
            if self.tokens.terminal:
                self._error_reason = ERROR_AUTH_FAILURE
                await EaseeStream.state.fset(self, STATE_STOPPED)
                return
            self._error_reason = ERROR_AUTH_UNAVAILABLE
            await self._reconnect_later()
            return

        session = self._get_session()
        try:
            uri = await self.negotiate(session)
            async with session.ws_connect(uri, heartbeat=15) as ws_client:
                self._client = ws_client
                await ws_client.send_str(encode_record(HANDSHAKE))
                handshake = await ws_client.receive()
                if handshake.type != aiohttp.WSMsgType.TEXT:
                    raise HubError(ERROR_HANDSHAKE)
                records = decode_records(handshake.data)
                if not records or records[0].get("error"):
                    reason = records[0].get("error") if records else ERROR_HANDSHAKE
                    raise HubError(reason)
                await EaseeStream.state.fset(self, STATE_CONNECTED)

                await self.invoke(SUBSCRIBE, [self.charger_id, True])
                await EaseeStream.state.fset(self, STATE_SUBSCRIBED)
                if await self._process(records[1:]):
                    await self._receive(ws_client)

        except aiohttp.ClientResponseError as error:
            if error.status == 401:
                _LOGGER.error("Access token rejected by hub: %s", error)
                self._error_reason = ERROR_AUTH_FAILURE
            else:
                _LOGGER.error("Unexpected response received: %s", error)
                self._error_reason = error
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            _LOGGER.error("Stream connection failed: %s", error)
            self._error_reason = error
        except HubError as error:
            _LOGGER.error("Hub rejected connection: %s", error)
            self._error_reason = error
        except Exception as error:  # pylint: disable=broad-except
            if not self.closing:
                _LOGGER.exception("Unexpected exception occurred: %s", error)
                self._error_reason = error
        finally:
            self._client = None

        await self._reconnect_later()

    async def _receive(self, ws_client):
        async for message in ws_client:
            if self.closing:
                break

            if message.type == aiohttp.WSMsgType.TEXT:
                if not await self._process(decode_records(message.data)):
                    break

            elif message.type == aiohttp.WSMsgType.CLOSED:
                _LOGGER.warning("Stream connection closed")
                break

            elif message.type == aiohttp.WSMsgType.ERROR:
                _LOGGER.error("Stream error")
                break

    async def _reconnect_later(self):
        if self.closing:
            return
        await EaseeStream.state.fset(self, STATE_DISCONNECTED)
        _LOGGER.debug("Reconnecting in %ss", self.reconnect_interval)
        await asyncio.sleep(self.reconnect_interval)

    async def _process(self, records: list[dict]) -> bool:
        """Handle hub records, returning False when the hub closed."""
        for record in records:
            msgtype = record.get("type")
            if msgtype == TYPE_INVOCATION:
                await self._dispatch(record.get("target"), record.get("arguments"))
            elif msgtype == TYPE_COMPLETION:
                if record.get("error"):
                    _LOGGER.warning("Hub call failed: %s", record["error"])
                else:
                    _LOGGER.debug("Hub call completed: %s", record.get("result"))
            elif msgtype == TYPE_CLOSE:
                _LOGGER.warning("Hub closed connection: %s", record.get("error"))
                self._error_reason = record.get("error")
                return False
            elif msgtype != TYPE_PING:
                _LOGGER.debug("Ignoring hub record: %s", record)
        return True

    async def _dispatch(self, target, arguments):
        if target not in EVENTS:
            _LOGGER.debug("Ignoring hub event %s", target)
            return
        for data in arguments or []:
            if target == EVENT_CHARGER_UPDATE and isinstance(data, dict):
                data = parse_observation(data)
            await self._notify(target, data, None)

    async def invoke(self, target: str, arguments: list):
        """Send a non-blocking hub invocation."""
        record = {"type": TYPE_INVOCATION, "target": target, "arguments": arguments}
        _LOGGER.debug("Invoking %s", target)
        await self._client.send_str(encode_record(record))

    async def listen(self):
        """Start the listening stream."""
        while not self.closing and self.state != STATE_STOPPED:
            await self.running()

    async def close(self):
        """Close the listening stream."""
        self.closing = True
        if self._client is not None and not self._client.closed:
            await self._client.close()
        await EaseeStream.state.fset(self, STATE_STOPPED)
        if self._session is not None and not self._session_external:
            await self._session.close()
            self._session = None

    async def keepalive(self):
        """Send ping records to the hub."""
        if self._client is None:
            return
        try:
            await self._client.send_str(encode_record({"type": TYPE_PING}))
            _LOGGER.debug("Ping message sent.")
        except (ConnectionResetError, RuntimeError) as err:
            _LOGGER.debug("Stream connection issue: %s", err)
            await EaseeStream.state.fset(self, STATE_DISCONNECTED)
        except Exception as err:  # pylint: disable=broad-exception-caught
            _LOGGER.debug("Problem sending ping request: %s", err)
            await EaseeStream.state.fset(self, STATE_DISCONNECTED)
