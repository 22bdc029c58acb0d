"""Main library functions for python-easee-http."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Callable, Mapping

import aiohttp  # type: ignore
from aiohttp.client_exceptions import ContentTypeError, ServerTimeoutError

from .config import EaseeConfig
from .const import CHARGER, CIRCUIT, SITE, USER_AGENT
from .exceptions import (
    AlreadyListening,
    AuthenticationError,
    InvalidMethod,
    MissingParameter,
    NetworkError,
    ParseJSONError,
    RequestError,
    TerminalAuthError,
    UnknownTopic,
    ValidationError,
)
from .observations import MODE_NAME, ParsedObservation, parse_observation
from .rest import (
    METHODS,
    SPECIAL_LOGIN,
    SPECIAL_OBSERVATIONS,
    SPECIAL_REFRESH,
    RestRequest,
    process_message,
    resolve_topic_to_endpoint,
)
from .token import SIGNAL_AUTH_STATE, TokenManager
from .websocket import (
    EVENTS,
    SIGNAL_CONNECTION_STATE,
    STATE_CONNECTING,
    STATE_DISCONNECTED,
    STATE_STOPPED,
    STATE_SUBSCRIBED,
    EaseeStream,
)

_LOGGER = logging.getLogger(__name__)

ERROR_TIMEOUT = "Timeout while updating"
KEEPALIVE_INTERVAL = 15

COMMANDS = (
    "start_charging",
    "stop_charging",
    "pause_charging",
    "resume_charging",
    "toggle_charging",
    "reboot",
)


class Easee:
    """Represent an Easee cloud account."""

    def __init__(
        self,
        username: str = "",
        password: str = "",
        config: EaseeConfig | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Connect to the Easee cloud with an account."""
        self.config = config or EaseeConfig(username=username, password=password)
        self._session = session
        self.tokens = TokenManager(self.config, session, self._update_status)
        self.websocket: EaseeStream | None = None
        self.callback: Callable | None = None
        self._ws_listening = False
        self.tasks: list[asyncio.Task] = []

    @property
    def url(self) -> str:
        """Return the REST API base url."""
        return self.config.rest_api_url

    @property
    def auth_status(self) -> str:
        """Return the authentication status."""
        return self.tokens.status

    async def process_request(
        self,
        url: str,
        method: str = "get",
        data: Any = None,
    ) -> Any:
        """Return result of an authenticated HTTP request."""
        method = method.lower()
        if method.upper() not in METHODS:
            raise InvalidMethod(f"Invalid HTTP method: {method}")

        if self._session is not None and not self._session.closed:
            return await self._request(self._session, url, method, data)
        async with aiohttp.ClientSession() as session:
            return await self._request(session, url, method, data)

    async def _request(
        self, session: aiohttp.ClientSession, url: str, method: str, data: Any
    ) -> Any:
        http_method = getattr(session, method)
        headers = {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
            **self.tokens.authorization_header,
        }
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        _LOGGER.debug(
            "Connecting to %s with data: %s using method %s", url, data, method
        )
        try:
            async with http_method(
                url,
                json=data,
                headers=headers,
                timeout=timeout,
            ) as resp:
                try:
                    message = await resp.text()
                except UnicodeDecodeError:
                    _LOGGER.debug("Decoding error")
                    message = await resp.read()
                    message = message.decode(errors="replace")
                status = resp.status

        except (TimeoutError, ServerTimeoutError, asyncio.TimeoutError) as err:
            _LOGGER.error("%s: %s", ERROR_TIMEOUT, url)
            raise NetworkError(f"{ERROR_TIMEOUT}: {url}") from err
        except ContentTypeError as err:
            _LOGGER.error("Content error: %s", err.message)
            raise ParseJSONError(err.message) from err
        except aiohttp.ClientError as err:
            _LOGGER.error("Connection error: %s", err)
            raise NetworkError(str(err)) from err

        if message:
            try:
                message = json.loads(message)
            except ValueError:
                _LOGGER.warning("Non JSON response: %s", message)
        else:
            message = None

        if status == 401:
            _LOGGER.error("Authentication error: %s", message)
            raise AuthenticationError(_detail(message))
        if status >= 400:
            _LOGGER.warning("Error %s: %s", status, message)
            raise RequestError(status, _detail(message))
        return message

    async def generic_call(
        self, path: str, method: str = "GET", body: Any = None
    ) -> Any:
        """Call an API path with a valid access token."""
        if not await self.tokens.ensure_authenticated():
            if self.tokens.terminal:
                raise TerminalAuthError(self.tokens.status)
            raise AuthenticationError(self.tokens.error or self.tokens.status)
        return await self.process_request(f"{self.url}{path}", method, body)

    async def call(self, request: RestRequest) -> Any:
        """Run a resolved request."""
        if request.special == SPECIAL_LOGIN:
            return await self.tokens.login()
        if request.special == SPECIAL_REFRESH:
            return await self.tokens.refresh()

        response = await self.generic_call(request.path, request.method, request.body)
        if request.special == SPECIAL_OBSERVATIONS:
            return self._parse_state(response)
        return response

    @staticmethod
    def _parse_state(response: Any) -> dict[str, ParsedObservation]:
        if not isinstance(response, Mapping):
            _LOGGER.error("Unexpected charger state: %s", response)
            raise ParseJSONError("charger_state failed")
        return {
            key: parse_observation({"dataName": key, "value": value}, MODE_NAME)
            for key, value in response.items()
        }

    async def dispatch(self, msg: Mapping[str, Any]) -> dict[str, Any]:
        """Handle one flow message and return the outcome as a message.

        Errors are reported in the returned message with ``status`` set to
        ``error`` rather than raised.
        """
        try:
            request = process_message(msg, self.config)
        except (MissingParameter, UnknownTopic, InvalidMethod) as err:
            _LOGGER.error("%s", err)
            return {
                "status": "error",
                "topic": str(err),
                "payload": None,
                "error": str(err),
            }

        try:
            payload = await self.call(request)
        except (
            AuthenticationError,
            NetworkError,
            ParseJSONError,
            RequestError,
            ValidationError,
        ) as err:
            _LOGGER.warning("%s %s failed: %s", request.method, request.path, err)
            return {
                "status": "error",
                "topic": f"{request.topic or request.method}: failed",
                "payload": None,
                "error": str(err),
                "url": request.path,
            }
        return {"status": "ok", "topic": request.path, "payload": payload}

    def _params(self, **params: Any) -> dict[str, Any]:
        return {
            name: params.get(name) or getattr(self.config, name)
            for name in (CHARGER, SITE, CIRCUIT)
        }

    async def get_charger(self, charger_id: str | None = None) -> Any:
        """Return the charger with its access level."""
        request = resolve_topic_to_endpoint(CHARGER, self._params(charger=charger_id))
        return await self.call(request)

    async def charger_state(
        self, charger_id: str | None = None
    ) -> dict[str, ParsedObservation]:
        """Return the decoded state observations of a charger."""
        request = resolve_topic_to_endpoint(
            "charger_state", self._params(charger=charger_id)
        )
        return await self.call(request)

    async def send_command(self, command: str, charger_id: str | None = None) -> Any:
        """Send a charging command to a charger."""
        if command not in COMMANDS:
            raise UnknownTopic(f"Unknown command '{command}'")
        _LOGGER.debug("Sending command %s", command)
        request = resolve_topic_to_endpoint(command, self._params(charger=charger_id))
        return await self.call(request)

    async def get_dynamic_current(
        self, site_id: str | None = None, circuit_id: str | None = None
    ) -> Any:
        """Return the dynamic current limits of a circuit."""
        request = resolve_topic_to_endpoint(
            "dynamic_current", self._params(site=site_id, circuit=circuit_id)
        )
        return await self.call(request)

    async def set_dynamic_current(
        self,
        site_id: str | None = None,
        circuit_id: str | None = None,
        **limits: Any,
    ) -> Any:
        """Update the dynamic current limits of a circuit.

        Accepts ``phase1``, ``phase2``, ``phase3`` and ``timeToLive``.
        """
        if not limits:
            raise ValueError("No current limits given")
        request = resolve_topic_to_endpoint(
            "dynamic_current",
            self._params(site=site_id, circuit=circuit_id),
            {"payload": limits},
        )
        return await self.call(request)

    def ws_start(self, charger_id: str | None = None) -> None:
        """Start the websocket listener."""
        if self._ws_listening:
            raise AlreadyListening
        charger = charger_id or self.config.charger
        if not charger:
            raise MissingParameter("stream", CHARGER)
        if (
            self.websocket is None
            or self.websocket.charger_id != charger
            or self.websocket.state == STATE_STOPPED
        ):
            self.websocket = EaseeStream(
                self.config.signalr_url,
                charger,
                self.tokens,
                self._update_status,
                session=self._session,
                reconnect_interval=self.config.reconnect_interval,
                skip_negotiation=self.config.skip_negotiation,
                timeout=self.config.timeout,
            )
        self._start_listening()

    def _start_listening(self) -> None:
        """Start the websocket listener."""
        loop = asyncio.get_running_loop()
        _LOGGER.debug("Setting up websocket ping...")
        self.tasks = [
            loop.create_task(self.websocket.listen()),
            loop.create_task(self.repeat(KEEPALIVE_INTERVAL, self.websocket.keepalive)),
        ]
        self._ws_listening = True

    async def _update_status(self, msgtype, data, error):
        """Update data from the token manager and the websocket listener."""
        if msgtype == SIGNAL_CONNECTION_STATE:
            if data == STATE_SUBSCRIBED:
                _LOGGER.debug("Subscribed to charger %s", self.websocket.charger_id)
                self._ws_listening = True
            elif data in (STATE_CONNECTING, STATE_DISCONNECTED):
                _LOGGER.debug("Stream %s", data)
                if error:
                    _LOGGER.debug("Disconnect message: %s", error)

            # Stopped websockets without errors are expected during shutdown
            # and ignored
            elif data == STATE_STOPPED and error:
                _LOGGER.warning("Stream stopped [Error: %s]", error)
                self._ws_listening = False

        elif msgtype == SIGNAL_AUTH_STATE:
            if error:
                _LOGGER.warning("%s: %s", data, error)
            else:
                _LOGGER.debug("%s", data)

        elif msgtype in EVENTS:
            _LOGGER.debug("%s: %s", msgtype, data)

        if self.callback is not None:
            if self.is_coroutine_function(self.callback):
                await self.callback(msgtype, data)  # pylint: disable=not-callable
            else:
                self.callback(msgtype, data)  # pylint: disable=not-callable

    async def ws_disconnect(self) -> None:
        """Disconnect the websocket listener."""
        self._ws_listening = False
        if self.websocket is not None:
            await self.websocket.close()
        for task in self.tasks:
            task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []

    def is_coroutine_function(self, callback):
        """Check if a callback is a coroutine function."""
        return inspect.iscoroutinefunction(callback)

    @property
    def ws_state(self) -> Any:
        """Return the status of the websocket listener."""
        if self.websocket is None:
            return STATE_STOPPED
        return self.websocket.state

    async def repeat(self, interval, func, *args, **kwargs):
        """Run func every interval seconds.

        If func has not finished before *interval*, will run again
        immediately when the previous iteration finished.

        *args and **kwargs are passed as the arguments to func.
        """
        while self.ws_state != STATE_STOPPED:
            await asyncio.sleep(interval)
            await func(*args, **kwargs)

    def start(self) -> None:
        """Start background token renewal."""
        self.tokens.start()

    async def close(self) -> None:
        """Stop the listener and background token renewal."""
        if self.websocket is not None:
            await self.ws_disconnect()
        await self.tokens.close()


def _detail(message: Any) -> str:
    if isinstance(message, dict):
        return str(message.get("detail") or message.get("title") or message)
    return "" if message is None else str(message)
