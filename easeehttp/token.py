"""Token lifecycle manager for the Easee cloud API."""

from __future__ import annotations

import asyncio
import base64
import inspect
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import aiohttp  # type: ignore

from .config import EaseeConfig
from .const import (
    AUTH_WAIT_TIMEOUT,
    CHECK_INVALID_CREDENTIALS,
    CHECK_MAX,
    CHECK_MIN,
    CHECK_NO_TOKEN,
    EARLY_RENEWAL_THRESHOLD,
    FALLBACK_LIFETIME,
    FIRST_CHECK_DELAY,
    LOGIN,
    MIN_BUFFER_TIME,
    REFRESH_BACKOFF,
    REFRESH_TOKEN,
    RENEWAL_PERCENTAGE,
    SAFETY_MARGIN,
    USER_AGENT,
)
from .credentials import validate_credentials, validate_login_credentials
from .exceptions import (
    AuthenticationError,
    AuthExpiredError,
    NetworkError,
    ParseJSONError,
    RequestError,
    ValidationError,
)

_LOGGER = logging.getLogger(__name__)

SIGNAL_AUTH_STATE = "auth_state"

STATUS_NOT_AUTHENTICATED = "Not authenticated"
STATUS_AUTHENTICATING = "Authenticating"
STATUS_AUTHENTICATED = "Authenticated"
STATUS_REFRESHED = "Token refreshed"
STATUS_INVALID_CREDENTIALS = "Invalid credentials"
STATUS_LOGIN_FAILED = "Login failed"
STATUS_TERMINAL = "Authentication failed - reconfiguration required"

REASON_NO_TOKEN = "no token"
REASON_EXPIRED = "expired"
REASON_WITHIN_BUFFER = "within buffer"
REASON_PERCENTAGE = "percentage threshold"
REASON_EARLY_FALLBACK = "early renewal fallback"
REASON_VALID = "valid"

INVALID_REFRESH_CODES = ("INVALID_REFRESH_TOKEN", "EXPIRED_REFRESH_TOKEN")

HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
    "User-Agent": USER_AGENT,
}

# Failures the renewal flow absorbs and retries
RETRYABLE = (AuthenticationError, NetworkError, RequestError, ParseJSONError)


def decode_token(token: Any) -> dict | None:
    """Return the payload of a JWT without verifying it.

    Used for inspection only, such as reading the ``exp`` claim. Returns
    None for anything that is not a decodable three part token.
    """
    if not isinstance(token, str):
        return None
    parts = token.split(".")
    if len(parts) != 3:
        return None
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(payload))
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return data


def _lifetime(value: Any) -> int:
    try:
        lifetime = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(lifetime, 0)


@dataclass
class TokenState:
    """Token pair and retry bookkeeping for one account."""

    access_token: str | None = None
    refresh_token: str | None = None
    issued_at: float | None = None
    lifetime: int = 0
    expires_at: float | None = None
    refresh_retry_count: int = 0
    login_retry_count: int = 0
    authentication_in_progress: bool = False
    terminal: bool = False

    def __repr__(self) -> str:
        """Hide the tokens."""
        return (
            f"TokenState(has_token={self.has_token}, issued_at={self.issued_at}, "
            f"lifetime={self.lifetime}, expires_at={self.expires_at}, "
            f"refresh_retry_count={self.refresh_retry_count}, "
            f"login_retry_count={self.login_retry_count}, terminal={self.terminal})"
        )

    @property
    def has_token(self) -> bool:
        """Return True if an access token is held."""
        return bool(self.access_token)

    def store(
        self,
        access_token: str,
        refresh_token: str | None,
        lifetime: Any = 0,
        issued_at: float | None = None,
    ) -> None:
        """Replace the token pair.

        Without a declared lifetime the expiry is read from the JWT ``exp``
        claim, and failing that a conservative fallback lifetime is assumed.
        """
        now = time.time() if issued_at is None else issued_at
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.issued_at = now
        self.lifetime = _lifetime(lifetime)
        if self.lifetime:
            self.expires_at = now + self.lifetime
            return

        exp = (decode_token(access_token) or {}).get("exp")
        if isinstance(exp, (int, float)) and not isinstance(exp, bool) and exp > now:
            self.expires_at = float(exp)
        else:
            self.expires_at = now + FALLBACK_LIFETIME

    def clear_tokens(self) -> None:
        """Forget the token pair."""
        self.access_token = None
        self.refresh_token = None
        self.issued_at = None
        self.lifetime = 0
        self.expires_at = None

    def reset(self) -> None:
        """Forget the token pair and all retry counters."""
        self.clear_tokens()
        self.refresh_retry_count = 0
        self.login_retry_count = 0

    def time_to_expire(self, now: float | None = None) -> float | None:
        """Return seconds left before the access token expires."""
        if not self.has_token or self.expires_at is None:
            return None
        return self.expires_at - (time.time() if now is None else now)

    def renewal_needed(self, now: float | None = None) -> tuple[bool, str]:
        """Decide whether the token should be renewed and why."""
        now = time.time() if now is None else now
        remaining = self.time_to_expire(now)
        if remaining is None:
            return True, REASON_NO_TOKEN
        if remaining <= 0:
            return True, REASON_EXPIRED
        if remaining <= MIN_BUFFER_TIME:
            return True, REASON_WITHIN_BUFFER
        if self.lifetime > 0 and self.issued_at is not None:
            if now - self.issued_at >= self.lifetime * RENEWAL_PERCENTAGE:
                return True, REASON_PERCENTAGE
        elif remaining <= EARLY_RENEWAL_THRESHOLD:
            return True, REASON_EARLY_FALLBACK
        return False, REASON_VALID

    def next_renewal_at(self) -> float | None:
        """Return the earliest time at which renewal becomes due."""
        if not self.has_token or self.expires_at is None:
            return None
        points = [self.expires_at - MIN_BUFFER_TIME]
        if self.lifetime > 0 and self.issued_at is not None:
            points.append(self.issued_at + self.lifetime * RENEWAL_PERCENTAGE)
        else:
            points.append(self.expires_at - EARLY_RENEWAL_THRESHOLD)
        return min(points)


def _error_detail(message: Any) -> str:
    if isinstance(message, dict):
        return str(message.get("detail") or message.get("title") or message)
    return str(message)


def _refresh_rejected(status: int, message: Any) -> bool:
    if status == 401:
        return True
    if not isinstance(message, dict):
        return False
    if message.get("errorCodeName") in INVALID_REFRESH_CODES:
        return True
    detail = str(message.get("detail", "")).lower()
    return "refresh token" in detail and ("invalid" in detail or "expired" in detail)


class TokenManager:
    """Keep a valid access token for one Easee account.

    At most one login or refresh round-trip is in flight at any time.
    Concurrent callers of ``ensure_authenticated`` share the outcome of the
    attempt already running instead of starting their own.
    """

    def __init__(
        self,
        config: EaseeConfig,
        session: aiohttp.ClientSession | None = None,
        callback: Callable[..., Any] | None = None,
    ) -> None:
        """Initialize the manager with an empty token state."""
        self._config = config
        self._session = session
        self.callback = callback
        self.state = TokenState()
        self._status = STATUS_NOT_AUTHENTICATED
        self._error: str | None = None
        self._pending: asyncio.Future | None = None
        self._check_task: asyncio.Task | None = None
        self._closing = False

    @property
    def status(self) -> str:
        """Return the current authentication status."""
        return self._status

    @property
    def error(self) -> str | None:
        """Return the error attached to the current status."""
        return self._error

    @property
    def terminal(self) -> bool:
        """Return True once the retry budget is exhausted."""
        return self.state.terminal

    @property
    def access_token(self) -> str | None:
        """Return the current access token."""
        return self.state.access_token

    @property
    def authorization_header(self) -> dict[str, str]:
        """Return the bearer header for the current access token."""
        if not self.state.access_token:
            return {}
        return {"Authorization": f"Bearer {self.state.access_token}"}

    async def _set_status(self, status: str, error: str | None = None) -> None:
        self._status = status
        self._error = error
        _LOGGER.debug("Authentication status: %s", status)
        if self.callback is None:
            return
        if inspect.iscoroutinefunction(self.callback):
            await self.callback(SIGNAL_AUTH_STATE, status, error)
        else:
            self.callback(SIGNAL_AUTH_STATE, status, error)

    def renewal_needed(self) -> tuple[bool, str]:
        """Return whether the held token should be renewed, with the reason."""
        return self.state.renewal_needed()

    async def ensure_authenticated(self) -> bool:
        """Make sure a usable access token is held.

        Returns False without touching the network when the configured
        credentials are invalid or the manager is in the terminal state.
        """
        result = validate_credentials(self._config.credentials)
        if not result.valid:
            _LOGGER.error("Invalid credentials: %s", result.message)
            await self._set_status(STATUS_INVALID_CREDENTIALS, result.message)
            return False

        if self._pending is not None:
            _LOGGER.debug("Authentication in progress, waiting for result")
            return await self._wait_for_pending()

        if self.state.terminal:
            _LOGGER.debug("Authentication suspended until reconfigured")
            return False

        remaining = self.state.time_to_expire()
        if remaining is not None and remaining > SAFETY_MARGIN:
            return True

        return await self._run_exclusive(self._authenticate)

    async def _wait_for_pending(self) -> bool:
        pending = self._pending
        if pending is not None:
            try:
                await asyncio.wait_for(asyncio.shield(pending), AUTH_WAIT_TIMEOUT)
            except asyncio.TimeoutError:
                _LOGGER.warning("Timed out waiting for authentication in progress")
        return self.state.has_token

    async def _run_exclusive(self, func: Callable[..., Awaitable], *args: Any) -> Any:
        """Run one authentication attempt and publish it to waiters."""
        future = asyncio.get_running_loop().create_future()
        self._pending = future
        self.state.authentication_in_progress = True
        try:
            return await func(*args)
        finally:
            if self._pending is future:
                self._pending = None
                self.state.authentication_in_progress = False
            if not future.done():
                future.set_result(self.state.has_token)

    async def _authenticate(self) -> bool:
        needed, reason = self.state.renewal_needed()
        if not needed:
            return True
        _LOGGER.debug("Token renewal needed: %s", reason)
        await self._set_status(STATUS_AUTHENTICATING)

        if self.state.access_token and self.state.refresh_token:
            if await self._refresh_with_retry():
                return True

        try:
            await self._login()
        except RETRYABLE as err:
            await self._login_failed(err)
            return False
        return True

    async def _refresh_with_retry(self) -> bool:
        """Refresh the token pair, retrying transient failures.

        Returns False once the pair has been dropped and a fresh login is
        required.
        """
        while True:
            try:
                await self._refresh()
                return True
            except AuthExpiredError as err:
                _LOGGER.warning("Refresh token rejected, logging in again: %s", err)
                self.state.clear_tokens()
                self.state.refresh_retry_count = 0
                return False
            except RETRYABLE as err:
                maximum = self._config.max_refresh_retries
                if self.state.refresh_retry_count < maximum:
                    self.state.refresh_retry_count += 1
                    delay = REFRESH_BACKOFF * self.state.refresh_retry_count
                    _LOGGER.warning(
                        "Token refresh failed (attempt %s of %s), retrying in %ss: %s",
                        self.state.refresh_retry_count,
                        maximum,
                        delay,
                        err,
                    )
                    await asyncio.sleep(delay)
                    continue
                _LOGGER.error(
                    "Token refresh failed after %s retries, logging in again: %s",
                    maximum,
                    err,
                )
                self.state.clear_tokens()
                self.state.refresh_retry_count = 0
                return False

    async def _login_failed(self, err: Exception) -> None:
        self.state.login_retry_count += 1
        maximum = self._config.max_login_retries
        _LOGGER.error(
            "Login failed (attempt %s of %s): %s",
            self.state.login_retry_count,
            maximum,
            err,
        )
        if self.state.login_retry_count >= maximum:
            self.reset_authentication_state()
            self.state.terminal = True
            await self._set_status(STATUS_TERMINAL, str(err))
        else:
            await self._set_status(STATUS_LOGIN_FAILED, str(err))

    def reset_authentication_state(self) -> None:
        """Drop tokens, retry counters and the terminal flag."""
        self.state.reset()
        self.state.terminal = False

    async def refresh(self) -> dict:
        """Exchange the held token pair for a new one.

        Raises AuthExpiredError when the server rejects the refresh token.
        The rejected pair is dropped so the next renewal logs in.
        """
        while self._pending is not None:
            await self._wait_for_pending()
        return await self._run_exclusive(self._refresh_or_clear)

    async def _refresh_or_clear(self) -> dict:
        try:
            return await self._refresh()
        except AuthExpiredError:
            self.state.clear_tokens()
            self.state.refresh_retry_count = 0
            raise

    async def login(
        self, username: str | None = None, password: str | None = None
    ) -> dict:
        """Log in with the given or configured credentials.

        An explicit login also leaves the terminal state.
        """
        username = username if username is not None else self._config.username
        password = password if password is not None else self._config.password
        result = validate_login_credentials(username, password)
        if not result.valid:
            raise ValidationError(result.message)

        while self._pending is not None:
            await self._wait_for_pending()
        self.state.terminal = False
        self.state.login_retry_count = 0
        return await self._run_exclusive(self._login, username, password)

    async def update_credentials(self, username: str, password: str) -> None:
        """Replace the account credentials and start over."""
        self._config.username = username
        self._config.password = password
        self.reset_authentication_state()
        await self._set_status(STATUS_NOT_AUTHENTICATED)
        if self._check_task is not None and self._check_task.done():
            self.start()

    async def _refresh(self) -> dict:
        if not (self.state.access_token and self.state.refresh_token):
            raise AuthExpiredError("No token pair to refresh")
        response = await self._post(
            REFRESH_TOKEN,
            {
                "accessToken": self.state.access_token,
                "refreshToken": self.state.refresh_token,
            },
            refresh=True,
        )
        self._store(response)
        self.state.refresh_retry_count = 0
        _LOGGER.debug("Access token refreshed")
        await self._set_status(STATUS_REFRESHED)
        return response

    async def _login(
        self, username: str | None = None, password: str | None = None
    ) -> dict:
        response = await self._post(
            LOGIN,
            {
                "userName": username if username is not None else self._config.username,
                "password": password if password is not None else self._config.password,
            },
        )
        self._store(response)
        self.state.refresh_retry_count = 0
        self.state.login_retry_count = 0
        _LOGGER.debug("Logged in, token valid for %s seconds", self.state.lifetime)
        await self._set_status(STATUS_AUTHENTICATED)
        return response

    def _store(self, response: dict) -> None:
        access_token = response.get("accessToken")
        if not access_token:
            raise AuthenticationError("Response did not contain an access token")
        self.state.store(
            access_token, response.get("refreshToken"), response.get("expiresIn", 0)
        )

    async def _post(self, path: str, body: dict, refresh: bool = False) -> dict:
        """Post to an account endpoint and classify the outcome."""
        url = f"{self._config.rest_api_url}{path}"
        if self._session is not None and not self._session.closed:
            return await self._send(self._session, url, body, refresh)
        async with aiohttp.ClientSession() as session:
            return await self._send(session, url, body, refresh)

    async def _send(
        self, session: aiohttp.ClientSession, url: str, body: dict, refresh: bool
    ) -> dict:
        timeout = aiohttp.ClientTimeout(total=self._config.timeout)
        _LOGGER.debug("Posting to %s", url)
        try:
            async with session.post(
                url, json=body, headers=HEADERS, timeout=timeout
            ) as resp:
                status = resp.status
                text = await resp.text()
        except (TimeoutError, asyncio.TimeoutError) as err:
            raise NetworkError(f"Timeout while posting to {url}") from err
        except aiohttp.ClientError as err:
            raise NetworkError(f"Error posting to {url}: {err}") from err

        try:
            message = json.loads(text)
        except ValueError:
            message = text

        if status >= 400:
            detail = _error_detail(message)
            if refresh and _refresh_rejected(status, message):
                raise AuthExpiredError(detail)
            if not refresh and status in (400, 401, 403):
                raise AuthenticationError(detail)
            raise RequestError(status, detail)

        if not isinstance(message, dict):
            _LOGGER.warning("Non JSON response from %s", url)
            raise ParseJSONError(f"Unexpected response from {url}")
        return message

    async def check_token(self) -> float | None:
        """Run one background check and return the delay to the next one.

        Returns None in the terminal state, where no further checks run
        until the manager is reconfigured.
        """
        result = validate_credentials(self._config.credentials)
        if not result.valid:
            await self._set_status(STATUS_INVALID_CREDENTIALS, result.message)
            return CHECK_INVALID_CREDENTIALS
        if self.state.terminal:
            return None

        if self._pending is not None:
            await self._wait_for_pending()
        else:
            needed, reason = self.state.renewal_needed()
            if needed:
                _LOGGER.debug("Scheduled token check: renewing, %s", reason)
                await self._run_exclusive(self._authenticate)

        if self.state.terminal:
            return None
        return self.next_check_delay()

    def next_check_delay(self, now: float | None = None) -> float:
        """Return the seconds until the next background check."""
        if not validate_credentials(self._config.credentials).valid:
            return CHECK_INVALID_CREDENTIALS
        renewal_at = self.state.next_renewal_at()
        if renewal_at is None:
            return CHECK_NO_TOKEN
        now = time.time() if now is None else now
        delay = (renewal_at - now) / 3
        return max(CHECK_MIN, min(CHECK_MAX, delay))

    async def _check_loop(self) -> None:
        delay: float | None = FIRST_CHECK_DELAY
        while not self._closing and delay is not None:
            await asyncio.sleep(delay)
            try:
                delay = await self.check_token()
            except Exception as err:  # pylint: disable=broad-except
                _LOGGER.exception("Unexpected error during token check: %s", err)
                delay = CHECK_NO_TOKEN
            if delay is None:
                _LOGGER.warning("Token checks stopped: %s", self._status)
            else:
                _LOGGER.debug("Next token check in %.0f seconds", delay)

    def start(self) -> None:
        """Start the background token checks."""
        if self._check_task is not None and not self._check_task.done():
            return
        self._closing = False
        self._check_task = asyncio.get_running_loop().create_task(self._check_loop())

    async def close(self) -> None:
        """Stop the background token checks."""
        self._closing = True
        task = self._check_task
        self._check_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
