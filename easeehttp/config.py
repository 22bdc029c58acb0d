"""Configuration for an Easee account connection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any, Mapping

from .const import (
    API_URL,
    DEFAULT_RECONNECT_INTERVAL,
    DEFAULT_TIMEOUT,
    MAX_LOGIN_RETRIES,
    MAX_REFRESH_RETRIES,
    SIGNALR_URL,
)
from .credentials import Credentials

_LOGGER = logging.getLogger(__name__)

# Alternate keys accepted by from_dict
ALIASES = {
    "restApiUrl": "rest_api_url",
    "signalRUrl": "signalr_url",
    "signalrUrl": "signalr_url",
    "chargerId": "charger",
    "charger_id": "charger",
    "siteId": "site",
    "site_id": "site",
    "circuitId": "circuit",
    "circuit_id": "circuit",
    "skipNegotiation": "skip_negotiation",
    "debugLogging": "debug_logging",
    "maxRefreshRetries": "max_refresh_retries",
    "maxLoginRetries": "max_login_retries",
    "reconnectInterval": "reconnect_interval",
}


@dataclass
class EaseeConfig:
    """Account, endpoint and default target settings."""

    username: str = ""
    password: str = field(default="", repr=False)
    rest_api_url: str = API_URL
    signalr_url: str = SIGNALR_URL
    charger: str | None = None
    site: str | None = None
    circuit: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    max_refresh_retries: int = MAX_REFRESH_RETRIES
    max_login_retries: int = MAX_LOGIN_RETRIES
    reconnect_interval: float = DEFAULT_RECONNECT_INTERVAL
    skip_negotiation: bool = False
    debug_logging: bool = False

    def __post_init__(self) -> None:
        """Normalize urls and apply the logging level."""
        self.rest_api_url = self.rest_api_url.rstrip("/")
        self.signalr_url = self.signalr_url.rstrip("/")
        if self.debug_logging:
            logging.getLogger(__package__).setLevel(logging.DEBUG)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EaseeConfig:
        """Build a configuration from a flat mapping.

        Both snake_case and the camelCase keys used by flow configuration
        files are accepted. Unknown keys are ignored.
        """
        known = {item.name for item in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = ALIASES.get(key, key)
            if name not in known:
                _LOGGER.debug("Ignoring unknown configuration key: %s", key)
                continue
            if value in ("", None) and name not in ("username", "password"):
                continue
            kwargs[name] = value
        return cls(**kwargs)

    @property
    def credentials(self) -> Credentials:
        """Return the account credentials."""
        return Credentials(self.username, self.password)
