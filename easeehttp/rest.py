"""Resolve flow messages into Easee REST requests."""

from __future__ import annotations

import logging
from typing import Any, Mapping, NamedTuple
from urllib.parse import quote

from .const import CHARGER, CIRCUIT, LOGIN, REFRESH_TOKEN, SITE
from .exceptions import InvalidMethod, MissingParameter, UnknownTopic

_LOGGER = logging.getLogger(__name__)

GET = "GET"
POST = "POST"
DELETE = "DELETE"
METHODS = (GET, POST, DELETE)

# Resolved from the payload shape at dispatch time
DYNAMIC = "DYNAMIC"

SPECIAL_LOGIN = "login"
SPECIAL_REFRESH = "refresh_token"
SPECIAL_OBSERVATIONS = "parse_observations"

ROUTING_KEYS = (
    CHARGER,
    SITE,
    CIRCUIT,
    f"{CHARGER}_id",
    f"{SITE}_id",
    f"{CIRCUIT}_id",
)

CURRENT_LIMIT_FIELDS = (
    "dynamicChargerCurrent",
    "dynamicCircuitCurrentP1",
    "dynamicCircuitCurrentP2",
    "dynamicCircuitCurrentP3",
    "phase1",
    "phase2",
    "phase3",
    "timeToLive",
)


class Endpoint(NamedTuple):
    """Path template and method of one named topic."""

    path: str
    method: str
    params: tuple[str, ...] = ()
    special: str | None = None


class RestRequest(NamedTuple):
    """A fully resolved REST call."""

    method: str
    path: str
    body: Any = None
    topic: str | None = None
    special: str | None = None


def _charger_endpoint(suffix: str, method: str = GET, special: str | None = None):
    return Endpoint(f"/chargers/{{charger}}{suffix}", method, (CHARGER,), special)


def _command(name: str) -> Endpoint:
    return _charger_endpoint(f"/commands/{name}", POST)


TOPIC_ENDPOINTS: dict[str, Endpoint] = {
    "login": Endpoint(LOGIN, POST, special=SPECIAL_LOGIN),
    "refresh_token": Endpoint(REFRESH_TOKEN, POST, special=SPECIAL_REFRESH),
    "dynamic_current": Endpoint(
        "/sites/{site}/circuits/{circuit}/dynamicCurrent", DYNAMIC, (SITE, CIRCUIT)
    ),
    "charger": _charger_endpoint("?alwaysGetChargerAccessLevel=true"),
    "charger_details": _charger_endpoint("/details"),
    "charger_site": _charger_endpoint("/site"),
    "charger_config": _charger_endpoint("/config"),
    "charger_session_latest": _charger_endpoint("/sessions/latest"),
    "charger_session_ongoing": _charger_endpoint("/sessions/ongoing"),
    "charger_state": _charger_endpoint("/state", special=SPECIAL_OBSERVATIONS),
    "start_charging": _command("start_charging"),
    "stop_charging": _command("stop_charging"),
    "pause_charging": _command("pause_charging"),
    "resume_charging": _command("resume_charging"),
    "toggle_charging": _command("toggle_charging"),
    "reboot": _command("reboot"),
}


def _lookup(source: Any, key: str) -> Any:
    if source is None:
        return None
    if isinstance(source, Mapping):
        return source.get(key)
    return getattr(source, key, None)


def _payload(msg: Mapping[str, Any]) -> Mapping[str, Any]:
    payload = msg.get("payload")
    if isinstance(payload, Mapping):
        return payload
    return {}


def extract_message_parameters(
    msg: Mapping[str, Any], defaults: Any = None
) -> dict[str, Any]:
    """Resolve the charger, site and circuit ids for a message.

    Each id is taken from the first place that carries one: the message
    itself, ``payload.<name>_id``, ``payload.<name>``, then the defaults.
    """
    payload = _payload(msg)
    params = {}
    for name in (CHARGER, SITE, CIRCUIT):
        value = None
        for candidate in (
            msg.get(name),
            payload.get(f"{name}_id"),
            payload.get(name),
            _lookup(defaults, name),
        ):
            if candidate is not None:
                value = candidate
                break
        params[name] = value
    return params


def determine_http_method(msg: Mapping[str, Any]) -> str:
    """Return the method requested by a direct path message."""
    payload = _payload(msg)
    method = payload.get("method")
    if method:
        method = str(method).upper()
        if method not in METHODS:
            raise InvalidMethod(f"Invalid HTTP method: {method}")
        return method
    if payload.get("body"):
        return POST
    return GET


def extract_api_path(msg: Mapping[str, Any]) -> str | None:
    """Return a direct API path from ``payload.path`` or ``command``."""
    path = _payload(msg).get("path") or msg.get("command")
    return path or None


def extract_request_body(msg: Mapping[str, Any]) -> Any:
    """Return ``payload.body`` if present."""
    return _payload(msg).get("body")


def is_current_update(payload: Any) -> bool:
    """Return True if a payload carries dynamic current limits."""
    return isinstance(payload, Mapping) and any(
        key in payload for key in CURRENT_LIMIT_FIELDS
    )


def resolve_topic_to_endpoint(
    topic: str, params: Mapping[str, Any], msg: Mapping[str, Any] | None = None
) -> RestRequest:
    """Resolve a named topic into a request.

    Raises UnknownTopic for topics outside the table and MissingParameter
    when a required charger, site or circuit id is absent.
    """
    endpoint = TOPIC_ENDPOINTS.get(topic)
    if endpoint is None:
        raise UnknownTopic(f"Unknown topic '{topic}'")

    for param in endpoint.params:
        if not params.get(param):
            raise MissingParameter(topic, param)

    path = endpoint.path.format(
        **{
            name: quote(str(params.get(name) or ""), safe="")
            for name in (CHARGER, SITE, CIRCUIT)
        }
    )

    if endpoint.method != DYNAMIC:
        return RestRequest(endpoint.method, path, None, topic, endpoint.special)

    payload = (msg or {}).get("payload")
    if is_current_update(payload):
        body = {key: value for key, value in payload.items() if key not in ROUTING_KEYS}
        return RestRequest(POST, path, body, topic)
    return RestRequest(GET, path, None, topic)


def process_message(msg: Mapping[str, Any], defaults: Any = None) -> RestRequest:
    """Turn a flow message into a request.

    A direct path takes priority over the topic.
    """
    params = extract_message_parameters(msg, defaults)

    path = extract_api_path(msg)
    if path:
        if not str(path).startswith("/"):
            path = f"/{path}"
        request = RestRequest(
            determine_http_method(msg), path, extract_request_body(msg)
        )
        _LOGGER.debug("Direct request: %s %s", request.method, request.path)
        return request

    topic = msg.get("topic")
    if not topic:
        raise UnknownTopic("Missing required payload.path or topic")
    request = resolve_topic_to_endpoint(topic, params, msg)
    _LOGGER.debug("Topic %s resolved to %s %s", topic, request.method, request.path)
    return request
