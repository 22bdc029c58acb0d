"""Provide a package for python-easee-http."""
from __future__ import annotations

from .__main__ import Easee
from .config import EaseeConfig
from .credentials import (
    Credentials,
    ValidationResult,
    sanitize_credentials,
    validate_credentials,
    validate_login_credentials,
)
from .observations import (
    ParsedObservation,
    extract_charger_status,
    format_observation,
    parse_charger_config,
    parse_observation,
    parse_observations,
)
from .token import TokenManager, TokenState, decode_token

__all__ = [
    "Credentials",
    "Easee",
    "EaseeConfig",
    "ParsedObservation",
    "TokenManager",
    "TokenState",
    "ValidationResult",
    "decode_token",
    "extract_charger_status",
    "format_observation",
    "parse_charger_config",
    "parse_observation",
    "parse_observations",
    "sanitize_credentials",
    "validate_credentials",
    "validate_login_credentials",
]
