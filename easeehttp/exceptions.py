"""Exceptions."""


class ValidationError(Exception):
    """Exception for missing or malformed credentials."""


class AuthenticationError(Exception):
    """Exception for authentication errors."""


class AuthExpiredError(AuthenticationError):
    """Exception for a refresh token rejected by the server."""


class TerminalAuthError(AuthenticationError):
    """Exception for an exhausted authentication retry budget."""


class NetworkError(Exception):
    """Exception for transport level failures and timeouts."""


class RequestError(Exception):
    """Exception for non-successful REST responses."""

    def __init__(self, status: int, message: str = "") -> None:
        """Store the HTTP status with the server message."""
        super().__init__(f"HTTP {status}: {message}" if message else f"HTTP {status}")
        self.status = status
        self.message = message


class ParseJSONError(Exception):
    """Exception for JSON parsing errors."""


class MissingParameter(Exception):
    """Exception for a charger, site or circuit id that was not supplied."""

    def __init__(self, topic: str, param: str) -> None:
        """Describe what is missing and where it may be supplied."""
        super().__init__(
            f"{topic} failed: {param} missing. Set msg['{param}'], "
            f"msg['payload']['{param}_id'] or configure a default {param}"
        )
        self.topic = topic
        self.param = param


class UnknownTopic(Exception):
    """Exception for a topic with no matching endpoint."""


class InvalidMethod(Exception):
    """Exception for an unsupported HTTP method."""


class AlreadyListening(Exception):
    """Exception for already listening websocket."""


class HubError(Exception):
    """Exception for a rejected hub handshake or negotiation."""
