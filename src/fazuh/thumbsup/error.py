"""Custom exception hierarchy for the Thumbsup application.

This module defines the base exception class and the error families raised by
the AUR session client and the reconciliation engine. Network-class and
parse-class variants of each family also derive from `NetworkError` and
`ParseError` so callers can classify a failure without knowing which
operation raised it.
"""


class ThumbsupError(Exception): ...


class InternalError(ThumbsupError):
    """Error caused by failure in app logic."""


class ConfigError(ThumbsupError):
    """Error caused by invalid user configuration."""


class NetworkError(ThumbsupError):
    """Transport failure (timeout, connection reset, 5xx). Retryable."""


class ParseError(ThumbsupError):
    """Page markup no longer has the expected shape."""


class AuthError(ThumbsupError): ...


class InvalidCredentialsError(AuthError):
    """The site rejected the username or password."""


class AuthNetworkError(AuthError, NetworkError): ...


class FetchError(ThumbsupError): ...


class SessionExpiredError(FetchError):
    """The authenticated session is gone; a fresh login is required."""


class FetchParseError(FetchError, ParseError): ...


class FetchNetworkError(FetchError, NetworkError): ...


class ActionError(ThumbsupError): ...


class NotAuthorizedError(ActionError):
    """The site did not offer the vote action to this session."""


class ActionParseError(ActionError, ParseError): ...


class ActionNetworkError(ActionError, NetworkError): ...


class PacmanError(ThumbsupError):
    """Failure querying the local package manager."""
