"""Custom exceptions for the RCON client module."""


class RCONClientError(Exception):
    """Base class for every error raised by the RCON client module."""


class RCONConfigurationError(RCONClientError):
    """Raised when the manager is not initialized or an endpoint is unknown."""


class RCONAvailabilityError(RCONClientError):
    """Raised when an endpoint is disabled or over its failure threshold."""


class RCONConnectionError(RCONClientError):
    """Raised when connecting or authenticating failed after every retry."""


class RCONTimeoutError(RCONClientError):
    """Raised when a connect, command or close step exceeded its budget."""


class RCONClientIncorrectPasswordError(RCONClientError):
    """Raised when the RCON password is rejected by the server."""
