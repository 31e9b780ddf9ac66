"""Provides async RCON command execution against multiple game servers."""

from .connection import SocketClient, SocketClientConfig
from .manager import (
    EMPTY_RESPONSE_SENTINEL,
    HealthReport,
    ManagerConfiguration,
    RCONClientManager,
    RCONManagerSettings,
    extract_item_name,
)
from .rcon_exceptions import (
    RCONAvailabilityError,
    RCONClientError,
    RCONClientIncorrectPasswordError,
    RCONConfigurationError,
    RCONConnectionError,
    RCONTimeoutError,
)
from .retry import RetryPolicy, retry_with_backoff
from .types import (
    CommandResult,
    ConnectivityReport,
    ConnectivityResult,
    EndpointConfig,
    EndpointRuntimeState,
    EndpointStatus,
    RCONTransport,
)

__all__ = [
    "EMPTY_RESPONSE_SENTINEL",
    "CommandResult",
    "ConnectivityReport",
    "ConnectivityResult",
    "EndpointConfig",
    "EndpointRuntimeState",
    "EndpointStatus",
    "HealthReport",
    "ManagerConfiguration",
    "RCONAvailabilityError",
    "RCONClientError",
    "RCONClientIncorrectPasswordError",
    "RCONClientManager",
    "RCONConfigurationError",
    "RCONConnectionError",
    "RCONManagerSettings",
    "RCONTimeoutError",
    "RCONTransport",
    "RetryPolicy",
    "SocketClient",
    "SocketClientConfig",
    "extract_item_name",
    "retry_with_backoff",
]
