"""Data classes used in the RCON client module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime  # noqa: TC003
from enum import IntEnum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping


class RCONPacketType(IntEnum):
    """Types for an RCON TCP packet.

    Defined in the `Source RCON protocol documentation
    <https://developer.valvesoftware.com/wiki/Source_RCON_Protocol>`_, which the
    `Minecraft implementation <https://minecraft.wiki/w/RCON#Packets>`_ follows.

    :cvar ERROR_PACKET: Request id sent back when authentication fails
    :cvar RESPONSE_PACKET: Command output, also sent empty before an auth reply
    :cvar COMMAND_PACKET: Command packet, and the type of an auth reply
    :cvar AUTH_PACKET: Authentication packet
    :cvar DUMMY_PACKET: Dummy packet used to terminate multi-packet responses
    """

    ERROR_PACKET = -1
    RESPONSE_PACKET = 0
    COMMAND_PACKET = 2
    AUTH_PACKET = 3
    DUMMY_PACKET = 200


class RCONTransport(Protocol):
    """Capability interface of one RCON connection session.

    The manager depends only on this interface. :class:`SocketClient` is the
    production implementation; tests supply in-memory fakes.
    """

    async def connect(self) -> None:
        """Open the connection and authenticate."""

    async def send_command(self, command: str) -> Any:
        """Send a command and return the raw response."""

    async def disconnect(self) -> None:
        """Close the connection gracefully."""

    def abort(self) -> None:
        """Drop the underlying socket immediately."""


@dataclass(frozen=True)
class EndpointConfig:
    """Static description of one remote game-server console.

    :param key: Unique short identifier of the endpoint
    :param host: Hostname or address of the RCON listener
    :param port: TCP port of the RCON listener
    :param password: Shared RCON secret, never shown in repr
    :param display_name: Human readable label
    :param enabled: Operator controlled switch
    :param multi_packet: Collect multi-packet responses with a dummy packet
    """

    key: str
    host: str
    port: int
    password: str = field(repr=False)
    display_name: str = ""
    enabled: bool = False
    multi_packet: bool = False

    @property
    def target(self) -> str:
        """Return the ``host:port`` address of the endpoint."""
        return f"{self.host}:{self.port}"

    @property
    def masked_password(self) -> str:
        """Return the password with everything but its edges hidden."""
        if len(self.password) <= 4:  # noqa: PLR2004
            return "*" * len(self.password)
        return f"{self.password[:2]}{'*' * (len(self.password) - 4)}{self.password[-2:]}"

    @classmethod
    def from_mapping(cls, key: str, raw: Mapping[str, Any]) -> EndpointConfig | None:
        """Build a config from a raw mapping, or None if it is not usable.

        Host, port and password must all be present and non-empty.

        :param key: The endpoint key
        :param raw: Mapping with host, port, password, display_name, enabled
        :return: The endpoint config, or None if a required field is missing
        :raises ValueError: If the port is not an integer
        """
        host = raw.get("host")
        port = raw.get("port")
        password = raw.get("password")
        if not host or not port or not password:
            return None

        return cls(
            key=key,
            host=str(host),
            port=int(port),
            password=str(password),
            display_name=str(raw.get("display_name") or key),
            enabled=raw.get("enabled") is True,
            multi_packet=raw.get("multi_packet") is True,
        )


@dataclass
class EndpointRuntimeState:
    """Mutable health and telemetry of one endpoint, owned by the manager.

    :cvar FAILURE_THRESHOLD: Consecutive failures after which execution is refused
    """

    FAILURE_THRESHOLD = 3

    config: EndpointConfig
    consecutive_failures: int = 0
    last_connection_at: datetime | None = None
    last_error: str | None = None
    total_commands: int = 0
    successful_commands: int = 0

    @property
    def is_available(self) -> bool:
        """Whether the endpoint is enabled and below the failure threshold."""
        return (
            self.config.enabled
            and self.consecutive_failures < EndpointRuntimeState.FAILURE_THRESHOLD
        )

    @property
    def success_rate(self) -> float | None:
        """Percentage of successful commands, or None when untested."""
        if self.total_commands == 0:
            return None
        return self.successful_commands / self.total_commands * 100

    @property
    def health_score(self) -> float:
        """Health between 0 and 100 combining success rate and recent failures.

        Untested endpoints count as a 100% success rate.
        """
        success_rate = self.success_rate
        if success_rate is None:
            success_rate = 100.0
        return max(0.0, min(100.0, success_rate - self.consecutive_failures * 10))

    def record_success(self, now: datetime) -> None:
        """Update counters after a successful command."""
        self.successful_commands += 1
        self.consecutive_failures = 0
        self.last_connection_at = now
        self.last_error = None

    def record_failure(self, error: str) -> None:
        """Update counters after a failed command."""
        self.consecutive_failures += 1
        self.last_error = error

    def reset(self) -> None:
        """Forget recent failures so the endpoint can be used again."""
        self.consecutive_failures = 0
        self.last_error = None

    def snapshot(self) -> EndpointStatus:
        """Return a read-only status of this endpoint."""
        return EndpointStatus(
            key=self.config.key,
            display_name=self.config.display_name,
            host=self.config.host,
            port=self.config.port,
            enabled=self.config.enabled,
            is_available=self.is_available,
            consecutive_failures=self.consecutive_failures,
            last_connection_at=self.last_connection_at,
            last_error=self.last_error,
            total_commands=self.total_commands,
            successful_commands=self.successful_commands,
            success_rate=self.success_rate,
            health_score=self.health_score,
            status="online" if self.is_available else "offline",
        )


@dataclass(frozen=True)
class EndpointStatus:
    """Snapshot of an endpoint's configuration and health, without its password."""

    key: str
    display_name: str
    host: str
    port: int
    enabled: bool
    is_available: bool
    consecutive_failures: int
    last_connection_at: datetime | None
    last_error: str | None
    total_commands: int
    successful_commands: int
    success_rate: float | None
    health_score: float
    status: str


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one command execution, or of a composite operation.

    A successful result always carries a response and no error; a failed
    result always carries a non-empty error and no response.

    :param success: Whether every command involved succeeded
    :param endpoint_key: The endpoint that produced the result
    :param response: Raw text response on success
    :param error: Human readable error on failure
    :param command_results: Results of the constituent commands, if composite
    """

    success: bool
    endpoint_key: str
    response: str | None = None
    error: str | None = None
    command_results: list[CommandResult] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Reject partially populated results."""
        if self.success and (self.response is None or self.error is not None):
            msg = "A successful CommandResult needs a response and no error"
            raise ValueError(msg)
        if not self.success and (not self.error or self.response is not None):
            msg = "A failed CommandResult needs an error and no response"
            raise ValueError(msg)

    @classmethod
    def ok(
        cls,
        endpoint_key: str,
        response: str,
        command_results: list[CommandResult] | None = None,
    ) -> CommandResult:
        """Create a successful result."""
        return cls(
            success=True,
            endpoint_key=endpoint_key,
            response=response,
            command_results=command_results or [],
        )

    @classmethod
    def failure(
        cls,
        endpoint_key: str,
        error: str,
        command_results: list[CommandResult] | None = None,
    ) -> CommandResult:
        """Create a failed result."""
        return cls(
            success=False,
            endpoint_key=endpoint_key,
            error=error or "Unknown RCON error",
            command_results=command_results or [],
        )


@dataclass(frozen=True)
class ConnectivityResult:
    """Outcome of probing one endpoint.

    :param endpoint_key: The probed endpoint
    :param target: ``host:port`` of the endpoint, or "unknown"
    :param success: Whether the probe command succeeded
    :param disabled: Whether the endpoint was skipped for being disabled
    :param response: Probe response on success
    :param error: Error text on failure
    """

    endpoint_key: str
    target: str
    success: bool
    disabled: bool = False
    response: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class ConnectivityReport:
    """Aggregate of probing every endpoint. Disabled endpoints are not failures."""

    total: int
    successful: int
    failed: int
    disabled: int
    results: dict[str, ConnectivityResult]
