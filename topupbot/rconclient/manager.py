"""Manager executing RCON commands against a registry of endpoints.

Every command runs in its own connection session: connect and authenticate
(retried with linear backoff), send the command, and close the connection,
each step bounded by its own timeout. Per-endpoint health is tracked so that
endpoints failing repeatedly are refused until their failures are reset.

Nothing raised while talking to a server escapes :meth:`execute_command`;
every outcome is a :class:`~topupbot.rconclient.types.CommandResult`.

**Example Usage:**

.. code-block:: python

    async with RCONClientManager(config_service.rcon_endpoints) as manager:
        result = await manager.give_points("main", "76561190000000001", 500)
        if not result.success:
            print(result.error)
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from .connection import SocketClient
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
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .types import RCONTransport

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)

EMPTY_RESPONSE_SENTINEL = "Command executed successfully"

# first non-empty field wins when a transport returns a structured response
_RESPONSE_FIELDS = ("body", "response", "data", "message")

_CONNECT_RETRY_ERRORS = (OSError, EOFError, RCONClientIncorrectPasswordError)

_ITEM_PREFIXES = (
    "PrimalItemArmor_",
    "PrimalItemResource_",
    "PrimalItemWeapon_",
    "PrimalItemConsumable_",
    "PrimalItemStructure_",
    "PrimalItem_",
)


def _describe(error: BaseException) -> str:
    """Return a non-empty description of an exception."""
    return str(error) or type(error).__name__


def extract_item_name(item_path: str | None) -> str:
    """Turn an item blueprint path into a readable item name.

    ``"/Game/.../PrimalItem_WeaponTekRifle.PrimalItem_WeaponTekRifle"`` becomes
    ``"Weapon Tek Rifle"``.

    :param item_path: Blueprint path of the item
    :return: The item name, or "Unknown Item"
    """
    if not item_path:
        return "Unknown Item"

    item_name = item_path.split("/")[-1].split(".")[0]
    for prefix in _ITEM_PREFIXES:
        item_name = item_name.replace(prefix, "")
    item_name = item_name.replace("'", "").replace('"', "")
    item_name = re.sub(r"(?<!^)([A-Z])", r" \1", item_name).strip()

    return item_name or "Unknown Item"


@dataclass(frozen=True)
class RCONManagerSettings:
    """Timeouts and policies of the manager.

    :param connect_timeout: Seconds allowed for one connect + auth attempt
    :param command_timeout: Seconds allowed for a command response
    :param close_timeout: Seconds allowed for a graceful close before aborting
    :param retry_policy: Retry policy of the connect step
    :param probe_command: No-op command used by connectivity tests
    """

    connect_timeout: float = 8.0
    command_timeout: float = 10.0
    close_timeout: float = 3.0
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    probe_command: str = 'echo "RCON Connection Test"'


@dataclass(frozen=True)
class ManagerConfiguration:
    """Snapshot of the manager configuration and registry."""

    initialized: bool
    total_endpoints: int
    enabled_endpoints: int
    available_endpoints: int
    active_sessions: int
    connect_timeout: float
    command_timeout: float
    close_timeout: float
    max_retries: int
    endpoints: list[EndpointStatus]


@dataclass(frozen=True)
class HealthReport:
    """Outcome of a full health check."""

    status: str
    initialized: bool
    total_endpoints: int
    available_endpoints: int
    active_sessions: int
    connectivity: ConnectivityReport
    timestamp: datetime


class RCONClientManager:
    """Registry of RCON endpoints and executor of commands against them.

    Designed for a single asyncio event loop: counters are only updated
    between awaits, so concurrent commands never lose updates.
    """

    POINTS_COMMAND = "AddPoints {player_id} {amount}"
    ITEM_COMMAND = 'giveitem {player_id} "{item_path}" {quantity} {quality} {blueprint}'
    KIT_COMMAND = 'GiveKit {player_id} "{kit_name}" {quantity}'
    PLAYER_PLACEHOLDERS = ("{steam64}", "{player_id}")

    def __init__(
        self,
        config_source: Callable[[], Mapping[str, Any]],
        transport_factory: Callable[[EndpointConfig], RCONTransport] | None = None,
        settings: RCONManagerSettings | None = None,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        """Create a manager with an empty registry.

        Endpoints are loaded by :meth:`reload`, which entering the manager as
        an async context manager also does.

        :param config_source: Returns the raw endpoint mapping
            (key -> host, port, password, display_name, enabled)
        :param transport_factory: Creates one transport per command session
        :param settings: Timeouts and retry policy
        :param logger: Logger receiving the manager events
        :param sleep: Coroutine used for the retry backoff
        """
        self._config_source = config_source
        self._transport_factory = transport_factory or SocketClient.for_endpoint
        self._settings = settings or RCONManagerSettings()
        self._logger = logger or LOGGER
        self._sleep = sleep

        self._endpoints: dict[str, EndpointRuntimeState] = {}
        self._active_sessions: set[RCONTransport] = set()

    async def __aenter__(self) -> RCONClientManager:
        """Load the endpoints."""
        self.reload()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

    @property
    def initialized(self) -> bool:
        """Whether at least one usable endpoint is registered."""
        return bool(self._endpoints)

    @property
    def settings(self) -> RCONManagerSettings:
        """The timeouts and policies of this manager."""
        return self._settings

    @property
    def active_sessions(self) -> int:
        """Number of connection sessions currently open."""
        return len(self._active_sessions)

    def load_endpoints(self, raw_config: Mapping[str, Any] | None) -> None:
        """Replace the whole registry with the endpoints of ``raw_config``.

        Entries missing a host, port or password are logged and dropped, a
        ``raw_config`` that is not a mapping leaves no usable endpoint.
        The new registry is built aside and swapped in at once.

        :param raw_config: Mapping of endpoint key to endpoint settings
        """
        endpoints: dict[str, EndpointRuntimeState] = {}

        if raw_config is None:
            raw_config = {}
        elif not isinstance(raw_config, Mapping):
            self._logger.warning(
                "RCON endpoint configuration is a %s, not a mapping, ignored",
                type(raw_config).__name__,
            )
            raw_config = {}

        for key, raw_endpoint in raw_config.items():
            if not isinstance(raw_endpoint, Mapping):
                self._logger.warning("RCON endpoint %s is not a mapping, skipped", key)
                continue

            try:
                config = EndpointConfig.from_mapping(key, raw_endpoint)
            except (TypeError, ValueError):
                self._logger.warning("RCON endpoint %s has an invalid port, skipped", key)
                continue

            if config is None:
                self._logger.warning(
                    "RCON endpoint %s is missing host, port or password, skipped",
                    key,
                )
                continue

            endpoints[key] = EndpointRuntimeState(config)
            self._logger.info(
                "RCON endpoint configured: %s at %s (%s), password %s",
                key,
                config.target,
                "enabled" if config.enabled else "disabled",
                config.masked_password,
            )

        self._endpoints = endpoints

        if not endpoints:
            self._logger.warning("No usable RCON endpoints configured")
        else:
            self._logger.info("%d RCON endpoint(s) initialized", len(endpoints))

    def reload(self) -> ManagerConfiguration:
        """Read the configuration again and replace the registry.

        If reading the configuration raises, the current registry is kept.

        :return: The configuration after the reload
        """
        self._logger.info("Reloading RCON endpoint configuration")
        self.load_endpoints(self._config_source())
        return self.get_configuration()

    def _resolve_endpoint(self, endpoint_key: str) -> EndpointRuntimeState:
        """Return the runtime state of an endpoint that may execute commands.

        :raises RCONConfigurationError: If not initialized or the key is unknown
        :raises RCONAvailabilityError: If disabled or over the failure threshold
        """
        if not self.initialized:
            msg = "RCON manager not initialized: no usable endpoints configured"
            raise RCONConfigurationError(msg)

        state = self._endpoints.get(endpoint_key)
        if state is None:
            known = ", ".join(self._endpoints) or "none"
            msg = f"Endpoint {endpoint_key} is not configured (known endpoints: {known})"
            raise RCONConfigurationError(msg)

        if not state.config.enabled:
            msg = f"Endpoint {endpoint_key} is unavailable: disabled in configuration"
            raise RCONAvailabilityError(msg)

        if state.consecutive_failures >= EndpointRuntimeState.FAILURE_THRESHOLD:
            msg = (
                f"Endpoint {endpoint_key} has too many consecutive failures "
                f"({state.consecutive_failures}), reset it to retry"
            )
            raise RCONAvailabilityError(msg)

        return state

    async def execute_command(self, endpoint_key: str, command: str) -> CommandResult:
        """Execute one command on an endpoint.

        :param endpoint_key: Key of the endpoint
        :param command: The command text
        :return: The outcome of the command, never raised
        """
        try:
            state = self._resolve_endpoint(endpoint_key)
        except RCONClientError as e:
            self._logger.warning("RCON command rejected: %s", e)
            return CommandResult.failure(endpoint_key, _describe(e))

        state.total_commands += 1
        self._logger.debug("Executing RCON command on %s: %s", endpoint_key, command)

        try:
            response = await self._execute_session(state.config, command)
        except RCONClientError as e:
            error = _describe(e)
            state.record_failure(error)
            self._logger.error(
                "RCON command failed on %s (%d consecutive): %s",
                endpoint_key,
                state.consecutive_failures,
                error,
            )
            return CommandResult.failure(endpoint_key, error)

        state.record_success(datetime.now(UTC))
        self._logger.info(
            "RCON command succeeded on %s: %s -> %s",
            endpoint_key,
            command,
            response[:500],
        )
        return CommandResult.ok(endpoint_key, response)

    async def _execute_session(self, endpoint: EndpointConfig, command: str) -> str:
        """Run a command in a connection session that is always closed.

        :raises RCONConnectionError: If connecting or sending failed
        :raises RCONTimeoutError: If connecting or sending timed out
        """
        transport = self._transport_factory(endpoint)
        self._active_sessions.add(transport)
        try:
            await self._open_session(endpoint, transport)
            raw_response = await self._send(endpoint, transport, command)
            return self.extract_response_text(raw_response)
        finally:
            try:
                await self._close_session(endpoint, transport)
            finally:
                self._active_sessions.discard(transport)

    async def _open_session(
        self,
        endpoint: EndpointConfig,
        transport: RCONTransport,
    ) -> None:
        """Connect and authenticate, retrying with backoff.

        :raises RCONConnectionError: If every attempt failed
        :raises RCONTimeoutError: If the last attempt timed out
        """
        attempts = 0
        timeout = self._settings.connect_timeout

        async def attempt() -> None:
            nonlocal attempts
            attempts += 1
            await asyncio.wait_for(transport.connect(), timeout)

        def log_retry(attempt_number: int, error: BaseException, delay: float) -> None:
            self._logger.warning(
                "RCON connect attempt %d to %s failed (%s), retrying in %.1fs",
                attempt_number,
                endpoint.key,
                _describe(error),
                delay,
            )

        try:
            await retry_with_backoff(
                attempt,
                self._settings.retry_policy,
                retry_on=_CONNECT_RETRY_ERRORS,
                on_retry=log_retry,
                sleep=self._sleep,
            )
        except TimeoutError as e:
            msg = (
                f"Connection timeout: {endpoint.display_name} ({endpoint.target}) "
                f"did not accept the connection within {timeout}s "
                f"after {attempts} attempt(s)"
            )
            raise RCONTimeoutError(msg) from e
        except RCONClientIncorrectPasswordError as e:
            msg = (
                f"Connection failed to {endpoint.display_name} ({endpoint.target}) "
                f"after {attempts} attempt(s): authentication rejected"
            )
            raise RCONConnectionError(msg) from e
        except Exception as e:
            msg = (
                f"Connection failed to {endpoint.display_name} ({endpoint.target}) "
                f"after {attempts} attempt(s): {_describe(e)}"
            )
            raise RCONConnectionError(msg) from e

        self._logger.debug("RCON session opened to %s", endpoint.key)

    async def _send(
        self,
        endpoint: EndpointConfig,
        transport: RCONTransport,
        command: str,
    ) -> Any:
        """Send the command and wait for the raw response.

        :raises RCONConnectionError: If the transport failed
        :raises RCONTimeoutError: If no response arrived in time
        """
        timeout = self._settings.command_timeout
        try:
            return await asyncio.wait_for(transport.send_command(command), timeout)
        except TimeoutError as e:
            msg = (
                f"Command execution timeout: {endpoint.display_name} "
                f"({endpoint.target}) did not respond within {timeout}s"
            )
            raise RCONTimeoutError(msg) from e
        except Exception as e:
            msg = (
                f"Command execution failed on {endpoint.display_name} "
                f"({endpoint.target}): {_describe(e)}"
            )
            raise RCONConnectionError(msg) from e

    async def _close_session(
        self,
        endpoint: EndpointConfig,
        transport: RCONTransport,
    ) -> None:
        """Close a session gracefully, aborting it if that fails.

        Never raises, except for the cancellation of the calling task, which
        aborts the socket first.
        """
        try:
            await asyncio.wait_for(
                transport.disconnect(),
                self._settings.close_timeout,
            )
        except asyncio.CancelledError:
            self._logger.warning(
                "Closing RCON session to %s cancelled, aborting socket",
                endpoint.key,
            )
            self._abort(transport)
            raise
        except TimeoutError:
            self._logger.warning(
                "Closing RCON session to %s timed out, aborting socket",
                endpoint.key,
            )
            self._abort(transport)
        except Exception:
            self._logger.exception(
                "Error while closing RCON session to %s, aborting socket",
                endpoint.key,
            )
            self._abort(transport)
        else:
            self._logger.debug("RCON session closed to %s", endpoint.key)

    def _abort(self, transport: RCONTransport) -> None:
        """Abort a transport, logging instead of raising."""
        try:
            transport.abort()
        except Exception:
            self._logger.exception("Error while aborting RCON socket")

    @staticmethod
    def extract_response_text(response: Any) -> str:
        """Normalize a raw transport response into plain text.

        :param response: Whatever the transport returned
        :return: The response text, or a sentinel when nothing usable came back
        """
        if isinstance(response, bytes):
            response = response.decode("utf-8", errors="replace")

        if isinstance(response, str):
            text = response.strip()
        elif isinstance(response, Mapping):
            for name in _RESPONSE_FIELDS:
                value = response.get(name)
                if value:
                    text = str(value).strip()
                    break
            else:
                text = json.dumps(response, indent=2, default=str) if response else ""
        elif response is None:
            text = ""
        else:
            text = str(response).strip()

        return text or EMPTY_RESPONSE_SENTINEL

    @classmethod
    def substitute_player(cls, template: str, player_id: str) -> str:
        """Replace every player placeholder of a command template."""
        command = template
        for placeholder in cls.PLAYER_PLACEHOLDERS:
            command = command.replace(placeholder, player_id)
        return command

    async def give_item(  # noqa: PLR0913
        self,
        endpoint_key: str,
        player_id: str,
        item_path: str,
        quantity: int = 1,
        quality: int = 0,
        blueprint: int = 0,
    ) -> CommandResult:
        """Give an item to a player.

        :param endpoint_key: Key of the endpoint
        :param player_id: Game id (steam64) of the player
        :param item_path: Blueprint path of the item
        :param quantity: Number of items
        :param quality: Item quality
        :param blueprint: 1 to give a blueprint instead of the item
        :return: The command outcome
        """
        if not player_id or not item_path:
            return CommandResult.failure(
                endpoint_key,
                "Missing required parameters: player id or item path",
            )
        if quantity < 1:
            return CommandResult.failure(endpoint_key, "Quantity must be at least 1")

        command = self.ITEM_COMMAND.format(
            player_id=player_id,
            item_path=item_path,
            quantity=quantity,
            quality=quality,
            blueprint=blueprint,
        )
        result = await self.execute_command(endpoint_key, command)
        if result.success:
            self._logger.info(
                "Gave %s x%d to %s on %s",
                extract_item_name(item_path),
                quantity,
                player_id,
                endpoint_key,
            )
        return result

    async def give_points(
        self,
        endpoint_key: str,
        player_id: str,
        amount: int,
    ) -> CommandResult:
        """Give shop points to a player.

        :param endpoint_key: Key of the endpoint
        :param player_id: Game id (steam64) of the player
        :param amount: Number of points, positive
        :return: The command outcome
        """
        if not player_id:
            return CommandResult.failure(
                endpoint_key,
                "Missing required parameters: player id",
            )
        if amount < 1:
            return CommandResult.failure(endpoint_key, "Amount must be positive")

        command = self.POINTS_COMMAND.format(player_id=player_id, amount=amount)
        result = await self.execute_command(endpoint_key, command)
        if result.success:
            self._logger.info(
                "Gave %d points to %s on %s",
                amount,
                player_id,
                endpoint_key,
            )
        return result

    async def give_kit(
        self,
        endpoint_key: str,
        player_id: str,
        kit_name: str,
        quantity: int = 1,
    ) -> CommandResult:
        """Give a shop kit to a player.

        :param endpoint_key: Key of the endpoint
        :param player_id: Game id (steam64) of the player
        :param kit_name: Name of the kit
        :param quantity: Number of kits
        :return: The command outcome
        """
        if not player_id or not kit_name:
            return CommandResult.failure(
                endpoint_key,
                "Missing required parameters: player id or kit name",
            )
        if quantity < 1:
            return CommandResult.failure(endpoint_key, "Quantity must be at least 1")

        command = self.KIT_COMMAND.format(
            player_id=player_id,
            kit_name=kit_name,
            quantity=quantity,
        )
        return await self.execute_command(endpoint_key, command)

    async def run_command_sequence(
        self,
        endpoint_key: str,
        player_id: str,
        templates: list[str],
    ) -> CommandResult:
        """Run command templates in order, stopping at the first failure.

        ``{steam64}`` and ``{player_id}`` in a template are replaced by the
        player id. Commands after a failed one are never sent.

        :param endpoint_key: Key of the endpoint
        :param player_id: Game id (steam64) of the player
        :param templates: Command templates to run
        :return: The aggregate outcome, with every attempted result attached
        """
        if not templates:
            return CommandResult.failure(endpoint_key, "No commands provided")
        if not player_id:
            return CommandResult.failure(
                endpoint_key,
                "Missing required parameters: player id",
            )

        results: list[CommandResult] = []
        for template in templates:
            command = self.substitute_player(template, player_id)
            result = await self.execute_command(endpoint_key, command)
            results.append(result)

            if not result.success:
                return CommandResult.failure(
                    endpoint_key,
                    f"Command {len(results)} of {len(templates)} failed: "
                    f"{result.error}",
                    results,
                )

        return CommandResult.ok(
            endpoint_key,
            "\n".join(result.response or "" for result in results),
            results,
        )

    def get_all_endpoints(self) -> list[EndpointStatus]:
        """Return the status of every registered endpoint."""
        return [state.snapshot() for state in self._endpoints.values()]

    def get_available_endpoints(self) -> list[EndpointStatus]:
        """Return the status of every enabled and available endpoint."""
        return [
            status
            for status in self.get_all_endpoints()
            if status.enabled and status.is_available
        ]

    def get_endpoint_status(self, endpoint_key: str) -> EndpointStatus | None:
        """Return the status of one endpoint, or None if it is unknown."""
        state = self._endpoints.get(endpoint_key)
        return state.snapshot() if state else None

    def select_best_available(self) -> EndpointStatus | None:
        """Return the available endpoint with the highest health score.

        Ties go to the endpoint registered first.
        """
        best: EndpointStatus | None = None
        for status in self.get_available_endpoints():
            if best is None or status.health_score > best.health_score:
                best = status
        return best

    def reset_failures(self, endpoint_key: str) -> bool:
        """Forget the recent failures of an endpoint.

        :return: False if the endpoint is unknown
        """
        state = self._endpoints.get(endpoint_key)
        if state is None:
            return False

        state.reset()
        self._logger.info("Reset failures for RCON endpoint %s", endpoint_key)
        return True

    def reset_all_failures(self) -> int:
        """Forget the recent failures of every endpoint.

        :return: Number of endpoints reset
        """
        for state in self._endpoints.values():
            state.reset()
        self._logger.info("Reset failures for %d RCON endpoint(s)", len(self._endpoints))
        return len(self._endpoints)

    async def test_connectivity(self, endpoint_key: str) -> ConnectivityResult:
        """Run the probe command against one endpoint."""
        state = self._endpoints.get(endpoint_key)
        if state is None:
            return ConnectivityResult(
                endpoint_key=endpoint_key,
                target="unknown",
                success=False,
                error=f"Endpoint {endpoint_key} is not configured",
            )

        if not state.config.enabled:
            return ConnectivityResult(
                endpoint_key=endpoint_key,
                target=state.config.target,
                success=False,
                disabled=True,
                error="Endpoint disabled",
            )

        result = await self.execute_command(endpoint_key, self._settings.probe_command)
        return ConnectivityResult(
            endpoint_key=endpoint_key,
            target=state.config.target,
            success=result.success,
            response=result.response,
            error=result.error,
        )

    async def test_all_connectivity(self) -> ConnectivityReport:
        """Probe every endpoint one after the other."""
        results = {}
        for endpoint_key in list(self._endpoints):
            results[endpoint_key] = await self.test_connectivity(endpoint_key)

        report = ConnectivityReport(
            total=len(results),
            successful=sum(1 for r in results.values() if r.success),
            failed=sum(1 for r in results.values() if not r.success and not r.disabled),
            disabled=sum(1 for r in results.values() if r.disabled),
            results=results,
        )
        self._logger.info(
            "RCON connectivity test: %d/%d responding, %d disabled",
            report.successful,
            report.total,
            report.disabled,
        )
        return report

    def get_configuration(self) -> ManagerConfiguration:
        """Return a snapshot of the settings and the registry."""
        endpoints = self.get_all_endpoints()
        return ManagerConfiguration(
            initialized=self.initialized,
            total_endpoints=len(endpoints),
            enabled_endpoints=sum(1 for e in endpoints if e.enabled),
            available_endpoints=sum(1 for e in endpoints if e.is_available),
            active_sessions=self.active_sessions,
            connect_timeout=self._settings.connect_timeout,
            command_timeout=self._settings.command_timeout,
            close_timeout=self._settings.close_timeout,
            max_retries=self._settings.retry_policy.max_retries,
            endpoints=endpoints,
        )

    async def health_check(self) -> HealthReport:
        """Probe every endpoint and summarize the health of the manager."""
        connectivity = await self.test_all_connectivity()
        configuration = self.get_configuration()
        healthy = configuration.initialized and connectivity.successful > 0
        return HealthReport(
            status="healthy" if healthy else "unhealthy",
            initialized=configuration.initialized,
            total_endpoints=configuration.total_endpoints,
            available_endpoints=configuration.available_endpoints,
            active_sessions=configuration.active_sessions,
            connectivity=connectivity,
            timestamp=datetime.now(UTC),
        )

    async def shutdown(self) -> None:
        """Abort every open session and clear the registry."""
        self._logger.info("RCON manager shutting down")

        for transport in list(self._active_sessions):
            self._abort(transport)
        self._active_sessions.clear()
        self._endpoints = {}

        self._logger.info("RCON manager shut down")
