"""Unit tests for the RCON client connection module.

Tests the SocketClient session lifecycle: authentication, single and
multi-packet command responses, graceful close and abort.
"""

import asyncio
from io import BytesIO
from unittest.mock import patch

import pytest

from topupbot.rconclient.connection import SocketClient, SocketClientConfig
from topupbot.rconclient.rcon_exceptions import RCONClientIncorrectPasswordError
from topupbot.rconclient.types import EndpointConfig, RCONPacketType


class MockStreamReader(asyncio.StreamReader):
    """Mock StreamReader for testing RCON packet handling."""

    def __init__(self, data: bytes = b"") -> None:
        """Initialize the mock StreamReader with predefined data."""
        self._data = BytesIO(data)

    async def readexactly(self, n: int) -> bytes:
        """Read exactly n bytes from the mock data."""
        data = self._data.read(n)
        if len(data) < n:
            msg = "Mock connection closed"
            raise ConnectionError(msg)
        return data


class MockTransport:
    """Mock socket transport recording aborts."""

    def __init__(self) -> None:
        self.aborted = False

    def abort(self) -> None:
        """Mark the transport as aborted."""
        self.aborted = True


class MockStreamWriter:
    """Mock StreamWriter for testing RCON packet sending."""

    def __init__(self) -> None:
        """Initialize the mock StreamWriter."""
        self.data = BytesIO()
        self.closed = False
        self.transport = MockTransport()

    def write(self, data: bytes) -> None:
        """Write data to the mock buffer."""
        if not self.closed:
            self.data.write(data)

    async def drain(self) -> None:
        """Mock drain method."""

    def close(self) -> None:
        """Mark the writer as closed."""
        self.closed = True

    async def wait_closed(self) -> None:
        """Mock wait_closed method."""


@pytest.fixture
def socket_config() -> SocketClientConfig:
    """Provide a standard SocketClientConfig for testing."""
    return SocketClientConfig(
        host="127.0.0.1",
        password="test_password",  # noqa: S106
        port=25575,
    )


def create_response_data(responses: list[tuple[str, RCONPacketType, int]]) -> bytes:
    """Create mock response data containing multiple packets."""
    data = b""
    for payload, packet_type, request_id in responses:
        data += SocketClient._format_packet(payload, packet_type, request_id)  # noqa: SLF001
    return data


def test_format_packet_layout() -> None:
    """Test that packets carry length, id, type, body and two null bytes."""
    packet = SocketClient._format_packet("list", RCONPacketType.COMMAND_PACKET, 7)  # noqa: SLF001

    assert packet == (
        (14).to_bytes(4, "little")
        + (7).to_bytes(4, "little")
        + (2).to_bytes(4, "little")
        + b"list\x00\x00"
    )


def test_for_endpoint_copies_connection_settings() -> None:
    """Test that the default transport factory uses the endpoint settings."""
    endpoint = EndpointConfig(
        key="main",
        host="10.0.0.5",
        port=27020,
        password="secret",  # noqa: S106
        multi_packet=True,
    )

    config = SocketClientConfig.from_endpoint(endpoint)

    assert config == SocketClientConfig(
        host="10.0.0.5",
        password="secret",  # noqa: S106
        port=27020,
        multi_packet=True,
    )
    assert not SocketClient.for_endpoint(endpoint).connected


@pytest.mark.asyncio
class TestSocketClientAuthentication:
    """Test suite for RCON client authentication behavior."""

    async def test_connect_succeeds_with_valid_credentials(
        self,
        socket_config: SocketClientConfig,
    ) -> None:
        """Test that a client connects with valid RCON credentials."""
        auth_response = create_response_data([("", RCONPacketType.COMMAND_PACKET, 0)])

        with patch("asyncio.open_connection") as mock_open_conn:
            writer = MockStreamWriter()
            mock_open_conn.return_value = (MockStreamReader(auth_response), writer)

            client = SocketClient(socket_config)
            await client.connect()

            assert client.connected
            mock_open_conn.assert_called_once_with("127.0.0.1", 25575)
            assert writer.data.getvalue() == SocketClient._format_packet(  # noqa: SLF001
                "test_password",
                RCONPacketType.AUTH_PACKET,
                0,
            )

    async def test_connect_skips_empty_response_before_auth_reply(
        self,
        socket_config: SocketClientConfig,
    ) -> None:
        """Test that the empty packet Source servers send first is skipped."""
        auth_response = create_response_data(
            [
                ("", RCONPacketType.RESPONSE_PACKET, 0),
                ("", RCONPacketType.COMMAND_PACKET, 0),
            ],
        )

        with patch("asyncio.open_connection") as mock_open_conn:
            mock_open_conn.return_value = (
                MockStreamReader(auth_response),
                MockStreamWriter(),
            )

            client = SocketClient(socket_config)
            await client.connect()

            assert client.connected

    async def test_connect_fails_with_invalid_credentials(
        self,
        socket_config: SocketClientConfig,
    ) -> None:
        """Test that a rejected password raises and drops the socket."""
        auth_response = create_response_data([("", RCONPacketType.COMMAND_PACKET, -1)])

        with patch("asyncio.open_connection") as mock_open_conn:
            writer = MockStreamWriter()
            mock_open_conn.return_value = (MockStreamReader(auth_response), writer)

            client = SocketClient(socket_config)
            with pytest.raises(RCONClientIncorrectPasswordError):
                await client.connect()

            assert not client.connected
            assert writer.transport.aborted

    async def test_connect_drops_socket_when_closed_during_auth(
        self,
        socket_config: SocketClientConfig,
    ) -> None:
        """Test that a socket closed mid-authentication is aborted."""
        with patch("asyncio.open_connection") as mock_open_conn:
            writer = MockStreamWriter()
            mock_open_conn.return_value = (MockStreamReader(b""), writer)

            client = SocketClient(socket_config)
            with pytest.raises(ConnectionError):
                await client.connect()

            assert not client.connected
            assert writer.transport.aborted

    async def test_connect_propagates_refused_connection(
        self,
        socket_config: SocketClientConfig,
    ) -> None:
        """Test that connection errors bubble up to the caller."""
        with patch("asyncio.open_connection") as mock_open_conn:
            mock_open_conn.side_effect = ConnectionRefusedError("refused")

            client = SocketClient(socket_config)
            with pytest.raises(ConnectionRefusedError):
                await client.connect()


@pytest.mark.asyncio
class TestSocketClientCommandExecution:
    """Test suite for RCON client command execution functionality."""

    async def test_send_command_returns_single_packet_response(
        self,
        socket_config: SocketClientConfig,
    ) -> None:
        """Test that commands with single-packet responses are handled correctly."""
        responses = create_response_data(
            [
                ("", RCONPacketType.COMMAND_PACKET, 0),
                ("Player count: 5", RCONPacketType.RESPONSE_PACKET, 2),
            ],
        )

        with patch("asyncio.open_connection") as mock_open_conn:
            mock_open_conn.return_value = (MockStreamReader(responses), MockStreamWriter())

            client = SocketClient(socket_config)
            await client.connect()

            result = await client.send_command("list")

            assert result == "Player count: 5"

    async def test_send_command_skips_stray_packets(
        self,
        socket_config: SocketClientConfig,
    ) -> None:
        """Test that packets answering another request id are ignored."""
        responses = create_response_data(
            [
                ("", RCONPacketType.COMMAND_PACKET, 0),
                ("late reply", RCONPacketType.RESPONSE_PACKET, 99),
                ("AddPoints done", RCONPacketType.RESPONSE_PACKET, 2),
            ],
        )

        with patch("asyncio.open_connection") as mock_open_conn:
            mock_open_conn.return_value = (MockStreamReader(responses), MockStreamWriter())

            client = SocketClient(socket_config)
            await client.connect()

            assert await client.send_command("AddPoints 1 10") == "AddPoints done"

    async def test_send_command_handles_multi_packet_response(
        self,
        socket_config: SocketClientConfig,
    ) -> None:
        """Test that commands with multi-packet responses are properly concatenated."""
        socket_config.multi_packet = True
        responses = create_response_data(
            [
                ("", RCONPacketType.COMMAND_PACKET, 0),
                ("Part 1: ", RCONPacketType.RESPONSE_PACKET, 2),
                ("Part 2: ", RCONPacketType.RESPONSE_PACKET, 2),
                ("Part 3", RCONPacketType.RESPONSE_PACKET, 2),
                ("Unknown request c8", RCONPacketType.RESPONSE_PACKET, 1002),
            ],
        )

        with patch("asyncio.open_connection") as mock_open_conn:
            mock_open_conn.return_value = (MockStreamReader(responses), MockStreamWriter())

            client = SocketClient(socket_config)
            await client.connect()

            result = await client.send_command("help")

            assert result == "Part 1: Part 2: Part 3"

    async def test_send_command_handles_empty_response(
        self,
        socket_config: SocketClientConfig,
    ) -> None:
        """Test that commands with empty responses are handled correctly."""
        responses = create_response_data(
            [
                ("", RCONPacketType.COMMAND_PACKET, 0),
                ("", RCONPacketType.RESPONSE_PACKET, 2),
            ],
        )

        with patch("asyncio.open_connection") as mock_open_conn:
            mock_open_conn.return_value = (MockStreamReader(responses), MockStreamWriter())

            client = SocketClient(socket_config)
            await client.connect()

            assert await client.send_command("some_silent_command") == ""

    async def test_send_command_rejected_session_raises(
        self,
        socket_config: SocketClientConfig,
    ) -> None:
        """Test that an error packet during a command is reported as auth failure."""
        responses = create_response_data(
            [
                ("", RCONPacketType.COMMAND_PACKET, 0),
                ("", RCONPacketType.RESPONSE_PACKET, -1),
            ],
        )

        with patch("asyncio.open_connection") as mock_open_conn:
            mock_open_conn.return_value = (MockStreamReader(responses), MockStreamWriter())

            client = SocketClient(socket_config)
            await client.connect()

            with pytest.raises(RCONClientIncorrectPasswordError):
                await client.send_command("list")

    @pytest.mark.parametrize("length", [9, 4107, 2**31 - 1])
    async def test_send_command_rejects_impossible_packet_length(
        self,
        socket_config: SocketClientConfig,
        length: int,
    ) -> None:
        """Test that a length outside the protocol bounds is never buffered."""
        responses = create_response_data(
            [("", RCONPacketType.COMMAND_PACKET, 0)],
        ) + length.to_bytes(4, "little")

        with patch("asyncio.open_connection") as mock_open_conn:
            mock_open_conn.return_value = (MockStreamReader(responses), MockStreamWriter())

            client = SocketClient(socket_config)
            await client.connect()

            with pytest.raises(ConnectionError, match=f"length {length}"):
                await client.send_command("list")

    async def test_send_command_requires_connection(
        self,
        socket_config: SocketClientConfig,
    ) -> None:
        """Test that sending on an unconnected client raises ConnectionError."""
        client = SocketClient(socket_config)

        with pytest.raises(ConnectionError):
            await client.send_command("list")


@pytest.mark.asyncio
class TestSocketClientConnectionManagement:
    """Test suite for RCON client connection management functionality."""

    async def test_disconnect_closes_connection_gracefully(
        self,
        socket_config: SocketClientConfig,
    ) -> None:
        """Test that disconnect properly closes the connection."""
        auth_response = create_response_data([("", RCONPacketType.COMMAND_PACKET, 0)])

        with patch("asyncio.open_connection") as mock_open_conn:
            writer = MockStreamWriter()
            mock_open_conn.return_value = (MockStreamReader(auth_response), writer)

            client = SocketClient(socket_config)
            await client.connect()
            await client.disconnect()

            assert writer.closed is True
            assert not writer.transport.aborted
            assert not client.connected

    async def test_abort_drops_the_socket(
        self,
        socket_config: SocketClientConfig,
    ) -> None:
        """Test that abort drops the socket without a graceful close."""
        auth_response = create_response_data([("", RCONPacketType.COMMAND_PACKET, 0)])

        with patch("asyncio.open_connection") as mock_open_conn:
            writer = MockStreamWriter()
            mock_open_conn.return_value = (MockStreamReader(auth_response), writer)

            client = SocketClient(socket_config)
            await client.connect()
            client.abort()

            assert writer.transport.aborted
            assert not client.connected

    async def test_disconnect_and_abort_without_connection_are_noops(
        self,
        socket_config: SocketClientConfig,
    ) -> None:
        """Test that cleanup of an unconnected client does nothing."""
        client = SocketClient(socket_config)

        await client.disconnect()
        client.abort()

        assert not client.connected
