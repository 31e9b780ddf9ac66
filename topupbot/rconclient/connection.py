"""RCON communication client.

One :class:`SocketClient` is one connection session: it is opened and
authenticated by :meth:`SocketClient.connect`, used for a command, and closed
by :meth:`SocketClient.disconnect` (or dropped by :meth:`SocketClient.abort`).
Socket exceptions bubble up so the caller owns retries and cleanup.
The client satisfies :class:`~topupbot.rconclient.types.RCONTransport`.

Packet format reference:
https://developer.valvesoftware.com/wiki/Source_RCON_Protocol
"""

from __future__ import annotations

import asyncio
import logging
import struct
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .rcon_exceptions import RCONClientIncorrectPasswordError
from .types import RCONPacketType

if TYPE_CHECKING:
    from .types import EndpointConfig

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


@dataclass
class SocketClientConfig:
    """Configuration for the RCON SocketClient.

    :param host: The RCON host
    :param password: The RCON password
    :param port: The RCON port (default: 25575)
    :param multi_packet: Whether to collect multi-packet responses by sending
        a trailing dummy packet (Minecraft servers answer it, others may not)
    """

    host: str
    password: str
    port: int = 25575
    multi_packet: bool = False

    @classmethod
    def from_endpoint(cls, endpoint: EndpointConfig) -> SocketClientConfig:
        """Create the socket configuration of an endpoint.

        :param endpoint: The endpoint to connect to
        :return: The matching SocketClientConfig
        """
        return cls(
            host=endpoint.host,
            password=endpoint.password,
            port=endpoint.port,
            multi_packet=endpoint.multi_packet,
        )


class SocketClient:
    """Client that manages a single RCON connection to a server.

    Supports single-coroutine access only.
    """

    # request id (4) + packet type (4) + 2 null bytes (2)
    _PACKET_METADATA_SIZE = 10
    # servers split longer responses over several packets
    _MAX_PACKET_SIZE = _PACKET_METADATA_SIZE + 4096
    _AUTH_REQUEST_ID = 0
    _DUMMY_REQUEST_OFFSET = 1000

    def __init__(self, config: SocketClientConfig) -> None:
        """Initialize an unconnected client.

        :param config: The SocketClientConfig instance
        """
        self._config = config
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._request_id: int = 1

    @classmethod
    def for_endpoint(cls, endpoint: EndpointConfig) -> SocketClient:
        """Create an unconnected client for an endpoint.

        Used as the default transport factory of the manager.

        :param endpoint: The endpoint to connect to
        :return: A new SocketClient
        """
        return cls(SocketClientConfig.from_endpoint(endpoint))

    @property
    def connected(self) -> bool:
        """Whether the client holds an authenticated connection."""
        return self._writer is not None

    @staticmethod
    def _format_packet(
        payload: str,
        packet_type: RCONPacketType,
        request_id: int,
    ) -> bytes:
        """Format a packet to be sent to the RCON server.

        :param payload: The body of the packet
        :param packet_type: The type of the packet (RCONPacketType)
        :param request_id: The request ID for the packet
        :return: The formatted packet as bytes
        """
        body_bytes = payload.encode("utf-8")

        return (
            struct.pack("<i", len(body_bytes) + SocketClient._PACKET_METADATA_SIZE)
            + struct.pack("<i", request_id)
            + struct.pack("<i", packet_type.value)
            + body_bytes
            + b"\x00\x00"
        )

    @staticmethod
    async def _read_response(reader: asyncio.StreamReader) -> tuple[int, int, str]:
        """Read one full packet from the RCON server.

        :param reader: The StreamReader for the RCON socket
        :return: A tuple of (response_id, response_type, response_body)

        :raises ConnectionError: if the packet is malformed
        :raises asyncio.IncompleteReadError: if the socket closed mid-packet
        """
        # get the length
        response_bytes = await reader.readexactly(4)
        response_length: int = struct.unpack("<i", response_bytes)[0]
        if not (
            SocketClient._PACKET_METADATA_SIZE
            <= response_length
            <= SocketClient._MAX_PACKET_SIZE
        ):
            msg = f"Malformed RCON packet of length {response_length}"
            raise ConnectionError(msg)

        # rest of response
        response_bytes = await reader.readexactly(response_length)
        response_id, response_type = struct.unpack("<ii", response_bytes[0:8])
        response_body = response_bytes[8:-2].decode("utf-8", errors="replace")

        return response_id, response_type, response_body

    @staticmethod
    async def _authenticate(
        password: str,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> str | None:
        """Send the auth packet and wait for the auth reply.

        Source servers send an empty response packet before the auth reply,
        Minecraft servers only send the reply.

        :param password: The RCON password
        :param reader: The StreamReader for the RCON socket
        :param writer: The StreamWriter for the RCON socket
        :return: The body of the auth reply, or None if auth fails
        """
        writer.write(
            SocketClient._format_packet(
                password,
                RCONPacketType.AUTH_PACKET,
                SocketClient._AUTH_REQUEST_ID,
            ),
        )
        await writer.drain()

        while True:
            response_id, response_type, response_body = (
                await SocketClient._read_response(reader)
            )

            if response_id == RCONPacketType.ERROR_PACKET:
                return None

            if response_type != RCONPacketType.RESPONSE_PACKET:
                return response_body

    @staticmethod
    async def _send_packet(
        payload: str,
        request_id: int,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        multi_packet: bool,
    ) -> str:
        """Send a command packet through the given socket and read the response.

        With ``multi_packet`` a dummy packet of type 200 follows the command and
        every packet is collected until the reply to the dummy arrives.

        :param payload: The body of the packet
        :param request_id: The request ID for the packet local to this client
        :param reader: The StreamReader for the RCON socket
        :param writer: The StreamWriter for the RCON socket
        :param multi_packet: Whether to collect a multi-packet response
        :return: The response body from the server

        :raises RCONClientIncorrectPasswordError: if the server rejects the session
        :raises ConnectionError: if the socket is no longer connected
        """
        writer.write(
            SocketClient._format_packet(
                payload,
                RCONPacketType.COMMAND_PACKET,
                request_id,
            ),
        )

        dummy_request_id = request_id + SocketClient._DUMMY_REQUEST_OFFSET
        if multi_packet:
            writer.write(
                SocketClient._format_packet(
                    "",
                    RCONPacketType.DUMMY_PACKET,
                    dummy_request_id,
                ),
            )
        await writer.drain()

        response_parts = []
        while True:
            response_id, _, response_body = await SocketClient._read_response(reader)

            if response_id == RCONPacketType.ERROR_PACKET:
                msg = "RCON session is not authenticated"
                raise RCONClientIncorrectPasswordError(msg)

            if multi_packet and response_id == dummy_request_id:
                break

            if response_id != request_id:
                LOGGER.debug("Skipping stray RCON packet with id %d", response_id)
                continue

            response_parts.append(response_body)
            if not multi_packet:
                break

        return "".join(response_parts)

    async def connect(self) -> None:
        """Open the connection and authenticate.

        A failed attempt leaves no open socket behind, so the same client
        can be asked to connect again.

        :raises OSError: if the connection is refused or unreachable
        :raises ConnectionError: if the socket closes during authentication
        :raises RCONClientIncorrectPasswordError: if the password is incorrect
        """
        if self.connected:
            return

        reader, writer = await asyncio.open_connection(
            self._config.host,
            self._config.port,
        )

        try:
            auth_success = await SocketClient._authenticate(
                self._config.password,
                reader,
                writer,
            )
        except BaseException:
            writer.transport.abort()
            raise

        if auth_success is None:
            writer.transport.abort()
            msg = "Incorrect RCON password"
            raise RCONClientIncorrectPasswordError(msg)

        self._reader, self._writer = reader, writer
        self._request_id = 1
        LOGGER.debug(
            "RCON connection opened to %s:%d",
            self._config.host,
            self._config.port,
        )

    async def send_command(self, command: str) -> str:
        """Send a command to the RCON server and return the response.

        :param command: The RCON command to send
        :return: The response from the RCON server

        :raises ConnectionError: if the client is not connected
        :raises RCONClientIncorrectPasswordError: if the server rejects the session
        """
        if self._reader is None or self._writer is None:
            msg = "Client disconnected"
            raise ConnectionError(msg)

        self._request_id += 1
        return await SocketClient._send_packet(
            command,
            self._request_id,
            self._reader,
            self._writer,
            multi_packet=self._config.multi_packet,
        )

    async def disconnect(self) -> None:
        """Close the connection gracefully.

        Errors are raised to the caller, which is expected to fall back
        to :meth:`abort`.
        """
        if self._writer is None:
            return

        # the writer is kept until closed so abort() can still reach it
        self._writer.close()
        await self._writer.wait_closed()
        self._writer, self._reader = None, None
        LOGGER.debug(
            "RCON connection closed to %s:%d",
            self._config.host,
            self._config.port,
        )

    def abort(self) -> None:
        """Drop the underlying socket without a graceful close."""
        writer, self._writer, self._reader = self._writer, None, None
        if writer is None:
            return

        writer.transport.abort()
        LOGGER.debug(
            "RCON connection aborted to %s:%d",
            self._config.host,
            self._config.port,
        )
