"""
UDP Endpoints

Thin asyncio wrapper around a non-blocking datagram socket. Each
discovery role owns exactly one endpoint; endpoints are never shared.
"""

import asyncio
import logging
import socket
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

# Receive buffer; discovery messages never exceed 255 bytes
RECV_BUFFER_SIZE = 4096

Address = Tuple[str, int]


class SocketSetupError(OSError):
    """A role's socket could not be created or bound."""


class UDPEndpoint:
    """A datagram socket usable from coroutines."""

    def __init__(self, sock: socket.socket):
        self._socket: Optional[socket.socket] = sock

    @classmethod
    def bind(cls, port: int, host: str = '', broadcast: bool = True) -> 'UDPEndpoint':
        """
        Create a socket bound to ``(host, port)``.

        Raises:
            SocketSetupError: socket creation, option or bind failed
        """
        sock = None
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if broadcast:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)

            # Try to set SO_REUSEPORT if available (for macOS/Linux)
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            except (AttributeError, OSError):
                pass

            sock.bind((host, port))
            sock.setblocking(False)
        except OSError as e:
            if sock is not None:
                sock.close()
            raise SocketSetupError(f"Failed to bind UDP socket on {host or '*'}:{port}: {e}") from e

        endpoint = cls(sock)
        logger.debug(f"UDP endpoint bound on {endpoint.local_address}")
        return endpoint

    @classmethod
    def broadcaster(cls) -> 'UDPEndpoint':
        """
        Create an unbound socket allowed to send to broadcast addresses.

        Raises:
            SocketSetupError: socket creation or SO_BROADCAST failed
        """
        sock = None
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.setblocking(False)
        except OSError as e:
            if sock is not None:
                sock.close()
            raise SocketSetupError(f"Failed to create broadcast socket: {e}") from e
        return cls(sock)

    @property
    def local_address(self) -> Address:
        if self._socket is None:
            raise ConnectionError("Endpoint closed")
        return self._socket.getsockname()

    @property
    def is_closed(self) -> bool:
        return self._socket is None

    async def recvfrom(self) -> Tuple[bytes, Address]:
        """Wait for the next datagram."""
        if self._socket is None:
            raise ConnectionError("Endpoint closed")
        loop = asyncio.get_running_loop()
        return await loop.sock_recvfrom(self._socket, RECV_BUFFER_SIZE)

    async def sendto(self, data: bytes, addr: Address):
        """Send one datagram. Raises OSError on failure."""
        if self._socket is None:
            raise ConnectionError("Endpoint closed")
        loop = asyncio.get_running_loop()
        await loop.sock_sendto(self._socket, data, addr)

    def close(self):
        if self._socket is not None:
            self._socket.close()
            self._socket = None
