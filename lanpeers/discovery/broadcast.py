"""
UDP Broadcast Discovery Roles

Design Decision: Discovery Exchange
===================================

Options:
1. Every node broadcasts, every node records every broadcast it hears
   - One message type, but a node only learns peers whose broadcasts
     reach it
2. Broadcast DISCOVER, unicast RESPONSE back to the sender
   - Two message types, the sender learns about everyone who heard it
   - Replies go to a dedicated port, so the two flows never mix

Decision: Broadcast + unicast response on two well-known ports
- DiscoveryBroadcaster announces us on the discovery port
- BroadcastResponder answers other nodes' announcements
- ResponseListener records whoever answered ours in the PeerTable

Each role is an independent loop over its own socket. A bad datagram
or a failed send never stops a loop; only shutdown does.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..protocol import Identity, PeerMessage, MalformedMessage, decode
from .peers import PeerTable, UpsertResult
from .transport import UDPEndpoint, Address

logger = logging.getLogger(__name__)

# Network configuration
BROADCAST_PORT = 9005
RESPONSE_PORT = 9006
DISCOVERY_INTERVAL = 5.0
BROADCAST_IP = "255.255.255.255"

# Pause after an unexpected receive error before trying again
RECEIVE_ERROR_BACKOFF = 1.0

# Callback for peer sightings: (message, sender_ip, result)
SightingCallback = Callable[[PeerMessage, str, UpsertResult], None]


class _ReceiveLoop(ABC):
    """
    Shared receive loop for the two listening roles.

    Subclasses implement handle_datagram; run() feeds it every datagram
    received on the endpoint.
    """

    role_name = "listener"

    def __init__(self, endpoint: UDPEndpoint):
        self.endpoint = endpoint
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def stop(self):
        """Ask the loop to exit after the current datagram."""
        self._running = False

    @abstractmethod
    async def handle_datagram(self, data: bytes, addr: Address):
        """Process one received datagram. Must not raise for bad input."""

    async def run(self):
        """Receive and process datagrams until stopped or cancelled."""
        self._running = True
        logger.debug(f"{self.role_name} started")

        while self._running:
            try:
                data, addr = await self.endpoint.recvfrom()
            except asyncio.CancelledError:
                break
            except OSError as e:
                if not self._running or self.endpoint.is_closed:
                    break
                logger.error(f"{self.role_name}: error receiving datagram: {e}")
                await asyncio.sleep(RECEIVE_ERROR_BACKOFF)
                continue

            await self.handle_datagram(data, addr)

        self._running = False
        logger.debug(f"{self.role_name} stopped")


class DiscoveryBroadcaster:
    """
    Periodically broadcasts our identity on the discovery port.
    """

    def __init__(self, identity: Identity, endpoint: UDPEndpoint,
                 broadcast_address: Address = (BROADCAST_IP, BROADCAST_PORT),
                 interval: float = DISCOVERY_INTERVAL):
        """
        Args:
            identity: Identity embedded in every announcement
            endpoint: Socket with SO_BROADCAST enabled
            broadcast_address: Destination (broadcast IP, discovery port)
            interval: Seconds between announcements
        """
        self.identity = identity
        self.endpoint = endpoint
        self.broadcast_address = broadcast_address
        self.interval = interval

        # Identity never changes, so the datagram is built once
        self._payload = PeerMessage.discovery(identity).to_bytes()
        self._running = False
        self.sent_count = 0
        self.failed_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    def stop(self):
        self._running = False

    async def send_once(self) -> bool:
        """
        Send one announcement.

        Returns:
            True if the datagram was handed to the network
        """
        try:
            await self.endpoint.sendto(self._payload, self.broadcast_address)
        except OSError as e:
            self.failed_count += 1
            logger.warning(f"Broadcast to {self.broadcast_address[0]} failed: {e}")
            return False

        self.sent_count += 1
        return True

    async def run(self):
        """Announce every ``interval`` seconds until stopped or cancelled."""
        self._running = True
        logger.debug(f"Broadcasting every {self.interval}s to {self.broadcast_address}")

        while self._running:
            try:
                if self.endpoint.is_closed:
                    break
                await self.send_once()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break

        self._running = False


class BroadcastResponder(_ReceiveLoop):
    """
    Answers other nodes' announcements with a unicast response.

    Does not touch the PeerTable: a node learns about peers only from
    responses to its own broadcasts.
    """

    role_name = "Broadcast responder"

    def __init__(self, identity: Identity, endpoint: UDPEndpoint,
                 response_port: int = RESPONSE_PORT):
        super().__init__(endpoint)
        self.identity = identity
        self.response_port = response_port
        self._payload = PeerMessage.response(identity).to_bytes()
        self.responded_count = 0

    async def handle_datagram(self, data: bytes, addr: Address) -> bool:
        """
        Process one datagram from the discovery port.

        Returns:
            True if a response was sent
        """
        try:
            message = decode(data)
        except MalformedMessage as e:
            logger.debug(f"Ignoring malformed datagram from {addr[0]}: {e}")
            return False

        # Broadcasts loop back to the sender too
        if message.token == self.identity.token:
            return False

        if message.is_response:
            return False

        reply_to = (addr[0], self.response_port)
        try:
            await self.endpoint.sendto(self._payload, reply_to)
        except OSError as e:
            logger.warning(f"Failed to respond to {message.display_name} at {addr[0]}: {e}")
            return False

        self.responded_count += 1
        logger.debug(f"Responded to {message.display_name} ({message.token}) at {addr[0]}")
        return True


class ResponseListener(_ReceiveLoop):
    """
    Records peers that answered our announcements.
    """

    role_name = "Response listener"

    def __init__(self, endpoint: UDPEndpoint, peer_table: PeerTable,
                 identity: Optional[Identity] = None,
                 on_sighting: Optional[SightingCallback] = None):
        """
        Args:
            endpoint: Socket bound to the response port
            peer_table: Table updated for every valid response
            identity: Our identity; datagrams carrying our own token are
                ignored
            on_sighting: Called after every upsert (outside the table lock)
        """
        super().__init__(endpoint)
        self.peer_table = peer_table
        self.identity = identity
        self.on_sighting = on_sighting

    async def handle_datagram(self, data: bytes, addr: Address) -> Optional[UpsertResult]:
        """
        Process one datagram from the response port.

        Returns:
            The upsert outcome, or None if the datagram was discarded
        """
        try:
            message = decode(data)
        except MalformedMessage as e:
            logger.debug(f"Ignoring malformed response from {addr[0]}: {e}")
            return None

        if self.identity is not None and message.token == self.identity.token:
            return None

        sender_ip = addr[0]
        result = self.peer_table.upsert(sender_ip, message.token, message.display_name)

        if result is UpsertResult.DROPPED:
            logger.debug(f"Peer table full, dropped {message.token} at {sender_ip}")

        if self.on_sighting:
            try:
                self.on_sighting(message, sender_ip, result)
            except Exception as e:
                logger.error(f"Callback error: {e}")

        return result
