"""
Discovery Manager

Owns the sockets and background tasks of LAN discovery:
- DiscoveryBroadcaster on an unbound broadcast socket
- BroadcastResponder on the discovery port
- ResponseListener on the response port
- A stale-peer sweep on its own timer

All of them share one PeerTable.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from ..protocol import Identity, PeerMessage
from .peers import PeerTable, PeerRecord, UpsertResult, STALE_PEER_TIMEOUT
from .transport import UDPEndpoint
from .broadcast import (
    DiscoveryBroadcaster,
    BroadcastResponder,
    ResponseListener,
    BROADCAST_IP,
    BROADCAST_PORT,
    RESPONSE_PORT,
    DISCOVERY_INTERVAL,
)

logger = logging.getLogger(__name__)

# Callback type for peer discovery events
PeerCallback = Callable[[PeerRecord, bool], None]  # (peer, is_added)


class DiscoveryManager:
    """
    Runs the three discovery roles and the eviction sweep.
    """

    def __init__(self, identity: Identity, peer_table: PeerTable,
                 host: str = '',
                 broadcast_ip: str = BROADCAST_IP,
                 broadcast_port: int = BROADCAST_PORT,
                 response_port: int = RESPONSE_PORT,
                 discovery_interval: float = DISCOVERY_INTERVAL,
                 stale_timeout: float = STALE_PEER_TIMEOUT,
                 sweep_interval: Optional[float] = None):
        """
        Initialize the discovery manager.

        Args:
            identity: Our identity, shared read-only by every role
            peer_table: Roster written by the response listener
            host: Local address to bind listening sockets to
            broadcast_ip: Destination of discovery broadcasts
            broadcast_port: Well-known discovery port
            response_port: Well-known response port
            discovery_interval: Seconds between broadcasts
            stale_timeout: Peers unseen for longer are evicted
            sweep_interval: Seconds between evictions (defaults to
                discovery_interval)
        """
        self.identity = identity
        self.peer_table = peer_table
        self.host = host
        self.broadcast_ip = broadcast_ip
        self.broadcast_port = broadcast_port
        self.response_port = response_port
        self.discovery_interval = discovery_interval
        self.stale_timeout = stale_timeout
        self.sweep_interval = sweep_interval or discovery_interval

        self.broadcaster: Optional[DiscoveryBroadcaster] = None
        self.responder: Optional[BroadcastResponder] = None
        self.listener: Optional[ResponseListener] = None

        self._endpoints: List[UDPEndpoint] = []
        self._tasks: Dict[str, asyncio.Task] = {}
        self._callbacks: List[PeerCallback] = []
        self._running = False
        self._evicted_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    def on_peer_change(self, callback: PeerCallback):
        """Register a callback for peer discovery events."""
        self._callbacks.append(callback)

    def get_peers(self) -> List[PeerRecord]:
        """Get list of discovered peers."""
        return self.peer_table.snapshot()

    async def start(self):
        """
        Open the sockets and start every role.

        Raises:
            SocketSetupError: a socket could not be created or bound; no
                role is left running
            ValueError: a role rejected its settings; the sockets are
                closed again
        """
        if self._running:
            return

        try:
            broadcast_endpoint = self._open(UDPEndpoint.broadcaster)
            discovery_endpoint = self._open(
                lambda: UDPEndpoint.bind(self.broadcast_port, self.host)
            )
            response_endpoint = self._open(
                lambda: UDPEndpoint.bind(self.response_port, self.host, broadcast=False)
            )

            self.broadcaster = DiscoveryBroadcaster(
                self.identity,
                broadcast_endpoint,
                broadcast_address=(self.broadcast_ip, self.broadcast_port),
                interval=self.discovery_interval,
            )
            self.responder = BroadcastResponder(
                self.identity,
                discovery_endpoint,
                response_port=self.response_port,
            )
            self.listener = ResponseListener(
                response_endpoint,
                self.peer_table,
                identity=self.identity,
                on_sighting=self._on_sighting,
            )
        except (OSError, ValueError):
            self._close_endpoints()
            self.broadcaster = self.responder = self.listener = None
            raise

        self._running = True

        # Listeners first so the replies to our first broadcast are caught
        self._spawn("responder", self.responder.run())
        self._spawn("listener", self.listener.run())
        self._spawn("broadcaster", self.broadcaster.run())
        self._spawn("sweeper", self._sweep_loop())

        logger.info(
            f"Broadcast discovery started on ports {self.broadcast_port}/{self.response_port}"
        )

    async def stop(self):
        """Stop every role and close the sockets."""
        if not self._running:
            return

        self._running = False

        for role in (self.broadcaster, self.responder, self.listener):
            if role:
                role.stop()

        for task in self._tasks.values():
            task.cancel()
        for task in self._tasks.values():
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Error while stopping discovery: {e}")
        self._tasks.clear()

        self._close_endpoints()
        logger.info("Broadcast discovery stopped")

    def sweep(self) -> List[PeerRecord]:
        """Evict stale peers now and notify callbacks."""
        evicted = self.peer_table.evict_stale(self.stale_timeout)
        self._evicted_count += len(evicted)

        for peer in evicted:
            logger.info(f"Peer timed out: {peer.display_name} ({peer.token}) at {peer.address}")
            self._notify(peer, False)

        return evicted

    def get_stats(self) -> dict:
        """Get discovery statistics."""
        return {
            'total_peers': len(self.peer_table),
            'max_peers': self.peer_table.max_peers,
            'dropped_peers': self.peer_table.dropped_count,
            'evicted_peers': self._evicted_count,
            'broadcasts_sent': self.broadcaster.sent_count if self.broadcaster else 0,
            'broadcasts_failed': self.broadcaster.failed_count if self.broadcaster else 0,
            'responses_sent': self.responder.responded_count if self.responder else 0,
            'roles': {
                name: not task.done() for name, task in self._tasks.items()
            },
        }

    def _open(self, factory: Callable[[], UDPEndpoint]) -> UDPEndpoint:
        endpoint = factory()
        self._endpoints.append(endpoint)
        return endpoint

    def _close_endpoints(self):
        for endpoint in self._endpoints:
            endpoint.close()
        self._endpoints.clear()

    def _spawn(self, name: str, coro):
        task = asyncio.create_task(coro, name=f"discovery-{name}")
        task.add_done_callback(self._on_task_done)
        self._tasks[name] = task

    def _on_task_done(self, task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            # Discovery keeps going without this role
            logger.error(f"Discovery task {task.get_name()} crashed: {exc!r}")
        elif self._running:
            logger.error(f"Discovery task {task.get_name()} exited unexpectedly")

    async def _sweep_loop(self):
        """Periodically evict stale peers."""
        while self._running:
            try:
                await asyncio.sleep(self.sweep_interval)
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in sweep loop: {e}")

    def _on_sighting(self, message: PeerMessage, sender_ip: str, result: UpsertResult):
        if result is not UpsertResult.ADDED:
            return

        peer = self.peer_table.get(message.token)
        if peer is None:
            return

        logger.info(f"Discovered peer {peer.display_name} ({peer.token}) at {peer.address}")
        self._notify(peer, True)

    def _notify(self, peer: PeerRecord, is_added: bool):
        for callback in self._callbacks:
            try:
                callback(peer, is_added)
            except Exception as e:
                logger.error(f"Callback error: {e}")
