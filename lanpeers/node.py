"""
Peer Node - Main Controller

Builds the process-wide context once at startup and hands it to the
discovery roles:
- Identity (token + display name), immutable
- PeerTable, shared by every role
- DiscoveryManager running the broadcast/response exchange
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from .protocol import Identity
from .discovery import DiscoveryManager, PeerTable, PeerRecord

logger = logging.getLogger(__name__)


@dataclass
class NodeConfig:
    """Configuration for a peer node."""
    # Network
    host: str = ''
    broadcast_ip: str = '255.255.255.255'
    broadcast_port: int = 9005
    response_port: int = 9006

    # Timing (seconds)
    discovery_interval: float = 5.0
    stale_timeout: float = 15.0
    sweep_interval: float = 5.0

    # Peer table capacity (0 = unbounded)
    max_peers: int = 256

    # Identity
    display_name: Optional[str] = None

    @classmethod
    def from_config(cls, config) -> 'NodeConfig':
        """Take the node settings from an application Config."""
        return cls(
            host=config.host,
            broadcast_ip=config.broadcast_ip,
            broadcast_port=config.broadcast_port,
            response_port=config.response_port,
            discovery_interval=config.discovery_interval,
            stale_timeout=config.stale_timeout,
            sweep_interval=config.sweep_interval,
            max_peers=config.max_peers,
            display_name=config.display_name,
        )


class PeerNode:
    """
    A LAN discovery node.

    - start(): open sockets and begin announcing/listening
    - get_peers(): current roster
    - stop(): shut every role down
    """

    def __init__(self, config: NodeConfig = None, identity: Identity = None):
        """
        Initialize a peer node.

        Args:
            config: Node configuration (uses defaults if not provided)
            identity: Pre-built identity (generated if not provided)
        """
        self.config = config or NodeConfig()
        self.identity = identity or Identity.initialize(self.config.display_name)
        self.peer_table = PeerTable(max_peers=self.config.max_peers)

        self.discovery = DiscoveryManager(
            identity=self.identity,
            peer_table=self.peer_table,
            host=self.config.host,
            broadcast_ip=self.config.broadcast_ip,
            broadcast_port=self.config.broadcast_port,
            response_port=self.config.response_port,
            discovery_interval=self.config.discovery_interval,
            stale_timeout=self.config.stale_timeout,
            sweep_interval=self.config.sweep_interval,
        )

        self._started_at: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self.discovery.is_running

    async def start(self):
        """
        Start discovery.

        Raises:
            SocketSetupError: a discovery socket could not be set up
        """
        if self.is_running:
            return

        logger.info(f"Starting peer node {self.identity.token} ({self.identity.display_name})...")
        await self.discovery.start()
        self._started_at = time.time()

        logger.info("Peer node started successfully")
        logger.info(f"  Discovery Port: {self.config.broadcast_port}")
        logger.info(f"  Response Port: {self.config.response_port}")

    async def stop(self):
        """Stop the node."""
        if not self.is_running:
            return

        logger.info("Stopping peer node...")
        await self.discovery.stop()
        logger.info("Peer node stopped")

    def get_peers(self) -> List[PeerRecord]:
        """Get the current peer roster."""
        return self.discovery.get_peers()

    def get_full_stats(self) -> dict:
        """Get node statistics."""
        return {
            'token': self.identity.token,
            'display_name': self.identity.display_name,
            'running': self.is_running,
            'uptime': int(time.time() - self._started_at) if self._started_at else 0,
            'discovery': self.discovery.get_stats(),
        }
