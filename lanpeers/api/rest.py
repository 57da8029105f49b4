"""
REST API for a Peer Node

Read-only view of the node: identity, stats and the current peer
roster. Nothing here mutates discovery state.
"""

import logging
import time
from typing import List
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Global reference to the peer node (set when app is created)
_node = None


# === Pydantic Models ===

class IdentityInfo(BaseModel):
    """This node's identity."""
    token: str
    display_name: str


class NodeStatus(BaseModel):
    """Node status response."""
    token: str
    display_name: str
    running: bool
    uptime: int
    discovered_peers: int
    dropped_peers: int


class PeerInfo(BaseModel):
    """Information about a peer."""
    token: str
    display_name: str
    address: str
    last_seen: float
    seconds_ago: float


# === API Creation ===

def create_app(node=None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        node: PeerNode instance to observe

    Returns:
        FastAPI application
    """
    global _node
    _node = node

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown."""
        logger.info("API server starting...")
        yield
        logger.info("API server stopping...")

    app = FastAPI(
        title="LAN Peers API",
        description="Read-only view of a LAN peer discovery node",
        version="1.0.0",
        lifespan=lifespan,
    )

    def require_node():
        if not _node:
            raise HTTPException(status_code=503, detail="Node not initialized")
        return _node

    # === Endpoints ===

    @app.get("/", tags=["General"])
    async def root():
        """API root - basic info."""
        return {
            "name": "LAN Peers",
            "version": "1.0.0",
            "status": "running" if _node and _node.is_running else "not running"
        }

    @app.get("/identity", response_model=IdentityInfo, tags=["Node"])
    async def get_identity():
        """Get this node's token and display name."""
        node = require_node()
        return IdentityInfo(
            token=node.identity.token,
            display_name=node.identity.display_name,
        )

    @app.get("/status", response_model=NodeStatus, tags=["Node"])
    async def get_status():
        """Get node status."""
        node = require_node()
        stats = node.get_full_stats()

        return NodeStatus(
            token=stats['token'],
            display_name=stats['display_name'],
            running=stats['running'],
            uptime=stats['uptime'],
            discovered_peers=stats['discovery']['total_peers'],
            dropped_peers=stats['discovery']['dropped_peers'],
        )

    @app.get("/stats", tags=["Node"])
    async def get_stats():
        """Get detailed node statistics."""
        return require_node().get_full_stats()

    @app.get("/peers", response_model=List[PeerInfo], tags=["Peers"])
    async def list_peers():
        """List discovered peers."""
        now = time.time()
        return [
            PeerInfo(
                token=peer.token,
                display_name=peer.display_name,
                address=peer.address,
                last_seen=peer.last_seen,
                seconds_ago=round(peer.age(now), 1),
            )
            for peer in require_node().get_peers()
        ]

    @app.get("/peers/{token}", response_model=PeerInfo, tags=["Peers"])
    async def get_peer(token: str):
        """Get a single peer by token."""
        peer = require_node().peer_table.get(token)
        if peer is None:
            raise HTTPException(status_code=404, detail=f"Unknown peer: {token}")

        return PeerInfo(
            token=peer.token,
            display_name=peer.display_name,
            address=peer.address,
            last_seen=peer.last_seen,
            seconds_ago=round(peer.age(), 1),
        )

    return app


async def run_api_server(node, host: str = "0.0.0.0", port: int = 8080):
    """
    Run the API server.

    Args:
        node: PeerNode instance
        host: Host to bind to
        port: Port to listen on
    """
    import uvicorn

    app = create_app(node)

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    await server.serve()
