"""
lanpeers - LAN peer discovery over UDP broadcast.
"""

from .node import PeerNode, NodeConfig

__version__ = "1.0.0"

__all__ = ['PeerNode', 'NodeConfig', '__version__']
