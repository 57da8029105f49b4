"""
Discovery Module - Peer Discovery on LAN

UDP broadcast announcements, unicast responses, and the peer table
they populate.
"""

from .peers import PeerRecord, PeerTable, UpsertResult
from .transport import UDPEndpoint, SocketSetupError
from .broadcast import DiscoveryBroadcaster, BroadcastResponder, ResponseListener
from .manager import DiscoveryManager, PeerCallback

__all__ = [
    'PeerRecord',
    'PeerTable',
    'UpsertResult',
    'UDPEndpoint',
    'SocketSetupError',
    'DiscoveryBroadcaster',
    'BroadcastResponder',
    'ResponseListener',
    'DiscoveryManager',
    'PeerCallback',
]
