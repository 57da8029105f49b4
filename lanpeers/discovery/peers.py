"""
Peer Table

Design Decision: Peer Storage
=============================

Options Considered:
1. Linked list walked under a global mutex
   - O(n) lookups, callers can corrupt links
2. Fixed-size array
   - Bounded, but overflow handling hides in index arithmetic
3. Dict keyed by token behind an owned lock
   - O(1) lookups, all access goes through the table's methods

Decision: Dict keyed by identity token
- The token is the only stable identifier (IP addresses may change)
- A single threading.Lock covers every operation; it is never held
  across a socket call, so it is safe from event-loop tasks and from
  observer threads alike
- Optional capacity with an explicit drop policy: a new peer arriving
  when the table is full is ignored and counted
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# Default staleness threshold (seconds)
STALE_PEER_TIMEOUT = 15.0

# Default capacity; None or 0 means unbounded
MAX_PEERS = 256


@dataclass
class PeerRecord:
    """
    A discovered peer.

    The token never changes; address and display name follow the most
    recent sighting.
    """
    address: str
    token: str
    display_name: str
    last_seen: float

    def age(self, now: float = None) -> float:
        """Seconds since the peer was last seen."""
        return (time.time() if now is None else now) - self.last_seen

    def to_dict(self) -> dict:
        return {
            'address': self.address,
            'token': self.token,
            'display_name': self.display_name,
            'last_seen': self.last_seen,
        }


class UpsertResult(Enum):
    """Outcome of PeerTable.upsert."""
    ADDED = "added"
    UPDATED = "updated"
    DROPPED = "dropped"


class PeerTable:
    """
    Concurrency-safe roster of peers keyed by identity token.
    """

    def __init__(self, max_peers: Optional[int] = MAX_PEERS,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            max_peers: Capacity, or None/0 for an unbounded table
            clock: Source of timestamps for last_seen
        """
        self.max_peers = max_peers or None
        self._clock = clock
        self._peers: Dict[str, PeerRecord] = {}
        self._lock = threading.Lock()
        self._dropped = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._peers)

    def __contains__(self, token: str) -> bool:
        with self._lock:
            return token in self._peers

    @property
    def dropped_count(self) -> int:
        """New peers ignored because the table was full."""
        with self._lock:
            return self._dropped

    @property
    def is_full(self) -> bool:
        with self._lock:
            return self._is_full()

    def _is_full(self) -> bool:
        return self.max_peers is not None and len(self._peers) >= self.max_peers

    def get(self, token: str) -> Optional[PeerRecord]:
        """Copy of the record for ``token``, if known."""
        with self._lock:
            peer = self._peers.get(token)
            return replace(peer) if peer else None

    def upsert(self, address: str, token: str, display_name: str) -> UpsertResult:
        """
        Record a sighting of a peer.

        Known tokens get a fresh last_seen and take the new address and
        name. Unknown tokens are inserted unless the table is full, in
        which case the sighting is dropped.
        """
        with self._lock:
            now = self._clock()
            peer = self._peers.get(token)

            if peer is not None:
                peer.last_seen = now
                if peer.address != address:
                    peer.address = address
                if peer.display_name != display_name:
                    peer.display_name = display_name
                return UpsertResult.UPDATED

            if self._is_full():
                self._dropped += 1
                return UpsertResult.DROPPED

            self._peers[token] = PeerRecord(
                address=address,
                token=token,
                display_name=display_name,
                last_seen=now,
            )
            return UpsertResult.ADDED

    def evict_stale(self, threshold: float = STALE_PEER_TIMEOUT,
                    now: float = None) -> List[PeerRecord]:
        """
        Remove peers not seen for more than ``threshold`` seconds.

        Returns:
            The evicted records
        """
        with self._lock:
            now = self._clock() if now is None else now
            stale = [
                token for token, peer in self._peers.items()
                if now - peer.last_seen > threshold
            ]
            return [self._peers.pop(token) for token in stale]

    def snapshot(self) -> List[PeerRecord]:
        """Point-in-time copies of all records, ordered by display name."""
        with self._lock:
            peers = [replace(peer) for peer in self._peers.values()]
        return sorted(peers, key=lambda p: (p.display_name, p.token))

    def clear(self):
        with self._lock:
            self._peers.clear()
