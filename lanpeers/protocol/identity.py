"""
Session Identity

Each process announces itself with a random token generated once at
startup. Peers identify each other by token, so a peer whose IP address
changes is still recognised as the same peer.
"""

import getpass
import logging
import random
import string
from dataclasses import dataclass
from typing import Optional

from .message import TOKEN_LENGTH, MAX_DISPLAY_NAME_LENGTH

logger = logging.getLogger(__name__)

TOKEN_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase
UNKNOWN_DISPLAY_NAME = "Unknown"

# Seeded once per process
_rng = random.Random()


@dataclass(frozen=True)
class Identity:
    """This process's token and display name. Immutable after startup."""
    token: str
    display_name: str

    def __post_init__(self):
        if len(self.token) != TOKEN_LENGTH or not self.token.isascii():
            raise ValueError(
                f"Token must be {TOKEN_LENGTH} ASCII characters, got {self.token!r}"
            )
        if len(self.display_name.encode('utf-8')) > MAX_DISPLAY_NAME_LENGTH:
            raise ValueError(
                f"Display name exceeds {MAX_DISPLAY_NAME_LENGTH} bytes"
            )

    @classmethod
    def initialize(cls, display_name: Optional[str] = None) -> 'Identity':
        """
        Create the process identity.

        Args:
            display_name: Explicit name; resolved from the environment
                when not provided
        """
        identity = cls(
            token=generate_token(),
            display_name=truncate_name(display_name or resolve_display_name()),
        )
        logger.debug(f"Initialized identity {identity.token} ({identity.display_name})")
        return identity


def generate_token(rng: random.Random = None, length: int = TOKEN_LENGTH) -> str:
    """Generate a random alphanumeric token."""
    rng = rng or _rng
    return ''.join(rng.choice(TOKEN_ALPHABET) for _ in range(length))


def resolve_display_name() -> str:
    """Login name of the current user, or a placeholder."""
    try:
        name = getpass.getuser()
    except Exception as e:
        # getuser raises OSError or KeyError depending on platform
        logger.debug(f"Could not resolve user name: {e}")
        return UNKNOWN_DISPLAY_NAME
    return name or UNKNOWN_DISPLAY_NAME


def truncate_name(name: str, limit: int = MAX_DISPLAY_NAME_LENGTH) -> str:
    """Cut ``name`` to at most ``limit`` UTF-8 bytes on a character boundary."""
    encoded = name.encode('utf-8')
    if len(encoded) <= limit:
        return name
    return encoded[:limit].decode('utf-8', errors='ignore')
