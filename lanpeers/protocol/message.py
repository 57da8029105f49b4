"""
Discovery Wire Protocol

Design Decision: Message Format
===============================

Options Considered:
1. JSON - Human readable, flexible, larger
2. MessagePack - Compact, flexible, extra dependency
3. Fixed binary layout - Smallest, trivially bounded in size

Decision: Fixed binary layout packed with struct
- Every message fits in a single small datagram (<= 255 bytes)
- Version nibble lets receivers reject foreign traffic cheaply
- The identity token is fixed length, so only the name is variable

Message Format (all integers big-endian):
```
+--------+--------+-----------------+--------+------------------+
| Header | Length | Token (10B)     | NameLen| Name (<= 100B)   |
+--------+--------+-----------------+--------+------------------+

Header byte:
  bits 7-4  protocol version
  bit  3    is_response
  bits 2-0  reserved flags
```
"""

import struct
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .identity import Identity


# Protocol constants
PROTOCOL_VERSION = 0x01
TOKEN_LENGTH = 10
MAX_DISPLAY_NAME_LENGTH = 100
MAX_MESSAGE_LENGTH = 255

# Header byte + total length byte
HEADER_FORMAT = '>BB'
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)

# Smallest possible message: header, token, name length, empty name
MIN_MESSAGE_LENGTH = HEADER_SIZE + TOKEN_LENGTH + 1


class MalformedMessage(ValueError):
    """A datagram that cannot be decoded as a discovery message."""


class InvalidVersion(MalformedMessage):
    """The version nibble does not match PROTOCOL_VERSION."""

    def __init__(self, version: int):
        super().__init__(f"Unsupported protocol version: {version}")
        self.version = version


class InvalidLength(MalformedMessage):
    """A declared length is out of bounds or inconsistent."""


class TruncatedMessage(MalformedMessage):
    """The buffer is shorter than the message it claims to hold."""


def pack_header(version: int, is_response: bool, flags: int) -> int:
    """Pack the bit fields of the first byte."""
    return ((version & 0x0F) << 4) | (int(is_response) << 3) | (flags & 0x07)


def unpack_header(value: int):
    """Split the first byte into (version, is_response, flags)."""
    return (value >> 4) & 0x0F, bool((value >> 3) & 0x01), value & 0x07


@dataclass(frozen=True)
class PeerMessage:
    """
    A discovery or response message.

    Construction validates every length invariant, so encoding a
    PeerMessage cannot fail.
    """
    token: str
    display_name: str
    is_response: bool = False
    flags: int = 0
    version: int = PROTOCOL_VERSION

    def __post_init__(self):
        if not 0 <= self.version <= 0x0F:
            raise ValueError(f"Version does not fit in 4 bits: {self.version}")
        if not 0 <= self.flags <= 0x07:
            raise ValueError(f"Flags do not fit in 3 bits: {self.flags}")
        if len(self.token) != TOKEN_LENGTH or not self.token.isascii():
            raise ValueError(
                f"Token must be {TOKEN_LENGTH} ASCII characters, got {self.token!r}"
            )
        if len(self.display_name.encode('utf-8')) > MAX_DISPLAY_NAME_LENGTH:
            raise ValueError(
                f"Display name exceeds {MAX_DISPLAY_NAME_LENGTH} bytes"
            )

    @classmethod
    def discovery(cls, identity: 'Identity') -> 'PeerMessage':
        """Build the broadcast announcing ``identity``."""
        return cls(token=identity.token, display_name=identity.display_name)

    @classmethod
    def response(cls, identity: 'Identity') -> 'PeerMessage':
        """Build the unicast reply carrying ``identity``."""
        return cls(
            token=identity.token,
            display_name=identity.display_name,
            is_response=True,
        )

    @property
    def name_bytes(self) -> bytes:
        return self.display_name.encode('utf-8')

    @property
    def length(self) -> int:
        """Total encoded size in bytes."""
        return MIN_MESSAGE_LENGTH + len(self.name_bytes)

    def to_bytes(self) -> bytes:
        """Serialize message to bytes for transmission."""
        name = self.name_bytes
        return (
            struct.pack(
                HEADER_FORMAT,
                pack_header(self.version, self.is_response, self.flags),
                MIN_MESSAGE_LENGTH + len(name),
            )
            + self.token.encode('ascii')
            + struct.pack('>B', len(name))
            + name
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> 'PeerMessage':
        """
        Deserialize a message from a received datagram.

        Raises:
            TruncatedMessage: buffer shorter than the header, the fixed part, or
                the declared total length
            InvalidVersion: version nibble is not PROTOCOL_VERSION
            InvalidLength: name length over the maximum, or a total
                length that disagrees with the name length
            MalformedMessage: token or name bytes cannot be decoded
        """
        if len(data) < HEADER_SIZE:
            raise TruncatedMessage(
                f"Data too short for header. Expected at least {HEADER_SIZE}, got {len(data)}"
            )

        header, total_length = struct.unpack_from(HEADER_FORMAT, data)
        version, is_response, flags = unpack_header(header)

        if version != PROTOCOL_VERSION:
            raise InvalidVersion(version)

        if len(data) < MIN_MESSAGE_LENGTH:
            raise TruncatedMessage(
                f"Data too short. Expected at least {MIN_MESSAGE_LENGTH}, got {len(data)}"
            )

        token_end = HEADER_SIZE + TOKEN_LENGTH
        name_length = data[token_end]

        if name_length > MAX_DISPLAY_NAME_LENGTH:
            raise InvalidLength(
                f"Display name length {name_length} exceeds {MAX_DISPLAY_NAME_LENGTH}"
            )

        if total_length < MIN_MESSAGE_LENGTH:
            raise InvalidLength(f"Declared length {total_length} below minimum")

        if total_length > len(data):
            raise TruncatedMessage(
                f"Declared length {total_length} exceeds datagram size {len(data)}"
            )

        # Never look past the declared end of the message
        data = data[:total_length]

        if total_length != MIN_MESSAGE_LENGTH + name_length:
            raise InvalidLength(
                f"Total length {total_length} does not match name length {name_length}"
            )

        try:
            token = data[HEADER_SIZE:token_end].decode('ascii')
            display_name = data[token_end + 1:total_length].decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedMessage(f"Undecodable message field: {e}") from e

        return cls(
            token=token,
            display_name=display_name,
            is_response=is_response,
            flags=flags,
            version=version,
        )


def encode(message: PeerMessage) -> bytes:
    """Encode a message for the wire."""
    return message.to_bytes()


def decode(data: bytes) -> PeerMessage:
    """Decode a datagram, raising a MalformedMessage subclass on failure."""
    return PeerMessage.from_bytes(data)
