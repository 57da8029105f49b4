"""
Protocol Module - Wire Format and Session Identity

Binary discovery messages and the token/name pair each process announces.
"""

from .message import (
    PROTOCOL_VERSION,
    TOKEN_LENGTH,
    MAX_DISPLAY_NAME_LENGTH,
    MAX_MESSAGE_LENGTH,
    PeerMessage,
    MalformedMessage,
    InvalidVersion,
    InvalidLength,
    TruncatedMessage,
    encode,
    decode,
)
from .identity import Identity, generate_token, resolve_display_name

__all__ = [
    'PROTOCOL_VERSION',
    'TOKEN_LENGTH',
    'MAX_DISPLAY_NAME_LENGTH',
    'MAX_MESSAGE_LENGTH',
    'PeerMessage',
    'MalformedMessage',
    'InvalidVersion',
    'InvalidLength',
    'TruncatedMessage',
    'encode',
    'decode',
    'Identity',
    'generate_token',
    'resolve_display_name',
]
