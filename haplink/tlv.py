"""Type-length-value encoding used by the pairing protocol."""

from __future__ import annotations

import enum
from collections.abc import Iterable
from typing import Any

__all__ = [
    "ErrorContainer",
    "Method",
    "Permissions",
    "TlvErrorCode",
    "Type",
    "decode",
    "encode",
    "encode_items",
    "item",
]

_MAX_FRAGMENT = 255


def encode(tlvs: Iterable[tuple[int, bytes]]) -> bytes:
    """Encode ``(type, value)`` pairs into concatenated TLV bytes.

    Values longer than 255 bytes are split into consecutive fragments of the
    same type.
    """
    out = bytearray()
    for kind, value in tlvs:
        value = bytes(value)
        if len(value) <= _MAX_FRAGMENT:
            out += bytes((kind, len(value)))
            out += value
            continue
        for start in range(0, len(value), _MAX_FRAGMENT):
            chunk = value[start:start + _MAX_FRAGMENT]
            out += bytes((kind, len(chunk)))
            out += chunk
    return bytes(out)


def decode(data: bytes) -> dict[int, bytes]:
    """Decode concatenated TLV bytes into a mapping of type to value.

    Fragments of 255 bytes are joined with the fragment that follows them.
    A later item of the same type replaces an earlier one.

    Raises ValueError when the data ends in the middle of an item.
    """
    data = bytes(data)
    result: dict[int, bytes] = {}
    pending = bytearray()
    previous = 0
    pos = 0
    while pos < len(data):
        if pos + 1 >= len(data):
            raise ValueError(f"truncated TLV header at offset {pos}")
        kind, length = data[pos], data[pos + 1]
        end = pos + 2 + length
        if end > len(data):
            raise ValueError(f"truncated TLV value at offset {pos}")
        value = data[pos + 2:end]
        if length < _MAX_FRAGMENT:
            if kind != previous:
                pending.clear()
            pending += value
            result[kind] = bytes(pending)
            pending.clear()
        else:
            pending += value
        previous = kind
        pos = end
    if pending:
        result[previous] = bytes(pending)
    return result


class Type(enum.IntEnum):
    """TLV types defined by the protocol."""

    METHOD = 0x00
    IDENTIFIER = 0x01
    SALT = 0x02
    PUBLIC_KEY = 0x03
    PROOF = 0x04
    ENCRYPTED_DATA = 0x05
    STATE = 0x06
    ERROR = 0x07
    RETRY_DELAY = 0x08
    CERTIFICATE = 0x09
    SIGNATURE = 0x0A
    PERMISSIONS = 0x0B
    FRAGMENT_DATA = 0x0C
    FRAGMENT_LAST = 0x0D
    SEPARATOR = 0xFF


class Method(enum.IntEnum):
    """Pairing methods."""

    PAIR_SETUP = 1
    PAIR_VERIFY = 2
    ADD_PAIRING = 3
    REMOVE_PAIRING = 4
    LIST_PAIRINGS = 5


class TlvErrorCode(enum.IntEnum):
    """Error codes sent back to a controller in an ``ERROR`` item."""

    UNKNOWN = 0x01
    AUTHENTICATION = 0x02
    BACKOFF = 0x03
    MAX_PEERS = 0x04
    MAX_TRIES = 0x05
    UNAVAILABLE = 0x06
    BUSY = 0x07

    @property
    def message(self) -> str:
        """A human-readable description of the error."""
        return _ERROR_MESSAGES[self]


_ERROR_MESSAGES = {
    TlvErrorCode.UNKNOWN: "Unknown error.",
    TlvErrorCode.AUTHENTICATION: "Setup code or signature verification failed.",
    TlvErrorCode.BACKOFF: (
        "Client must look at the retry delay TLV item and wait that many "
        "seconds before retrying."
    ),
    TlvErrorCode.MAX_PEERS: "Server cannot accept any more pairings.",
    TlvErrorCode.MAX_TRIES: "Server reached its maximum number of authentication attempts.",
    TlvErrorCode.UNAVAILABLE: "Server pairing method is unavailable.",
    TlvErrorCode.BUSY: "Server is busy and cannot accept a pairing request at this time.",
}


class Permissions(enum.IntEnum):
    """Permissions of a paired controller."""

    USER = 0x00
    ADMIN = 0x01

    @classmethod
    def from_byte(cls, byte: int) -> Permissions:
        """Return the permissions a byte stands for; ValueError if none."""
        try:
            return cls(byte)
        except ValueError:
            raise ValueError(f"invalid permissions byte: {byte!r}") from None

    def as_byte(self) -> int:
        """Return the byte that stands for these permissions."""
        return int(self)


_BYTES_TYPES = frozenset(
    {
        Type.PUBLIC_KEY,
        Type.PROOF,
        Type.ENCRYPTED_DATA,
        Type.CERTIFICATE,
        Type.SIGNATURE,
        Type.FRAGMENT_DATA,
        Type.FRAGMENT_LAST,
    }
)


def _single_byte(value: Any, what: str) -> bytes:
    number = int(value)
    if not 0 <= number <= 0xFF:
        raise ValueError(f"{what} must fit in one byte, got {number}")
    return bytes((number,))


def item(kind: Type | int, value: Any = None) -> tuple[int, bytes]:
    """Turn a typed value into a raw ``(type, value)`` pair ready for encoding."""
    kind = Type(kind)
    if kind in _BYTES_TYPES:
        return int(kind), bytes(value)
    if kind is Type.METHOD:
        return int(kind), _single_byte(Method(value), "method")
    if kind is Type.IDENTIFIER:
        return int(kind), str(value).encode("utf-8")
    if kind is Type.SALT:
        salt = bytes(value)
        if len(salt) != 16:
            raise ValueError(f"salt must be 16 bytes, got {len(salt)}")
        return int(kind), salt
    if kind is Type.STATE:
        return int(kind), _single_byte(value, "state")
    if kind is Type.ERROR:
        return int(kind), _single_byte(TlvErrorCode(value), "error")
    if kind is Type.RETRY_DELAY:
        return int(kind), (int(value) & 0xFFFF).to_bytes(2, "little")
    if kind is Type.PERMISSIONS:
        return int(kind), bytes((Permissions(value).as_byte(),))
    return int(kind), b"\x00"


def encode_items(items: Iterable[tuple[Type | int, Any]]) -> bytes:
    """Encode ``(type, value)`` pairs of typed values into TLV bytes."""
    return encode(item(kind, value) for kind, value in items)


class ErrorContainer(Exception):
    """A pairing error to send back to the controller at a given step."""

    def __init__(self, step: int, error: TlvErrorCode | int) -> None:
        self.step = step
        self.error = TlvErrorCode(error)
        super().__init__(step, self.error)

    def __str__(self) -> str:
        return f"step {self.step}: {self.error.message}"

    def encode(self) -> bytes:
        """Encode the error as a ``STATE`` item followed by an ``ERROR`` item."""
        return encode_items([(Type.STATE, self.step), (Type.ERROR, self.error)])