"""Encrypted transport for a verified controller session.

After pair verification both sides share a secret. From it two
ChaCha20-Poly1305 keys are derived, one per direction. Each frame on the wire
is a two-byte little-endian length, the ciphertext and a 16-byte tag. The
length bytes serve as associated data.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

__all__ = [
    "EncryptedStream",
    "Session",
    "SessionCipher",
    "compute_read_key",
    "compute_write_key",
    "decrypt_chunk",
    "encrypt_chunk",
    "hkdf_extract_and_expand",
]

_KEY_LENGTH = 32
_TAG_LENGTH = 16
_LENGTH_PREFIX = 2
_MAX_CHUNK = 1024
_READ_SIZE = 1536

_CONTROL_SALT = b"Control-Salt"
_READ_KEY_INFO = b"Control-Write-Encryption-Key"
_WRITE_KEY_INFO = b"Control-Read-Encryption-Key"


def hkdf_extract_and_expand(salt: bytes, ikm: bytes, info: bytes) -> bytes:
    """Derive a 32-byte key with HKDF-SHA512."""
    return HKDF(
        algorithm=hashes.SHA512(),
        length=_KEY_LENGTH,
        salt=bytes(salt),
        info=bytes(info),
    ).derive(bytes(ikm))


def compute_read_key(shared_secret: bytes) -> bytes:
    """Key used to decrypt data sent by the controller."""
    return hkdf_extract_and_expand(_CONTROL_SALT, shared_secret, _READ_KEY_INFO)


def compute_write_key(shared_secret: bytes) -> bytes:
    """Key used to encrypt data sent to the controller."""
    return hkdf_extract_and_expand(_CONTROL_SALT, shared_secret, _WRITE_KEY_INFO)


def _nonce(count: int) -> bytes:
    return bytes(4) + (count & 0xFFFFFFFFFFFFFFFF).to_bytes(8, "little")


def encrypt_chunk(shared_secret: bytes, data: bytes, count: int) -> tuple[bytes, bytes, bytes]:
    """Encrypt one chunk with the write key and the nonce for ``count``.

    Returns ``(aad, ciphertext, tag)`` where ``aad`` is the chunk length as
    two little-endian bytes.
    """
    data = bytes(data)
    if len(data) > 0xFFFF:
        raise ValueError(f"chunk of {len(data)} bytes is too long")
    aad = len(data).to_bytes(_LENGTH_PREFIX, "little")
    sealed = ChaCha20Poly1305(compute_write_key(shared_secret)).encrypt(_nonce(count), data, aad)
    return aad, sealed[:-_TAG_LENGTH], sealed[-_TAG_LENGTH:]


def decrypt_chunk(
    shared_secret: bytes, aad: bytes, data: bytes, auth_tag: bytes, count: int
) -> bytes:
    """Decrypt one chunk with the read key and the nonce for ``count``.

    Raises ValueError when the chunk does not authenticate.
    """
    aead = ChaCha20Poly1305(compute_read_key(shared_secret))
    try:
        return aead.decrypt(_nonce(count), bytes(data) + bytes(auth_tag), bytes(aad))
    except InvalidTag:
        raise ValueError("decryption failed") from None


@dataclass(frozen=True)
class Session:
    """The outcome of a successful pair verification."""

    controller_id: uuid.UUID
    shared_secret: bytes


class SessionCipher:
    """Frames and encrypts outgoing data, and decrypts incoming frames."""

    def __init__(self, shared_secret: bytes) -> None:
        self._shared_secret = bytes(shared_secret)
        self._encrypt_count = 0
        self._decrypt_count = 0
        self._incoming = bytearray()

    def encrypt(self, data: bytes) -> bytes:
        """Encrypt data into frames of at most 1024 plaintext bytes each."""
        remaining = memoryview(bytes(data))
        out = bytearray()
        while True:
            chunk, remaining = remaining[:_MAX_CHUNK], remaining[_MAX_CHUNK:]
            aad, ciphertext, tag = encrypt_chunk(
                self._shared_secret, bytes(chunk), self._encrypt_count
            )
            self._encrypt_count += 1
            out += aad + ciphertext + tag
            if not remaining:
                return bytes(out)

    def feed(self, data: bytes) -> bytes:
        """Take received bytes and return the plaintext of every complete frame.

        Bytes of an incomplete frame are kept until the rest arrives.
        Raises ValueError for an oversized or unauthenticated frame.
        """
        self._incoming += data
        out = bytearray()
        while len(self._incoming) >= _LENGTH_PREFIX:
            length = int.from_bytes(self._incoming[:_LENGTH_PREFIX], "little")
            if length > _MAX_CHUNK:
                raise ValueError(f"frame of {length} bytes exceeds {_MAX_CHUNK}")
            total = _LENGTH_PREFIX + length + _TAG_LENGTH
            if len(self._incoming) < total:
                break
            frame = bytes(self._incoming[:total])
            del self._incoming[:total]
            count = self._decrypt_count
            self._decrypt_count += 1
            out += decrypt_chunk(
                self._shared_secret,
                frame[:_LENGTH_PREFIX],
                frame[_LENGTH_PREFIX:_LENGTH_PREFIX + length],
                frame[_LENGTH_PREFIX + length:],
                count,
            )
        return bytes(out)


class _Reader(Protocol):
    async def read(self, n: int = -1) -> bytes: ...


class _Writer(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...

    def close(self) -> None: ...

    async def wait_closed(self) -> None: ...


class EncryptedStream:
    """A connection that switches to encryption once a session is established.

    A session handed over with :meth:`set_session` takes effect at the next
    read, so the response that completes verification still goes out in
    plain text.
    """

    def __init__(self, reader: _Reader, writer: _Writer) -> None:
        self._reader = reader
        self._writer = writer
        self._pending: Session | None = None
        self._cipher: SessionCipher | None = None
        self._plaintext = bytearray()
        self.controller_id: uuid.UUID | None = None

    @property
    def encrypted(self) -> bool:
        """Whether traffic is currently encrypted."""
        return self._cipher is not None

    def set_session(self, session: Session) -> None:
        """Hand over the verified session; it is activated at the next read."""
        self._pending = session

    def _activate_pending(self) -> None:
        if self._cipher is None and self._pending is not None:
            self.controller_id = self._pending.controller_id
            self._cipher = SessionCipher(self._pending.shared_secret)
            self._pending = None

    async def read(self, n: int = _READ_SIZE) -> bytes:
        """Read up to ``n`` bytes of plaintext; ``b""`` at end of stream."""
        self._activate_pending()
        if self._cipher is None:
            return await self._reader.read(n)
        while not self._plaintext:
            received = await self._reader.read(_READ_SIZE)
            if not received:
                return b""
            self._plaintext += self._cipher.feed(received)
        if n < 0:
            n = len(self._plaintext)
        out = bytes(self._plaintext[:n])
        del self._plaintext[:n]
        return out

    def write(self, data: bytes) -> None:
        """Queue data for sending, encrypting it if a session is active."""
        if self._cipher is not None:
            self._writer.write(self._cipher.encrypt(data))
        else:
            self._writer.write(bytes(data))

    async def drain(self) -> None:
        """Wait until the queued data may be sent."""
        await self._writer.drain()

    async def close(self) -> None:
        """Close the underlying connection."""
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, asyncio.CancelledError):
            pass

    async def __aenter__(self) -> EncryptedStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()