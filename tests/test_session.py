import asyncio
import uuid

import pytest
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from haplink.session import (
    EncryptedStream,
    Session,
    SessionCipher,
    compute_read_key,
    compute_write_key,
    decrypt_chunk,
    encrypt_chunk,
    hkdf_extract_and_expand,
)

SECRET = bytes(range(32))
OTHER_SECRET = bytes(range(1, 33))


def _nonce(count):
    return bytes(4) + count.to_bytes(8, "little")


def controller_frame(secret, data, count):
    """A frame as the controller sends it, sealed with the server's read key."""
    aad = len(data).to_bytes(2, "little")
    sealed = ChaCha20Poly1305(compute_read_key(secret)).encrypt(_nonce(count), data, aad)
    return aad + sealed


def open_server_frames(secret, wire):
    """Split and decrypt frames sent by the server, as the controller would."""
    aead = ChaCha20Poly1305(compute_write_key(secret))
    chunks = []
    count = 0
    while wire:
        length = int.from_bytes(wire[:2], "little")
        frame, wire = wire[: 2 + length + 16], wire[2 + length + 16:]
        chunks.append(aead.decrypt(_nonce(count), frame[2:], frame[:2]))
        count += 1
    return chunks


class FakeWriter:
    def __init__(self):
        self.data = bytearray()
        self.closed = False

    def write(self, data):
        self.data += data

    async def drain(self):
        pass

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass


def test_hkdf_is_deterministic_and_32_bytes():
    first = hkdf_extract_and_expand(b"salt", SECRET, b"info")
    assert len(first) == 32
    assert first == hkdf_extract_and_expand(b"salt", SECRET, b"info")
    assert first != hkdf_extract_and_expand(b"salt", SECRET, b"other")
    assert first != hkdf_extract_and_expand(b"pepper", SECRET, b"info")


def test_read_and_write_keys_differ():
    assert compute_read_key(SECRET) != compute_write_key(SECRET)
    assert compute_read_key(SECRET) == hkdf_extract_and_expand(
        b"Control-Salt", SECRET, b"Control-Write-Encryption-Key"
    )
    assert compute_write_key(SECRET) == hkdf_extract_and_expand(
        b"Control-Salt", SECRET, b"Control-Read-Encryption-Key"
    )


def test_encrypt_chunk_layout_and_roundtrip():
    data = b"hello controller"
    aad, ciphertext, tag = encrypt_chunk(SECRET, data, 3)
    assert aad == len(data).to_bytes(2, "little")
    assert len(ciphertext) == len(data)
    assert len(tag) == 16
    assert ciphertext != data
    plain = ChaCha20Poly1305(compute_write_key(SECRET)).decrypt(_nonce(3), ciphertext + tag, aad)
    assert plain == data


def test_encrypt_chunk_nonce_depends_on_count():
    assert encrypt_chunk(SECRET, b"abc", 0) != encrypt_chunk(SECRET, b"abc", 1)
    assert encrypt_chunk(SECRET, b"abc", 5) == encrypt_chunk(SECRET, b"abc", 5)


def test_decrypt_chunk_roundtrip():
    frame = controller_frame(SECRET, b"GET /accessories", 7)
    assert decrypt_chunk(SECRET, frame[:2], frame[2:-16], frame[-16:], 7) == b"GET /accessories"


def test_decrypt_chunk_wrong_count_fails():
    frame = controller_frame(SECRET, b"data", 0)
    with pytest.raises(ValueError):
        decrypt_chunk(SECRET, frame[:2], frame[2:-16], frame[-16:], 1)


def test_decrypt_chunk_tampered_tag_fails():
    frame = bytearray(controller_frame(SECRET, b"data", 0))
    frame[-1] ^= 0xFF
    with pytest.raises(ValueError):
        decrypt_chunk(SECRET, bytes(frame[:2]), bytes(frame[2:-16]), bytes(frame[-16:]), 0)


def test_cipher_encrypt_splits_into_1024_byte_chunks():
    data = bytes(i % 251 for i in range(2500))
    wire = SessionCipher(SECRET).encrypt(data)
    chunks = open_server_frames(SECRET, wire)
    assert [len(c) for c in chunks] == [1024, 1024, 452]
    assert b"".join(chunks) == data


def test_cipher_encrypt_exact_chunk_is_one_frame():
    wire = SessionCipher(SECRET).encrypt(bytes(1024))
    assert wire[:2] == b"\x00\x04"
    assert len(wire) == 2 + 1024 + 16


def test_cipher_encrypt_empty_data_gives_empty_frame():
    wire = SessionCipher(SECRET).encrypt(b"")
    assert len(wire) == 18
    assert wire[:2] == b"\x00\x00"
    assert open_server_frames(SECRET, wire) == [b""]


def test_cipher_counts_continue_across_calls():
    cipher = SessionCipher(SECRET)
    wire = cipher.encrypt(b"one") + cipher.encrypt(b"two")
    assert open_server_frames(SECRET, wire) == [b"one", b"two"]


def test_cipher_feed_handles_partial_frames():
    cipher = SessionCipher(SECRET)
    wire = controller_frame(SECRET, b"first", 0) + controller_frame(SECRET, b"second", 1)
    assert cipher.feed(wire[:1]) == b""
    assert cipher.feed(wire[1:10]) == b""
    assert cipher.feed(wire[10:30]) == b"first"
    assert cipher.feed(wire[30:]) == b"second"


def test_cipher_feed_rejects_oversized_frame():
    with pytest.raises(ValueError):
        SessionCipher(SECRET).feed((1025).to_bytes(2, "little") + bytes(1041))


def test_cipher_feed_rejects_wrong_secret():
    with pytest.raises(ValueError):
        SessionCipher(OTHER_SECRET).feed(controller_frame(SECRET, b"data", 0))


@pytest.mark.asyncio
async def test_stream_passes_plaintext_without_session():
    reader = asyncio.StreamReader()
    reader.feed_data(b"POST /pair-verify")
    reader.feed_eof()
    writer = FakeWriter()
    stream = EncryptedStream(reader, writer)
    assert await stream.read(1536) == b"POST /pair-verify"
    stream.write(b"HTTP/1.1 200 OK")
    await stream.drain()
    assert bytes(writer.data) == b"HTTP/1.1 200 OK"
    assert stream.controller_id is None


@pytest.mark.asyncio
async def test_stream_activates_session_on_next_read():
    controller = uuid.UUID("00000000-0000-4000-8000-000000000001")
    reader = asyncio.StreamReader()
    reader.feed_data(controller_frame(SECRET, b"GET /accessories", 0))
    reader.feed_eof()
    writer = FakeWriter()
    stream = EncryptedStream(reader, writer)
    stream.set_session(Session(controller_id=controller, shared_secret=SECRET))

    stream.write(b"plain response")
    assert bytes(writer.data) == b"plain response"
    assert not stream.encrypted

    assert await stream.read(1536) == b"GET /accessories"
    assert stream.encrypted
    assert stream.controller_id == controller

    writer.data.clear()
    stream.write(b"encrypted response")
    assert open_server_frames(SECRET, bytes(writer.data)) == [b"encrypted response"]
    assert await stream.read(1536) == b""


@pytest.mark.asyncio
async def test_stream_read_respects_size_limit():
    reader = asyncio.StreamReader()
    reader.feed_data(controller_frame(SECRET, b"abcdef", 0))
    reader.feed_eof()
    stream = EncryptedStream(reader, FakeWriter())
    stream.set_session(Session(controller_id=uuid.uuid4(), shared_secret=SECRET))
    assert await stream.read(4) == b"abcd"
    assert await stream.read(4) == b"ef"


@pytest.mark.asyncio
async def test_stream_read_fails_on_bad_frame():
    reader = asyncio.StreamReader()
    reader.feed_data(controller_frame(OTHER_SECRET, b"abc", 0))
    reader.feed_eof()
    stream = EncryptedStream(reader, FakeWriter())
    stream.set_session(Session(controller_id=uuid.uuid4(), shared_secret=SECRET))
    with pytest.raises(ValueError):
        await stream.read(1536)


@pytest.mark.asyncio
async def test_stream_close_closes_writer():
    writer = FakeWriter()
    async with EncryptedStream(asyncio.StreamReader(), writer):
        assert not writer.closed
    assert writer.closed