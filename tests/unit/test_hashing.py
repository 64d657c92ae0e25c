"""Unit tests for hashing helpers."""

import hashlib

from strongbox.core.hashing import (
    CHUNK_SIZE,
    calculate_sha256,
    calculate_sha256_bytes,
    digests_match,
)


def test_calculate_sha256_matches_hashlib(tmp_path):
    """File hashing streams in chunks and matches a one-shot digest."""
    data = b"a" * (CHUNK_SIZE * 2 + 17)
    path = tmp_path / "big.bin"
    path.write_bytes(data)
    assert calculate_sha256(path) == hashlib.sha256(data).hexdigest()


def test_calculate_sha256_empty_file(tmp_path):
    path = tmp_path / "empty"
    path.write_bytes(b"")
    assert calculate_sha256(path) == hashlib.sha256(b"").hexdigest()


def test_calculate_sha256_bytes_accepts_bytearray():
    assert calculate_sha256_bytes(bytearray(b"abc")) == calculate_sha256_bytes(b"abc")


def test_digests_match():
    digest = calculate_sha256_bytes(b"abc")
    assert digests_match(digest, digest)
    assert not digests_match(digest, "0" * 64)
    assert not digests_match(digest, None)
