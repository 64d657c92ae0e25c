"""Unit tests for the secure random source and buffer hygiene helpers."""

import pytest
from unittest.mock import patch

from strongbox.core.exceptions import ConfigurationError
from strongbox.security.memory import to_mutable, wipe
from strongbox.security.rng import SecureRandom


def test_token_bytes_length():
    rng = SecureRandom()
    assert len(rng.token_bytes(16)) == 16
    assert rng.token_bytes(0) == b""


def test_token_bytes_rejects_negative():
    with pytest.raises(ValueError):
        SecureRandom().token_bytes(-1)


def test_missing_os_random_is_configuration_error():
    with patch("strongbox.security.rng.os.urandom", side_effect=NotImplementedError):
        with pytest.raises(ConfigurationError):
            SecureRandom().token_bytes(8)


def test_provider_probe_runs_once():
    rng = SecureRandom()
    rng.token_bytes(1)
    with patch("strongbox.security.rng.os.urandom", return_value=b"\x00" * 4) as mock:
        rng.token_bytes(4)
    mock.assert_called_once_with(4)


def test_wipe_bytearray_and_memoryview():
    buf = bytearray(b"secret")
    wipe(buf)
    assert buf == bytearray(6)

    backing = bytearray(b"secret")
    wipe(memoryview(backing))
    assert backing == bytearray(6)


def test_wipe_ignores_immutable_values():
    wipe(b"bytes")
    wipe("text")
    wipe(None)


def test_to_mutable_copies():
    original = bytearray(b"abc")
    copy = to_mutable(original)
    assert copy == original and copy is not original
    assert to_mutable("ü") == bytearray("ü".encode("utf-8"))
    with pytest.raises(ValueError):
        to_mutable(None)
