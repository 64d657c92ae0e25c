"""Unit tests for the per-entity encryption adapters."""

import json

import pytest

from strongbox.core.exceptions import (
    DecryptionError,
    DeserializationError,
    IntegrityCheckFailedError,
)
from strongbox.core.hashing import calculate_sha256_bytes
from strongbox.security.encryption import (
    FileAdapter,
    IdentityCardAdapter,
    NoteAdapter,
    PasswordAdapter,
    SealedFile,
)
from strongbox.security.envelope import Envelope, encrypt


KEY = bytes(range(32))
OTHER_KEY = bytes(32)


@pytest.fixture
def passwords():
    return PasswordAdapter()


@pytest.fixture
def notes():
    return NoteAdapter()


@pytest.fixture
def cards():
    return IdentityCardAdapter()


@pytest.fixture
def files():
    return FileAdapter()


# --- Text adapters ---


def test_password_round_trip(passwords):
    env = passwords.seal("hunter2", KEY)
    assert isinstance(env, Envelope)
    assert passwords.open(env, KEY) == "hunter2"


def test_note_round_trip_unicode(notes):
    text = "Grüße, 日本, emoji 🔐"
    assert notes.open(notes.seal(text, KEY), KEY) == text


def test_text_seal_rejects_non_string(passwords):
    with pytest.raises(TypeError):
        passwords.seal(b"bytes", KEY)


def test_text_open_invalid_utf8_is_deserialization_error(notes):
    env = encrypt(b"\xff\xfe\xfd", KEY)
    with pytest.raises(DeserializationError):
        notes.open(env, KEY)


def test_note_wrong_key_is_decryption_error(notes):
    """Wrong key fails padding or UTF-8 decoding; both are DecryptionErrors."""
    env = notes.seal("launch codes " * 4, KEY)
    with pytest.raises(DecryptionError):
        notes.open(env, OTHER_KEY)


def test_deserialization_error_is_a_decryption_error():
    assert issubclass(DeserializationError, DecryptionError)


# --- Identity card adapter ---


def test_card_round_trip(cards):
    fields = {"passportNumber": "X1234567", "fullName": "Ada Lovelace"}
    assert cards.open(cards.seal(fields, KEY), KEY) == fields


def test_card_serialization_is_canonical():
    a = IdentityCardAdapter.serialize({"b": "2", "a": "1"})
    b = IdentityCardAdapter.serialize({"a": "1", "b": "2"})
    assert a == b == bytearray(b'{"a":"1","b":"2"}')


@pytest.mark.parametrize("fields", [["not", "a", "dict"], {"a": 1}, {1: "a"}])
def test_card_serialize_rejects_non_string_maps(fields):
    with pytest.raises(TypeError):
        IdentityCardAdapter.serialize(fields)


@pytest.mark.parametrize("payload", [b"not json", b'["a", "b"]', b'{"a": 1}'])
def test_card_open_rejects_wrong_shape(cards, payload):
    with pytest.raises(DeserializationError):
        cards.open(encrypt(payload, KEY), KEY)


def test_card_wrong_key_is_decryption_error(cards):
    env = cards.seal({"cardNumber": "4111111111111111"}, KEY)
    with pytest.raises(DecryptionError):
        cards.open(env, OTHER_KEY)


# --- File adapter ---


def test_file_seal_records_plaintext_checksum(files):
    data = b"%PDF-1.4 fake pdf"
    sealed = files.seal(data, KEY)
    assert isinstance(sealed, SealedFile)
    assert sealed.checksum == calculate_sha256_bytes(data)
    assert sealed.size == len(sealed.envelope.to_bytes())


def test_file_round_trip(files):
    data = bytes(range(256)) * 10
    sealed = files.seal(data, KEY)
    assert files.open(sealed, KEY) == bytearray(data)


def test_file_open_from_blob_with_external_checksum(files):
    data = b"payload"
    sealed = files.seal(data, KEY)
    blob = sealed.envelope.to_bytes()
    assert files.open(Envelope.from_bytes(blob), KEY, checksum=sealed.checksum) == bytearray(data)


def test_file_open_requires_checksum(files):
    sealed = files.seal(b"payload", KEY)
    with pytest.raises(ValueError):
        files.open(sealed.envelope, KEY)


def test_file_checksum_mismatch_is_integrity_error(files):
    sealed = files.seal(b"payload", KEY)
    with pytest.raises(IntegrityCheckFailedError):
        files.open(sealed.envelope, KEY, checksum="0" * 64, file_id="f-1")


def test_file_wrong_key_fails(files):
    sealed = files.seal(b"some file contents", KEY)
    with pytest.raises((DecryptionError, IntegrityCheckFailedError)):
        files.open(sealed, OTHER_KEY)


def test_file_seal_wipes_mutable_input(files):
    data = bytearray(b"wipe after sealing")
    sealed = files.seal(data, KEY)
    assert data == bytearray(len(b"wipe after sealing"))
    assert files.open(sealed, KEY) == bytearray(b"wipe after sealing")


def test_integrity_error_is_not_a_decryption_error():
    assert not issubclass(IntegrityCheckFailedError, DecryptionError)


def test_card_serialize_output_is_json():
    raw = IdentityCardAdapter.serialize({"ssn": "123-45-6789"})
    assert json.loads(raw.decode("utf-8")) == {"ssn": "123-45-6789"}
