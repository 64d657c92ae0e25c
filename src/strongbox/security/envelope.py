"""Symmetric envelope used for every encrypted field and payload.

Layout (fixed, no version byte):
- 16 bytes: IV, freshly random per encryption
- N bytes: AES-256-CBC ciphertext of the PKCS#7-padded plaintext

Stored as ``iv || ciphertext`` wherever a single blob is kept, or split into
two columns where a structured record has room. Changing this layout is a
breaking storage-format change.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..core.exceptions import ConfigurationError, DecryptionError
from .memory import wipe
from .rng import SecureRandom

IV_LENGTH = 16
BLOCK_SIZE_BITS = 128
KEY_LENGTH = 32


@dataclass(frozen=True)
class Envelope:
    """IV-prefixed ciphertext. Immutable; re-encrypt from scratch on edit."""

    iv: bytes
    ciphertext: bytes

    def to_bytes(self) -> bytes:
        return self.iv + self.ciphertext

    @classmethod
    def from_bytes(cls, blob: Union[bytes, bytearray]) -> "Envelope":
        """Split a stored ``iv || ciphertext`` blob."""
        blob = bytes(blob)
        if len(blob) < IV_LENGTH:
            raise DecryptionError("Envelope too short to contain an IV")
        return cls(iv=blob[:IV_LENGTH], ciphertext=blob[IV_LENGTH:])

    @classmethod
    def from_parts(cls, iv: Optional[bytes], ciphertext: Optional[bytes]) -> "Envelope":
        """Rebuild an envelope stored in two columns."""
        if iv is None or ciphertext is None:
            raise DecryptionError("Envelope is missing its IV or ciphertext")
        return cls(iv=bytes(iv), ciphertext=bytes(ciphertext))

    def __len__(self) -> int:
        return len(self.iv) + len(self.ciphertext)

    def __repr__(self) -> str:
        return f"Envelope(iv_len={len(self.iv)}, ciphertext_len={len(self.ciphertext)})"


def _check_key(key, error=ValueError) -> None:
    if key is None or len(key) != KEY_LENGTH:
        raise error("Key must be 32 bytes for AES-256")


def _cipher(key, iv: bytes) -> Cipher:
    try:
        return Cipher(algorithms.AES(bytes(key)), modes.CBC(iv))
    except UnsupportedAlgorithm as e:
        raise ConfigurationError("AES-256-CBC is not available from the crypto backend") from e


def encrypt(plaintext: Union[bytes, bytearray], key, rng: Optional[SecureRandom] = None) -> Envelope:
    """
    Encrypt ``plaintext`` under ``key`` and return a fresh :class:`Envelope`.

    A ``bytearray`` plaintext is zeroed once it has been consumed.
    """
    try:
        _check_key(key)
        iv = (rng or SecureRandom()).token_bytes(IV_LENGTH)
        padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
        padded = bytearray(padder.update(bytes(plaintext)))
        padded += padder.finalize()
        try:
            encryptor = _cipher(key, iv).encryptor()
            ct = encryptor.update(bytes(padded)) + encryptor.finalize()
        finally:
            wipe(padded)
        return Envelope(iv=iv, ciphertext=ct)
    finally:
        wipe(plaintext)


def decrypt(envelope: Union[Envelope, bytes, bytearray], key) -> bytearray:
    """
    Decrypt an envelope (or a raw ``iv || ciphertext`` blob) under ``key``.

    Raises :class:`DecryptionError` for a malformed envelope, a wrong key or
    invalid padding. Partial plaintext is never returned.
    """
    if not isinstance(envelope, Envelope):
        envelope = Envelope.from_bytes(envelope)
    _check_key(key, DecryptionError)

    if len(envelope.iv) != IV_LENGTH:
        raise DecryptionError("Envelope IV has the wrong length")
    ct = envelope.ciphertext
    if not ct or len(ct) % (BLOCK_SIZE_BITS // 8) != 0:
        raise DecryptionError("Ciphertext length is not a positive multiple of the block size")

    decryptor = _cipher(key, envelope.iv).decryptor()
    padded = bytearray(decryptor.update(ct))
    padded += decryptor.finalize()
    out = bytearray()
    try:
        unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
        out += unpadder.update(bytes(padded))
        out += unpadder.finalize()
    except ValueError as e:
        wipe(out)
        raise DecryptionError("Decryption failed (wrong key or corrupted data)") from e
    finally:
        wipe(padded)
    return out
