"""
Per-entity encryption adapters for Strongbox records.

Each adapter turns one kind of domain value into an :class:`Envelope` and
back, using a key resolved by the caller:

- :class:`PasswordAdapter` / :class:`NoteAdapter`: UTF-8 text
- :class:`IdentityCardAdapter`: a ``str -> str`` field map, serialized as
  canonical JSON so that sealing the same map always yields the same
  plaintext bytes
- :class:`FileAdapter`: raw bytes plus a SHA-256 integrity tag computed over
  the plaintext and checked after decryption

Adapters know nothing about the database or the blob store; ``VaultManager``
is the integration point. They never log or echo plaintext.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Union

import json
import logging

from ..core.exceptions import DeserializationError, IntegrityCheckFailedError
from ..core.hashing import calculate_sha256_bytes, digests_match
from .envelope import Envelope, decrypt, encrypt
from .memory import wipe
from .rng import SecureRandom

logger = logging.getLogger(__name__)


class _Adapter:
    """Shared plumbing: every adapter seals through the same envelope."""

    def __init__(self, rng: Optional[SecureRandom] = None):
        self.rng = rng or SecureRandom()

    def _seal_bytes(self, data: bytearray, key) -> Envelope:
        # encrypt() wipes ``data`` once consumed
        return encrypt(data, key, rng=self.rng)

    def _open_bytes(self, envelope: Union[Envelope, bytes, bytearray], key) -> bytearray:
        return decrypt(envelope, key)


class TextAdapter(_Adapter):
    """UTF-8 text values."""

    kind = "text"

    def seal(self, value: str, key) -> Envelope:
        if not isinstance(value, str):
            raise TypeError(f"{self.kind} value must be a string")
        return self._seal_bytes(bytearray(value.encode("utf-8")), key)

    def open(self, envelope, key) -> str:
        raw = self._open_bytes(envelope, key)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DeserializationError(f"decrypted {self.kind} is not valid UTF-8") from e
        finally:
            wipe(raw)


class PasswordAdapter(TextAdapter):
    kind = "password"


class NoteAdapter(TextAdapter):
    kind = "note"


class IdentityCardAdapter(_Adapter):
    """Field map of an identity card."""

    @staticmethod
    def serialize(fields: Dict[str, str]) -> bytearray:
        """Canonical encoding: sorted keys, compact separators, UTF-8."""
        if not isinstance(fields, dict):
            raise TypeError("card fields must be a dict")
        for k, v in fields.items():
            if not isinstance(k, str) or not isinstance(v, str):
                raise TypeError("card fields must map strings to strings")
        raw = json.dumps(fields, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        return bytearray(raw.encode("utf-8"))

    @staticmethod
    def deserialize(raw: bytearray) -> Dict[str, str]:
        try:
            obj = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise DeserializationError("decrypted card data is not a JSON document") from e
        if not isinstance(obj, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in obj.items()
        ):
            raise DeserializationError("decrypted card data is not a string field map")
        return obj

    def seal(self, fields: Dict[str, str], key) -> Envelope:
        return self._seal_bytes(self.serialize(fields), key)

    def open(self, envelope, key) -> Dict[str, str]:
        raw = self._open_bytes(envelope, key)
        try:
            return self.deserialize(raw)
        finally:
            wipe(raw)


@dataclass(frozen=True)
class SealedFile:
    """Encrypted file payload and the SHA-256 of its plaintext."""

    envelope: Envelope
    checksum: str

    @property
    def size(self) -> int:
        return len(self.envelope)


class FileAdapter(_Adapter):
    """Raw file bytes with a plaintext integrity tag."""

    def seal(self, data: Union[bytes, bytearray], key) -> SealedFile:
        checksum = calculate_sha256_bytes(data)
        buf = data if isinstance(data, bytearray) else bytearray(data)
        return SealedFile(envelope=self._seal_bytes(buf, key), checksum=checksum)

    def open(self, sealed: Union[SealedFile, Envelope, bytes], key, checksum: Optional[str] = None,
             file_id: Optional[str] = None) -> bytearray:
        """
        Decrypt a file payload and check it against its integrity tag.

        ``checksum`` overrides the tag carried by ``sealed`` (needed when the
        envelope comes from the blob store and the tag from the record store).
        Raises :class:`IntegrityCheckFailedError` on mismatch, distinct from a
        :class:`DecryptionError`.
        """
        if isinstance(sealed, SealedFile):
            envelope = sealed.envelope
            expected = checksum or sealed.checksum
        else:
            envelope = sealed
            expected = checksum
        if expected is None:
            raise ValueError("an integrity checksum is required to open a file payload")

        data = self._open_bytes(envelope, key)
        if not digests_match(calculate_sha256_bytes(data), expected):
            wipe(data)
            logger.warning("integrity check failed for file %s", file_id or "<unnamed>")
            raise IntegrityCheckFailedError(f"File integrity check failed ({file_id or 'payload'})")
        return data
