"""Security primitives for Strongbox.

This package provides:
- PBKDF2-HMAC-SHA256 key derivation and password verifiers
- the AES-256-CBC envelope used for every encrypted value
- per-collection key resolution (master key or a separate secret)
- per-entity sealing adapters (passwords, notes, identity cards, files)
- the in-memory session that owns the master key
"""

from .rng import SecureRandom
from .kdf import generate_salt, derive_key, hash_password, verify_password
from .envelope import Envelope, encrypt, decrypt
from .session import Session, create_master_credential, verify_master_password, derive_master_key
from .vault_keys import VaultKeyHierarchy
from .encryption import (
    PasswordAdapter,
    NoteAdapter,
    IdentityCardAdapter,
    FileAdapter,
    SealedFile,
)

__all__ = [
    "SecureRandom",
    "generate_salt",
    "derive_key",
    "hash_password",
    "verify_password",
    "Envelope",
    "encrypt",
    "decrypt",
    "Session",
    "create_master_credential",
    "verify_master_password",
    "derive_master_key",
    "VaultKeyHierarchy",
    "PasswordAdapter",
    "NoteAdapter",
    "IdentityCardAdapter",
    "FileAdapter",
    "SealedFile",
]
