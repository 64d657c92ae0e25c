"""In-memory session holding the unlocked master key.

A ``Session`` is created explicitly by its owner (normally ``VaultManager``)
and passed by reference; there is no module-level default session. The master
key is kept in a ``bytearray`` and zeroed when the session is locked.
Idle-timeout bookkeeping belongs to the caller.
"""
from __future__ import annotations

import threading
from datetime import datetime
from typing import Optional

from ..core.exceptions import AuthenticationError, SessionLockedError
from ..core.models import MasterCredential
from .kdf import derive_key, generate_salt, hash_password, verify_password
from .memory import Secret, to_mutable, wipe
from .rng import SecureRandom


def create_master_credential(password: Secret, rng: Optional[SecureRandom] = None) -> MasterCredential:
    """Create the stored salt and verifier for a new master password."""
    salt = generate_salt(rng)
    return MasterCredential(salt=salt, verifier=hash_password(password, salt))


def verify_master_password(password: Secret, credential: MasterCredential) -> bool:
    return verify_password(password, credential.salt, credential.verifier)


def derive_master_key(password: Secret, credential: MasterCredential) -> bytearray:
    """
    Verify ``password`` against ``credential`` and derive the master key.

    Raises :class:`AuthenticationError` on a wrong password.
    """
    material = to_mutable(password)
    try:
        if not verify_password(bytearray(material), credential.salt, credential.verifier):
            raise AuthenticationError("invalid master password")
        return derive_key(material, credential.salt)
    finally:
        wipe(material)
        wipe(password)


class Session:
    def __init__(self):
        self._master_key: Optional[bytearray] = None
        self._unlocked_at: Optional[datetime] = None
        self._lock = threading.Lock()

    @property
    def is_unlocked(self) -> bool:
        return self._master_key is not None

    @property
    def unlocked_at(self) -> Optional[datetime]:
        return self._unlocked_at

    def unlock_with_key(self, master_key) -> None:
        """Take ownership of an already-derived master key; it is wiped on lock()."""
        with self._lock:
            self._clear()
            if not isinstance(master_key, bytearray):
                master_key = bytearray(master_key)
            self._master_key = master_key
            self._unlocked_at = datetime.utcnow()

    def unlock_with_password(self, password: Secret, credential: MasterCredential) -> None:
        """Verify the password, derive the master key and unlock."""
        key = derive_master_key(password, credential)
        self.unlock_with_key(key)

    def get_master_key(self) -> bytearray:
        """Return the unlocked master key or raise if locked."""
        key = self._master_key
        if key is None:
            raise SessionLockedError("Session is locked")
        return key

    def _clear(self) -> None:
        if self._master_key is not None:
            wipe(self._master_key)
        self._master_key = None
        self._unlocked_at = None

    def lock(self) -> None:
        """Zero the master key and lock the session."""
        with self._lock:
            self._clear()
