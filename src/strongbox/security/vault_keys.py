"""Per-collection key resolution.

Every collection starts on the master key. Giving it a separate secret stores
a salt and a verifier (never the key); unlocking such a collection verifies
the supplied secret and derives the key from it. Nothing derived here is
cached: callers re-run :meth:`VaultKeyHierarchy.resolve_key` for every access.
"""
from __future__ import annotations

import logging
from typing import Optional, Tuple

from ..core.exceptions import AuthenticationError
from ..core.models import Collection, KeyState, VaultKeyDescriptor
from .kdf import derive_key, generate_salt, hash_password, verify_password
from .memory import Secret, to_mutable, wipe
from .rng import SecureRandom

logger = logging.getLogger(__name__)

# Same message for unknown collection, missing secret and wrong secret.
UNLOCK_FAILED = "collection could not be unlocked"


class VaultKeyHierarchy:
    """
    Owns the mapping from collection identity to the key protecting it.

    ``store`` is the record store; only ``get_collection`` and
    ``save_collection_descriptor`` are used.
    """

    def __init__(self, store, rng: Optional[SecureRandom] = None):
        self.store = store
        self.rng = rng or SecureRandom()

    def state_of(self, name: str) -> KeyState:
        collection = self.store.get_collection(name)
        if collection is None:
            raise AuthenticationError(UNLOCK_FAILED)
        return collection.descriptor.state

    def describe_secret(self, secret: Secret) -> VaultKeyDescriptor:
        """Build a descriptor for ``secret`` with a fresh salt. Wipes a mutable secret."""
        salt = generate_salt(self.rng)
        verifier = hash_password(secret, salt)
        return VaultKeyDescriptor(True, salt, verifier)

    def prepare_secret(self, secret: Secret) -> Tuple[VaultKeyDescriptor, bytearray]:
        """
        Return ``(descriptor, key)`` for a new secret without persisting it.

        Used for rotation: the caller re-encrypts the collection under the key
        and only then saves the descriptor.
        """
        material = to_mutable(secret)
        try:
            salt = generate_salt(self.rng)
            verifier = hash_password(bytearray(material), salt)
            key = derive_key(material, salt)
            return VaultKeyDescriptor(True, salt, verifier), key
        finally:
            wipe(material)
            wipe(secret)

    def set_secret(self, name: str, secret: Optional[Secret]) -> VaultKeyDescriptor:
        """
        Give collection ``name`` its own secret, or revert it to the master key.

        This only swaps the descriptor; re-encrypting existing payloads is the
        caller's job (see ``VaultManager.set_collection_secret``).
        """
        if secret is None:
            descriptor = VaultKeyDescriptor.master()
        else:
            descriptor = self.describe_secret(secret)
        self.store.save_collection_descriptor(name, descriptor)
        logger.info("collection %r key state set to %s", name, descriptor.state.value)
        return descriptor

    def resolve_key(self, name: str, master_key, supplied: Optional[Secret] = None):
        """
        Return the key protecting collection ``name``.

        On the master key the master key is returned unchanged and ``supplied``
        is ignored. Otherwise ``supplied`` must verify against the stored
        verifier. Every failure raises :class:`AuthenticationError` with the
        same message.
        """
        try:
            collection = self.store.get_collection(name)
            if collection is None:
                raise AuthenticationError(UNLOCK_FAILED)
            return self.resolve_for(collection, master_key, supplied)
        finally:
            wipe(supplied)

    def resolve_for(self, collection: Collection, master_key, supplied: Optional[Secret] = None):
        """Same as :meth:`resolve_key` for an already loaded collection."""
        descriptor = collection.descriptor
        if descriptor.state is KeyState.USES_MASTER_KEY:
            wipe(supplied)
            return master_key

        if supplied is None:
            raise AuthenticationError(UNLOCK_FAILED)

        material = to_mutable(supplied)
        try:
            if not verify_password(bytearray(material), descriptor.salt, descriptor.verifier):
                logger.warning("failed unlock attempt for a protected collection")
                raise AuthenticationError(UNLOCK_FAILED)
            return derive_key(material, descriptor.salt)
        finally:
            wipe(material)
            wipe(supplied)
