"""Password-based key derivation for Strongbox.

Both the symmetric key and the stored verifier come from PBKDF2-HMAC-SHA256
with the same work factor, so checking a password costs exactly as much as
deriving the key. The verifier mixes a fixed purpose label into the salt; a
stored verifier is therefore never equal to the key it guards.
"""
import hmac
from typing import Dict, Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..core.exceptions import ConfigurationError
from .memory import Secret, to_mutable, wipe
from .rng import SecureRandom

# Part of the storage format: changing any of these invalidates existing vaults.
KDF_ALGORITHM = "pbkdf2-hmac-sha256"
KDF_ITERATIONS = 100_000
KEY_LENGTH = 32
SALT_LENGTH = 32

_VERIFIER_LABEL = b"strongbox-verifier"


def generate_salt(rng: Optional[SecureRandom] = None, length: int = SALT_LENGTH) -> bytes:
    """Return a cryptographically secure random salt."""
    return (rng or SecureRandom()).token_bytes(length)


def _pbkdf2(material: bytearray, salt: bytes) -> bytearray:
    try:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=bytes(salt),
            iterations=KDF_ITERATIONS,
        )
        return bytearray(kdf.derive(material))
    except UnsupportedAlgorithm as e:
        raise ConfigurationError("PBKDF2-HMAC-SHA256 is not available from the crypto backend") from e


def derive_key(password: Secret, salt: bytes) -> bytearray:
    """
    Derive a 32-byte symmetric key from ``password`` and ``salt``.

    The key is returned as a ``bytearray`` so its owner can wipe it. A
    ``bytearray`` password is zeroed before this function returns.
    """
    material = to_mutable(password)
    try:
        return _pbkdf2(material, salt)
    finally:
        wipe(material)
        wipe(password)


def hash_password(password: Secret, salt: bytes) -> bytes:
    """
    Compute the storable verifier for ``password``.

    Same function and cost as :func:`derive_key`, different output.
    """
    material = to_mutable(password)
    digest = None
    try:
        digest = _pbkdf2(material, bytes(salt) + _VERIFIER_LABEL)
        return bytes(digest)
    finally:
        wipe(material)
        wipe(password)
        if digest is not None:
            wipe(digest)


def verify_password(password: Secret, salt: bytes, expected: bytes) -> bool:
    """Recompute the verifier and compare it to ``expected`` in constant time."""
    actual = hash_password(password, salt)
    if expected is None:
        return False
    return hmac.compare_digest(actual, bytes(expected))


def kdf_params_to_dict(salt: bytes) -> Dict:
    return {
        "algo": KDF_ALGORITHM,
        "salt": salt.hex(),
        "iterations": KDF_ITERATIONS,
        "length": KEY_LENGTH,
    }
