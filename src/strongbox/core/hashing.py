""" Utility for hashing operations (integrity tags). """

import hashlib
import hmac
from pathlib import Path


CHUNK_SIZE = 65536  # 64KB

def calculate_sha256(file_path: Path) -> str:

    # Calculates the SHA-256 hash of a file.

    sha256 = hashlib.sha256()
    with open(file_path, 'rb') as f:
        while True:
            data = f.read(CHUNK_SIZE)
            if not data:
                break
            sha256.update(data)
    return sha256.hexdigest()


def calculate_sha256_bytes(data) -> str:
    # Calculates the SHA-256 hash of an in-memory buffer.
    return hashlib.sha256(data).hexdigest()


def digests_match(actual: str, expected: str) -> bool:
    # Constant-time comparison of two hex digests.
    if not isinstance(actual, str) or not isinstance(expected, str):
        return False
    return hmac.compare_digest(actual.encode("utf-8"), expected.encode("utf-8"))
