"""Best-effort hygiene for secret buffers.

Python strings and bytes are immutable and cannot be scrubbed; secrets that
must be cleared are therefore carried in ``bytearray`` objects and wiped in
``finally`` blocks once they are no longer needed.
"""
from __future__ import annotations

from typing import Union

Secret = Union[str, bytes, bytearray, memoryview]


def wipe(buf) -> None:
    """Overwrite a mutable buffer with zeros. Immutable values are ignored."""
    if isinstance(buf, bytearray):
        for i in range(len(buf)):
            buf[i] = 0
    elif isinstance(buf, memoryview) and not buf.readonly:
        buf[:] = bytes(len(buf))


def to_mutable(secret: Secret) -> bytearray:
    """Return a fresh ``bytearray`` copy of ``secret`` (UTF-8 for text)."""
    if secret is None:
        raise ValueError("secret must not be None")
    if isinstance(secret, str):
        return bytearray(secret.encode("utf-8"))
    return bytearray(secret)
