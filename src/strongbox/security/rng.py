"""Cryptographically secure random source shared by the security components.

One ``SecureRandom`` is constructed at startup and handed to every component
that needs randomness (salts, IVs). The operating system generator is probed
lazily on first use; after that the object is read-only and safe to share
between threads without further locking.
"""
from __future__ import annotations

import os
import threading

from ..core.exceptions import ConfigurationError


class SecureRandom:
    """Thin, injectable wrapper around the OS CSPRNG."""

    def __init__(self):
        self._ready = False
        self._lock = threading.Lock()

    def _ensure_ready(self) -> None:
        if self._ready:
            return
        with self._lock:
            if self._ready:
                return
            try:
                os.urandom(1)
            except NotImplementedError as e:
                raise ConfigurationError("no secure random source available on this platform") from e
            self._ready = True

    def token_bytes(self, length: int) -> bytes:
        """Return ``length`` random bytes."""
        if length < 0:
            raise ValueError("length must be non-negative")
        self._ensure_ready()
        return os.urandom(length)
