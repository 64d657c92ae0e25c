"""Runtime configuration: where the vault lives and how loudly it logs.

Crypto parameters (iterations, key and salt sizes) are part of the storage
format and live as constants in ``strongbox.security``; they are not
configurable here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import os

from .core.exceptions import ConfigurationError

ENV_HOME = "STRONGBOX_HOME"
ENV_LOG_LEVEL = "STRONGBOX_LOG_LEVEL"

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _default_root() -> Path:
    return Path.home() / ".strongbox"


@dataclass
class StrongboxConfig:
    """
    Filesystem layout of one vault.

    - ``<root>/store/vault.db``: record store
    - ``<root>/store/blobs/``: encrypted file payloads
    - ``<root>/backups/``: backup artifacts and ``catalog.db``
    """

    root: Path = field(default_factory=_default_root)
    log_level: str = "INFO"

    def __post_init__(self):
        self.root = Path(self.root).expanduser()
        self.log_level = str(self.log_level).upper()
        if self.log_level not in _LEVELS:
            raise ConfigurationError(f"Unknown log level: {self.log_level}")

    @property
    def store_dir(self) -> Path:
        return self.root / "store"

    @property
    def db_path(self) -> Path:
        return self.store_dir / "vault.db"

    @property
    def blob_dir(self) -> Path:
        return self.store_dir / "blobs"

    @property
    def backup_dir(self) -> Path:
        return self.root / "backups"

    @property
    def catalog_path(self) -> Path:
        return self.backup_dir / "catalog.db"

    @classmethod
    def from_env(cls, root: Optional[str] = None) -> "StrongboxConfig":
        """Build a config from ``STRONGBOX_HOME`` / ``STRONGBOX_LOG_LEVEL``; ``root`` wins if given."""
        home = root or os.getenv(ENV_HOME)
        level = os.getenv(ENV_LOG_LEVEL, "INFO")
        if home:
            return cls(root=Path(home), log_level=level)
        return cls(log_level=level)
