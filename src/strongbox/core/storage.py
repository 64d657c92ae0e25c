"""
Blob store for encrypted file payloads

Structure Map for reference:
==============================
 - <root>/
      - store/
          - vault.db
          - blobs/
              - {collection_id}/
                  - {uuid}.enc   (iv || ciphertext)
==============================
For reference:
> Blobs are opaque envelopes; plaintext never touches the disk
> Names are generated by the store and validated on every access, so a name
  read back from the record store cannot point outside the blob root
> Writes go to a temp file in the same directory and are renamed into place
> Removing a collection = removing its directory
"""

from pathlib import Path
from typing import List, Union
import logging
import os
import shutil
import tempfile
import uuid

from .exceptions import InvalidPathError, StorageError

logger = logging.getLogger(__name__)

BLOB_SUFFIX = ".enc"


class BlobStore:
    """Filesystem store of encrypted payloads keyed by generated names."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).expanduser()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create blob root {self.root}: {e}") from e

    def new_name(self, collection_id: str) -> str:
        return f"{collection_id}/{uuid.uuid4().hex}{BLOB_SUFFIX}"

    def path_for(self, name: str) -> Path:
        """Map a blob name to its path, rejecting anything outside the root."""
        if not name or "\\" in name or "\x00" in name:
            raise InvalidPathError(f"Invalid blob name: {name!r}")
        if any(part in ("", ".", "..") for part in name.split("/")):
            raise InvalidPathError(f"Invalid blob name: {name!r}")
        path = (self.root / name).resolve()
        root = self.root.resolve()
        if root not in path.parents:
            raise InvalidPathError(f"Blob name escapes the store: {name!r}")
        return path

    def write(self, name: str, data: bytes) -> int:
        """Atomically write ``data`` under ``name``; returns bytes written."""
        path = self.path_for(name)
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=BLOB_SUFFIX)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StorageError(f"Failed to write blob {name}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
        logger.debug("wrote blob %s (%d bytes)", name, len(data))
        return len(data)

    def read(self, name: str) -> bytes:
        path = self.path_for(name)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise StorageError(f"Blob {name} not found") from e
        except OSError as e:
            raise StorageError(f"Failed to read blob {name}: {e}") from e

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def delete(self, name: str) -> bool:
        """Remove a blob; returns False if it was already gone."""
        path = self.path_for(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete blob {name}: {e}") from e
        logger.debug("deleted blob %s", name)
        return True

    def delete_collection(self, collection_id: str) -> None:
        """Remove every blob of a collection."""
        directory = self.path_for(collection_id)
        try:
            shutil.rmtree(directory)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(f"Failed to remove collection blobs {collection_id}: {e}") from e

    def list_names(self) -> List[str]:
        """Every blob name currently on disk (temp files excluded)."""
        names = []
        for path in sorted(self.root.rglob(f"*{BLOB_SUFFIX}")):
            if path.name.startswith(".tmp-"):
                continue
            names.append(path.relative_to(self.root).as_posix())
        return names
