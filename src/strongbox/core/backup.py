"""Backup manager: create, verify, restore, list and delete encrypted backups.

Each backup is a single ``.sbbak`` artifact:
  - ``vault.db`` hot-copied with ``sqlite3.backup()``
  - every blob under ``blobs/``
zipped (deflated) and sealed as one envelope under the master key:

    [IV:16][AES-256-CBC ciphertext of the zip]

The SHA-256 of the artifact bytes and all other metadata live in the backup
catalog (``catalog.db`` next to the artifacts), never inside the artifact.
Restore verifies that checksum before decrypting anything, stages the
extracted store next to the live one and swaps directories only after the
staged database passes ``PRAGMA integrity_check``.
"""

import io
import logging
import os
import shutil
import sqlite3
import tempfile
import threading
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import BackupModel
from ..database.schema import get_catalog_schema
from ..security.envelope import Envelope, decrypt, encrypt
from ..security.memory import wipe
from ..security.rng import SecureRandom
from .exceptions import (
    BackupError,
    DecryptionError,
    IntegrityCheckFailedError,
    StorageError,
)
from .hashing import calculate_sha256, calculate_sha256_bytes, digests_match
from .models import (
    BackupRecord,
    BackupStatistics,
    BackupStatus,
    BackupType,
    RestoreReport,
)
from .results import Outcome, Result

logger = logging.getLogger(__name__)

DB_FILE_NAME = "vault.db"
BLOB_DIR_NAME = "blobs"
BACKUP_SUFFIX = ".sbbak"
STAGING_SUFFIX = ".staging"
BEFORE_RESTORE_SUFFIX = ".before_restore"


class BackupManager:
    """Orchestrates backup creation, verification, restoration and deletion.

    Args:
        store_dir: Live store directory holding ``vault.db`` and ``blobs/``.
        backup_dir: Directory for ``.sbbak`` artifacts.
        catalog: DatabaseConnection for the catalog. Defaults to
            ``<backup_dir>/catalog.db``.
        rng: Shared SecureRandom used for artifact IVs.
    """

    def __init__(
        self,
        store_dir,
        backup_dir,
        catalog: Optional[DatabaseConnection] = None,
        rng: Optional[SecureRandom] = None,
    ):
        self.store_dir = Path(store_dir)
        self.backup_dir = Path(backup_dir)
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create backup directory {self.backup_dir}: {e}") from e

        self.catalog = catalog or DatabaseConnection(
            self.backup_dir / "catalog.db", schema=get_catalog_schema
        )
        self.catalog.initialize()
        self.records = BackupModel(self.catalog)
        self.rng = rng or SecureRandom()
        self._lock = threading.Lock()

    @property
    def staging_dir(self) -> Path:
        return self.store_dir.with_name(self.store_dir.name + STAGING_SUFFIX)

    @property
    def before_restore_dir(self) -> Path:
        return self.store_dir.with_name(self.store_dir.name + BEFORE_RESTORE_SUFFIX)

    # ── Create ───────────────────────────────────────────────────────

    def create_backup(
        self,
        master_key,
        description: Optional[str] = None,
        backup_type: BackupType = BackupType.MANUAL,
    ) -> Result[BackupRecord]:
        """Snapshot the live store into a sealed artifact and catalog it."""
        if not (self.store_dir / DB_FILE_NAME).exists():
            return Result.failure(Outcome.BACKUP_FAILURE, "There is no record store to back up")

        with self._lock:
            return Result.success(self._create_backup_locked(master_key, description, backup_type))

    def _create_backup_locked(self, master_key, description, backup_type) -> BackupRecord:
        record = BackupRecord(file_name="", path="", size=0, checksum="", description=description,
                              backup_type=backup_type)
        stamp = record.created_at.strftime("%Y%m%d_%H%M%S")
        record.file_name = f"strongbox_backup_{stamp}_{record.backup_id[:8]}{BACKUP_SUFFIX}"
        artifact_path = self.backup_dir / record.file_name
        record.path = str(artifact_path)

        tmp_dir = Path(tempfile.mkdtemp(prefix="strongbox_backup_"))
        try:
            # 1. Hot-copy the record store
            db_copy = tmp_dir / DB_FILE_NAME
            self._hot_copy_db(self.store_dir / DB_FILE_NAME, db_copy)

            # 2. Zip database and blobs
            zip_buf = io.BytesIO()
            blob_count = 0
            with zipfile.ZipFile(zip_buf, "w", zipfile.ZIP_DEFLATED) as zf:
                zf.write(db_copy, DB_FILE_NAME)
                blob_root = self.store_dir / BLOB_DIR_NAME
                if blob_root.is_dir():
                    for path in sorted(blob_root.rglob("*")):
                        if path.is_file() and not path.name.startswith(".tmp-"):
                            arcname = f"{BLOB_DIR_NAME}/{path.relative_to(blob_root).as_posix()}"
                            zf.write(path, arcname)
                            blob_count += 1

            # 3. Seal under the master key
            plain = bytearray(zip_buf.getvalue())
            zip_buf.close()
            artifact = encrypt(plain, master_key, rng=self.rng).to_bytes()

            # 4. Write the artifact atomically and checksum it
            self._write_atomic(artifact_path, artifact)
            record.size = len(artifact)
            record.checksum = calculate_sha256_bytes(artifact)
            record.status = BackupStatus.COMPLETED

        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Backup failed: {e}") from e
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)

        # 5. Record in the catalog
        self.records.create(record)
        logger.info(
            "backup %s created (%d bytes, %d blobs)", record.backup_id, record.size, blob_count
        )
        return record

    # ── Verify ───────────────────────────────────────────────────────

    def verify(self, record: BackupRecord) -> bool:
        """Recompute the artifact checksum; never decrypts."""
        path = Path(record.path)
        if not path.is_file():
            return False
        try:
            actual = calculate_sha256(path)
        except OSError:
            logger.warning("could not read backup artifact %s", record.backup_id)
            return False
        return digests_match(actual, record.checksum)

    # ── Restore ──────────────────────────────────────────────────────

    def restore(self, record: BackupRecord, master_key) -> Result[RestoreReport]:
        """Replace the live store with the contents of ``record``.

        The live store is only touched once the artifact has passed its
        checksum, decrypted, extracted and its database passed
        ``PRAGMA integrity_check``. The replaced store is kept as
        ``<store>.before_restore`` until :meth:`cleanup_before_restore`.
        """
        with self._lock:
            return Result.capture(self._restore_locked, record, master_key)

    def _restore_locked(self, record: BackupRecord, master_key) -> RestoreReport:
        if self.before_restore_dir.exists():
            raise BackupError(
                "A previous restore is still preserved; clean it up before restoring again"
            )

        # 1. Verify before touching anything
        if not self.verify(record):
            self.records.update_status(record.backup_id, BackupStatus.CORRUPTED)
            record.status = BackupStatus.CORRUPTED
            logger.warning("backup %s failed its integrity check", record.backup_id)
            raise IntegrityCheckFailedError(f"Backup {record.backup_id} failed its integrity check")

        # 2. Decrypt
        try:
            blob = Path(record.path).read_bytes()
        except OSError as e:
            raise StorageError(f"Cannot read backup artifact: {e}") from e
        plain = decrypt(Envelope.from_bytes(blob), master_key)

        # 3. Extract into staging
        staging = self.staging_dir
        try:
            self._extract(plain, staging)
        finally:
            wipe(plain)

        try:
            # 4. Check the staged database
            self._check_database(staging / DB_FILE_NAME)
            restored_files = len([p for p in (staging / BLOB_DIR_NAME).rglob("*") if p.is_file()])

            # 5. Swap
            self._swap(staging)
        finally:
            # gone already after a successful swap
            shutil.rmtree(staging, ignore_errors=True)

        logger.info("backup %s restored (%d files)", record.backup_id, restored_files)
        return RestoreReport(
            backup_id=record.backup_id,
            restored_files=restored_files,
            before_restore_path=str(self.before_restore_dir),
        )

    def _extract(self, plain: bytearray, staging: Path) -> None:
        if staging.exists():
            shutil.rmtree(staging)
        try:
            with zipfile.ZipFile(io.BytesIO(plain), "r") as zf:
                names = zf.namelist()
                if DB_FILE_NAME not in names:
                    raise DecryptionError("Backup payload does not contain a record store")
                for name in names:
                    if not _is_safe_member(name):
                        raise BackupError(f"Unsafe path in backup: {name!r}")
                staging.mkdir(parents=True)
                zf.extractall(staging)
        except (zipfile.BadZipFile, zlib.error, EOFError) as e:
            # a wrong key can pass the padding check and still produce garbage
            shutil.rmtree(staging, ignore_errors=True)
            raise DecryptionError("Backup payload is not readable (wrong key or corrupted data)") from e
        except OSError as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise StorageError(f"Cannot stage backup: {e}") from e
        except (DecryptionError, BackupError):
            shutil.rmtree(staging, ignore_errors=True)
            raise

    @staticmethod
    def _check_database(db_path: Path) -> None:
        conn = None
        try:
            conn = sqlite3.connect(str(db_path))
            row = conn.execute("PRAGMA integrity_check").fetchone()
        except sqlite3.Error as e:
            raise IntegrityCheckFailedError(f"Staged record store is unreadable: {e}") from e
        finally:
            if conn:
                conn.close()
        if not row or row[0] != "ok":
            raise IntegrityCheckFailedError("Staged record store failed PRAGMA integrity_check")

    def _swap(self, staging: Path) -> None:
        live = self.store_dir
        before = self.before_restore_dir
        moved_live = False
        try:
            if live.exists():
                os.replace(live, before)
                moved_live = True
            os.replace(staging, live)
        except OSError as e:
            if moved_live and not live.exists():
                os.replace(before, live)
            raise StorageError(f"Restore swap failed: {e}") from e

    def cleanup_before_restore(self) -> bool:
        """Remove the store preserved by the last restore."""
        before = self.before_restore_dir
        if not before.exists():
            return False
        try:
            shutil.rmtree(before)
        except OSError as e:
            raise StorageError(f"Cannot remove {before}: {e}") from e
        logger.info("removed preserved pre-restore store")
        return True

    # ── List / Info ──────────────────────────────────────────────────

    def list_backups(self) -> List[BackupRecord]:
        return self.records.list_all()

    def get_backup(self, backup_id: str) -> Optional[BackupRecord]:
        return self.records.get(backup_id)

    def find_by_file(self, path) -> Optional[BackupRecord]:
        """Look up the catalog entry of an artifact by its file name."""
        return self.records.get_by_file_name(Path(path).name)

    def get_statistics(self) -> BackupStatistics:
        backups = self.records.list_all()
        if not backups:
            return BackupStatistics(total_backups=0, total_size=0)
        return BackupStatistics(
            total_backups=len(backups),
            total_size=sum(b.size for b in backups),
            latest=backups[0],
            oldest=backups[-1],
        )

    # ── Delete ───────────────────────────────────────────────────────

    def delete_backup(self, backup_id: str) -> bool:
        """Delete an artifact and its catalog entry. False if it DNE."""
        record = self.records.get(backup_id)
        if not record:
            return False
        try:
            Path(record.path).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Cannot delete backup artifact: {e}") from e
        self.records.delete(backup_id)
        logger.info("backup %s deleted", backup_id)
        return True

    # ── Async surface ────────────────────────────────────────────────

    def submit_create_backup(self, executor, master_key, description=None,
                             backup_type: BackupType = BackupType.MANUAL):
        """Schedule :meth:`create_backup` on ``executor``; returns a Future."""
        key = bytearray(master_key)
        return executor.submit(_with_key_copy, self.create_backup, key, description, backup_type)

    def submit_restore(self, executor, record: BackupRecord, master_key):
        """Schedule :meth:`restore` on ``executor``; returns a Future."""
        key = bytearray(master_key)
        return executor.submit(_with_key_copy, lambda k: self.restore(record, k), key)

    # ── Helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _hot_copy_db(src: Path, dst: Path):
        """Consistent copy of a live SQLite database using the backup API."""
        src_conn = None
        dst_conn = None
        try:
            src_conn = sqlite3.connect(str(src))
            dst_conn = sqlite3.connect(str(dst))
            src_conn.backup(dst_conn)
        finally:
            if dst_conn:
                dst_conn.close()
            if src_conn:
                src_conn.close()

    @staticmethod
    def _write_atomic(path: Path, data: bytes):
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=BACKUP_SUFFIX)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


def _with_key_copy(fn, key: bytearray, *args):
    # the worker owns this copy of the key and zeroes it when done
    try:
        return fn(key, *args)
    finally:
        wipe(key)


def _is_safe_member(name: str) -> bool:
    path = PurePosixPath(name)
    if path.is_absolute() or "\\" in name or ".." in path.parts:
        return False
    return name == DB_FILE_NAME or (path.parts[0] == BLOB_DIR_NAME and len(path.parts) > 1)
