"""
VaultManager for Strongbox: one object wiring the record store, the blob
store, the key hierarchy, the sealing adapters, the session and backups.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union
import logging
import mimetypes

from ..config import StrongboxConfig
from ..database.connection import DatabaseConnection
from ..database.schema import get_catalog_schema
from ..database.store import RecordStore
from ..security.encryption import FileAdapter, IdentityCardAdapter, NoteAdapter, PasswordAdapter
from ..security.envelope import Envelope
from ..security.kdf import derive_key
from ..security.memory import Secret, to_mutable, wipe
from ..security.rng import SecureRandom
from ..security.session import Session, create_master_credential, derive_master_key
from ..security.vault_keys import VaultKeyHierarchy
from .backup import BackupManager
from .exceptions import (
    AlreadyInitializedError,
    NotInitializedError,
    RecordNotFoundError,
    StorageError,
)
from .models import (
    DEFAULT_COLLECTIONS,
    BackupRecord,
    BackupStatistics,
    BackupType,
    CardType,
    Collection,
    Credential,
    IdentityCard,
    KeyState,
    NoteCategory,
    RestoreReport,
    SecureNote,
    StoredFile,
    VaultKeyDescriptor,
    VaultType,
    last4_of,
)
from .results import Result
from .storage import BlobStore

logger = logging.getLogger(__name__)


class VaultManager:
    """High-level vault operations over storage, crypto and backups."""

    def __init__(self, config: Optional[StrongboxConfig] = None, rng: Optional[SecureRandom] = None):
        self.config = config or StrongboxConfig.from_env()
        self.rng = rng or SecureRandom()

        self.db = DatabaseConnection(self.config.db_path)
        self.db.initialize()
        self.store = RecordStore(self.db)
        self.blobs = BlobStore(self.config.blob_dir)
        self.keys = VaultKeyHierarchy(self.store, self.rng)
        self.session = Session()

        self.passwords = PasswordAdapter(self.rng)
        self.notes = NoteAdapter(self.rng)
        self.cards = IdentityCardAdapter(self.rng)
        self.files = FileAdapter(self.rng)

        catalog = DatabaseConnection(self.config.catalog_path, schema=get_catalog_schema)
        self.backups = BackupManager(
            self.config.store_dir, self.config.backup_dir, catalog=catalog, rng=self.rng
        )

    # ── Master password ──────────────────────────────────────────────

    def is_initialized(self) -> bool:
        return self.store.get_master_credential() is not None

    def initialize(self, password: Secret) -> None:
        """Store the master credential and create the default collections."""
        if self.is_initialized():
            raise AlreadyInitializedError("Vault is already initialized")

        credential = create_master_credential(password, self.rng)
        with self.store.transaction():
            self.store.save_master_credential(credential)
            for vault_type in DEFAULT_COLLECTIONS:
                self.store.create_collection(
                    Collection(name=vault_type.display_name, vault_type=vault_type, icon=vault_type.icon)
                )
        logger.info("vault initialized at %s", self.config.root)

    def login(self, password: Secret) -> Result[None]:
        """Unlock the session with the master password."""
        credential = self.store.get_master_credential()
        if credential is None:
            wipe(password)
            raise NotInitializedError("Vault has not been initialized")
        result = Result.capture(self.session.unlock_with_password, password, credential)
        if result.ok:
            logger.info("session unlocked")
        else:
            logger.warning("login failed: %s", result.outcome.value)
        return result

    def logout(self) -> None:
        self.session.lock()
        logger.info("session locked")

    @property
    def is_unlocked(self) -> bool:
        return self.session.is_unlocked

    def _master_key(self) -> bytearray:
        return self.session.get_master_key()

    def change_master_password(self, current: Secret, new: Secret) -> Result[None]:
        """
        Replace the master password and re-encrypt everything sealed under it.

        New blobs are written first, then every record and the credential are
        swapped in one transaction, then the old blobs are removed. A failure
        before the commit leaves the vault on the old password.
        """
        credential = self.store.get_master_credential()
        if credential is None:
            wipe(current)
            wipe(new)
            raise NotInitializedError("Vault has not been initialized")
        return Result.capture(self._change_master_password, current, new, credential)

    def _change_master_password(self, current, new, credential):
        material = to_mutable(new)
        wipe(new)
        try:
            old_key = derive_master_key(current, credential)
        except Exception:
            wipe(material)
            raise
        new_key = None
        written = []
        try:
            new_credential = create_master_credential(bytearray(material), self.rng)
            new_key = derive_key(material, new_credential.salt)

            credentials = [(i, self.passwords.seal(self.passwords.open(e, old_key), new_key))
                           for i, e in self.store.list_credential_envelopes()]
            notes = [(i, self.notes.seal(self.notes.open(e, old_key), new_key))
                     for i, e in self.store.list_note_envelopes()]
            cards = [(i, self.cards.seal(self.cards.open(e, old_key), new_key))
                     for i, e in self.store.list_card_envelopes()]

            master_collections = [
                c for c in self.store.list_collections() if c.descriptor.state is KeyState.USES_MASTER_KEY
            ]
            files = []
            for collection in master_collections:
                files.extend(self._reseal_files(collection, old_key, new_key, written))

            with self.store.transaction():
                for credential_id, envelope in credentials:
                    self.store.update_credential_envelope(credential_id, envelope)
                for note_id, envelope in notes:
                    self.store.update_note_envelope(note_id, envelope)
                for card_id, envelope in cards:
                    self.store.update_card_envelope(card_id, envelope)
                for stored, _ in files:
                    self.store.put_file(stored)
                self.store.save_master_credential(new_credential)
        except Exception:
            for name in written:
                self.blobs.delete(name)
            if new_key is not None:
                wipe(new_key)
            raise
        finally:
            wipe(material)
            wipe(old_key)

        for _, old_blob in files:
            self.blobs.delete(old_blob)
        self.session.unlock_with_key(new_key)
        logger.info(
            "master password changed (%d credentials, %d notes, %d cards, %d files re-encrypted)",
            len(credentials), len(notes), len(cards), len(files),
        )
        return None

    def _reseal_files(self, collection: Collection, old_key, new_key, written: List[str]):
        """Write new blobs for every file of ``collection``; returns (updated record, old blob) pairs."""
        resealed = []
        for stored in self.store.list_files(collection.collection_id):
            data = self.files.open(
                Envelope.from_bytes(self.blobs.read(stored.blob_name)),
                old_key,
                checksum=stored.checksum,
                file_id=stored.file_id,
            )
            sealed = self.files.seal(data, new_key)
            new_name = self.blobs.new_name(collection.collection_id)
            self.blobs.write(new_name, sealed.envelope.to_bytes())
            written.append(new_name)
            old_name = stored.blob_name
            stored.blob_name = new_name
            stored.encrypted_size = sealed.size
            resealed.append((stored, old_name))
        return resealed

    # ── Credentials ──────────────────────────────────────────────────

    def add_credential(
        self,
        title: str,
        password: str,
        username: Optional[str] = None,
        email: Optional[str] = None,
        url: Optional[str] = None,
        notes: Optional[str] = None,
        tags: Optional[List[str]] = None,
        is_favorite: bool = False,
    ) -> Credential:
        credential = Credential(
            title=title,
            username=username,
            email=email,
            url=url,
            notes=notes,
            tags=list(tags or []),
            is_favorite=is_favorite,
        )
        self.store.put_credential(credential, self.passwords.seal(password, self._master_key()))
        logger.info("credential %s added", credential.credential_id)
        return credential

    def get_credential(self, credential_id: str) -> Result[Credential]:
        """Load a credential with its password decrypted."""
        return Result.capture(self._get_credential, credential_id)

    def _get_credential(self, credential_id):
        found = self.store.get_credential(credential_id)
        if found is None:
            raise RecordNotFoundError(f"Credential {credential_id} not found")
        credential, envelope = found
        credential.password = self.passwords.open(envelope, self._master_key())
        return credential

    def update_credential(self, credential: Credential) -> Result[Credential]:
        """Save metadata; the password is re-sealed only when ``credential.password`` is set."""
        return Result.capture(self._update_credential, credential)

    def _update_credential(self, credential):
        found = self.store.get_credential(credential.credential_id)
        if found is None:
            raise RecordNotFoundError(f"Credential {credential.credential_id} not found")
        _, envelope = found
        if credential.password is not None:
            envelope = self.passwords.seal(credential.password, self._master_key())
        credential.last_modified = datetime.utcnow()
        self.store.put_credential(credential, envelope)
        return credential

    def delete_credential(self, credential_id: str) -> bool:
        return self.store.delete_credential(credential_id)

    def list_credentials(self) -> List[Credential]:
        """All credentials, passwords left sealed."""
        return self.store.list_credentials()

    # ── Secure notes ─────────────────────────────────────────────────

    def add_note(
        self,
        title: str,
        content: str,
        category: NoteCategory = NoteCategory.PERSONAL,
        tags: Optional[List[str]] = None,
        is_favorite: bool = False,
        color_code: Optional[str] = None,
    ) -> SecureNote:
        note = SecureNote(
            title=title,
            category=category,
            tags=list(tags or []),
            is_favorite=is_favorite,
            color_code=color_code or category.default_color,
        )
        self.store.put_note(note, self.notes.seal(content, self._master_key()))
        logger.info("note %s added", note.note_id)
        return note

    def get_note(self, note_id: str) -> Result[SecureNote]:
        return Result.capture(self._get_note, note_id)

    def _get_note(self, note_id):
        found = self.store.get_note(note_id)
        if found is None:
            raise RecordNotFoundError(f"Note {note_id} not found")
        note, envelope = found
        note.content = self.notes.open(envelope, self._master_key())
        return note

    def update_note(self, note: SecureNote) -> Result[SecureNote]:
        return Result.capture(self._update_note, note)

    def _update_note(self, note):
        found = self.store.get_note(note.note_id)
        if found is None:
            raise RecordNotFoundError(f"Note {note.note_id} not found")
        _, envelope = found
        if note.content is not None:
            envelope = self.notes.seal(note.content, self._master_key())
        note.last_modified = datetime.utcnow()
        self.store.put_note(note, envelope)
        return note

    def delete_note(self, note_id: str) -> bool:
        return self.store.delete_note(note_id)

    def list_notes(self, category: Optional[NoteCategory] = None) -> List[SecureNote]:
        return self.store.list_notes(category)

    # ── Identity cards ───────────────────────────────────────────────

    def add_card(
        self,
        card_type: CardType,
        card_name: str,
        card_data: dict,
        issuing_country: Optional[str] = None,
        issuing_authority: Optional[str] = None,
        issue_date=None,
        expiry_date=None,
        tags: Optional[List[str]] = None,
    ) -> IdentityCard:
        card = IdentityCard(
            card_type=card_type,
            card_name=card_name,
            card_number_last4=last4_of(card_type, card_data),
            issuing_country=issuing_country,
            issuing_authority=issuing_authority,
            issue_date=issue_date,
            expiry_date=expiry_date,
            tags=list(tags or []),
        )
        self.store.put_card(card, self.cards.seal(card_data, self._master_key()))
        logger.info("identity card %s added", card.card_id)
        return card

    def get_card(self, card_id: str) -> Result[IdentityCard]:
        return Result.capture(self._get_card, card_id)

    def _get_card(self, card_id):
        found = self.store.get_card(card_id)
        if found is None:
            raise RecordNotFoundError(f"Identity card {card_id} not found")
        card, envelope = found
        card.card_data = self.cards.open(envelope, self._master_key())
        return card

    def update_card(self, card: IdentityCard) -> Result[IdentityCard]:
        """Save a card; an empty ``card_data`` keeps the sealed fields as they are."""
        return Result.capture(self._update_card, card)

    def _update_card(self, card):
        found = self.store.get_card(card.card_id)
        if found is None:
            raise RecordNotFoundError(f"Identity card {card.card_id} not found")
        _, envelope = found
        if card.card_data:
            envelope = self.cards.seal(card.card_data, self._master_key())
            card.card_number_last4 = last4_of(card.card_type, card.card_data)
        card.last_modified = datetime.utcnow()
        self.store.put_card(card, envelope)
        return card

    def delete_card(self, card_id: str) -> bool:
        return self.store.delete_card(card_id)

    def list_cards(self, card_type: Optional[CardType] = None) -> List[IdentityCard]:
        return self.store.list_cards(card_type)

    def expiring_cards(self, days: int = 30) -> List[IdentityCard]:
        """Cards expiring within ``days`` (already expired ones included)."""
        return self.store.list_expiring_cards(days)

    # ── Collections ──────────────────────────────────────────────────

    def create_collection(
        self,
        name: str,
        vault_type: VaultType = VaultType.CUSTOM,
        secret: Optional[Secret] = None,
        icon: Optional[str] = None,
    ) -> Collection:
        """Create a collection, optionally protected by its own secret."""
        descriptor = self.keys.describe_secret(secret) if secret is not None else VaultKeyDescriptor.master()
        collection = self.store.create_collection(
            Collection(name=name, vault_type=vault_type, icon=icon or vault_type.icon, descriptor=descriptor)
        )
        logger.info("collection %r created (%s)", name, descriptor.state.value)
        return collection

    def list_collections(self) -> List[Collection]:
        return self.store.list_collections()

    def unlock_collection(self, name: str, secret: Optional[Secret] = None) -> Result[bytearray]:
        """
        Resolve the key of collection ``name``.

        For a collection on the master key the session's master key object
        itself is returned; only wipe a returned key that is not it.
        """
        result = Result.capture(self.keys.resolve_key, name, self._master_key(), secret)
        if result.ok:
            collection = self.store.get_collection(name)
            self.store.touch_collection(collection.collection_id)
        return result

    def set_collection_secret(
        self, name: str, new_secret: Optional[Secret], current_secret: Optional[Secret] = None
    ) -> Result[Collection]:
        """
        Give a collection a new secret (or ``None`` to return it to the master key).

        Every file in the collection is re-encrypted under the new key before
        the descriptor is swapped.
        """
        return Result.capture(self._set_collection_secret, name, new_secret, current_secret)

    def _set_collection_secret(self, name, new_secret, current_secret):
        master = self._master_key()
        try:
            old_key = self.keys.resolve_key(name, master, current_secret)
        except Exception:
            wipe(new_secret)
            raise
        collection = self.store.get_collection(name)
        new_key = None
        written = []
        try:
            if new_secret is None:
                descriptor, new_key = VaultKeyDescriptor.master(), master
            else:
                descriptor, new_key = self.keys.prepare_secret(new_secret)

            resealed = self._reseal_files(collection, old_key, new_key, written)
            with self.store.transaction():
                for stored, _ in resealed:
                    self.store.put_file(stored)
                self.store.save_collection_descriptor(name, descriptor)
        except Exception:
            for blob_name in written:
                self.blobs.delete(blob_name)
            raise
        finally:
            self._release(old_key, master)
            self._release(new_key, master)

        for _, old_blob in resealed:
            self.blobs.delete(old_blob)
        logger.info(
            "collection %r re-keyed to %s (%d files)", name, descriptor.state.value, len(resealed)
        )
        collection.descriptor = descriptor
        return collection

    def delete_collection(self, name: str, secret: Optional[Secret] = None) -> Result[int]:
        """Delete a collection with all its files; returns the number of files removed."""
        return Result.capture(self._delete_collection, name, secret)

    def _delete_collection(self, name, secret):
        master = self._master_key()
        self._release(self.keys.resolve_key(name, master, secret), master)
        collection = self.store.get_collection(name)
        files = self.store.list_files(collection.collection_id)
        with self.store.transaction():
            for stored in files:
                self.store.delete_file(stored.file_id)
            self.store.delete_collection(collection.collection_id)
        self.blobs.delete_collection(collection.collection_id)
        logger.info("collection %r deleted (%d files)", name, len(files))
        return len(files)

    @staticmethod
    def _release(key, master) -> None:
        # a collection on the master key hands back the session key itself
        if key is not None and key is not master:
            wipe(key)

    # ── Files ────────────────────────────────────────────────────────

    def add_file(
        self,
        collection_name: str,
        source: Union[str, Path, bytes, bytearray],
        secret: Optional[Secret] = None,
        name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> Result[StoredFile]:
        """Encrypt a file (path or raw bytes) into a collection."""
        return Result.capture(self._add_file, collection_name, source, secret, name, mime_type)

    def _add_file(self, collection_name, source, secret, name, mime_type):
        if isinstance(source, (bytes, bytearray)):
            data = source
            if not name:
                raise ValueError("A name is required when adding raw bytes")
        else:
            src = Path(source).expanduser()
            try:
                data = bytearray(src.read_bytes())
            except OSError as e:
                wipe(secret)
                raise StorageError(f"Cannot read source file {src}: {e}") from e
            name = name or src.name
        if mime_type is None:
            mime_type = mimetypes.guess_type(name)[0]

        master = self._master_key()
        key = self.keys.resolve_key(collection_name, master, secret)
        collection = self.store.get_collection(collection_name)
        original_size = len(data)
        try:
            sealed = self.files.seal(data, key)
        finally:
            self._release(key, master)

        blob_name = self.blobs.new_name(collection.collection_id)
        self.blobs.write(blob_name, sealed.envelope.to_bytes())
        stored = StoredFile(
            collection_id=collection.collection_id,
            original_name=name,
            blob_name=blob_name,
            original_size=original_size,
            encrypted_size=sealed.size,
            checksum=sealed.checksum,
            mime_type=mime_type,
        )
        try:
            self.store.put_file(stored)
        except StorageError:
            self.blobs.delete(blob_name)
            raise
        self.store.touch_collection(collection.collection_id)
        logger.info("file %s added to collection %r (%d bytes)", stored.file_id, collection_name, original_size)
        return stored

    def read_file(self, file_id: str, secret: Optional[Secret] = None) -> Result[bytes]:
        """Decrypt a stored file and check its integrity tag."""
        return Result.capture(self._read_file, file_id, secret)

    def _read_file(self, file_id, secret):
        master = self._master_key()
        stored = self.store.get_file(file_id)
        if stored is None:
            wipe(secret)
            raise RecordNotFoundError(f"File {file_id} not found")
        collection = self.store.get_collection_by_id(stored.collection_id)
        key = self.keys.resolve_for(collection, master, secret)
        try:
            blob = self.blobs.read(stored.blob_name)
            data = self.files.open(
                Envelope.from_bytes(blob), key, checksum=stored.checksum, file_id=stored.file_id
            )
        finally:
            self._release(key, master)
        try:
            return bytes(data)
        finally:
            wipe(data)

    def export_file(
        self, file_id: str, destination: Union[str, Path], secret: Optional[Secret] = None
    ) -> Result[Path]:
        """Decrypt a stored file to ``destination``."""
        result = self.read_file(file_id, secret)
        if not result.ok:
            return result
        dest = Path(destination).expanduser()
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(result.value)
        except OSError as e:
            raise StorageError(f"Cannot export file to {dest}: {e}") from e
        return Result.success(dest)

    def delete_file(self, file_id: str) -> bool:
        stored = self.store.get_file(file_id)
        if stored is None:
            return False
        self.store.delete_file(file_id)
        self.blobs.delete(stored.blob_name)
        logger.info("file %s deleted", file_id)
        return True

    def list_files(self, collection_name: str) -> List[StoredFile]:
        """File metadata of a collection; nothing is decrypted."""
        collection = self.store.get_collection(collection_name)
        if collection is None:
            return []
        return self.store.list_files(collection.collection_id)

    # ── Backups ──────────────────────────────────────────────────────

    def create_backup(
        self, description: Optional[str] = None, backup_type: BackupType = BackupType.MANUAL
    ) -> Result[BackupRecord]:
        return self.backups.create_backup(self._master_key(), description, backup_type)

    def verify_backup(self, backup_id: str) -> bool:
        record = self.backups.get_backup(backup_id)
        return record is not None and self.backups.verify(record)

    def restore_backup(self, backup_id: str) -> Result[RestoreReport]:
        """
        Restore the store from a backup sealed under the current master key.

        Database connections are closed around the swap. If the restored
        store carries a different master credential the session is locked.
        """
        record = self.backups.get_backup(backup_id)
        if record is None:
            return Result.from_error(RecordNotFoundError(f"Backup {backup_id} not found"))
        master = self._master_key()
        before = self.store.get_master_credential()

        self.db.close_all()
        result = self.backups.restore(record, master)
        if result.ok:
            after = self.store.get_master_credential()
            if after is None or before is None or after.salt != before.salt:
                self.session.lock()
                logger.info("restored store has a different master credential; session locked")
        return result

    def cleanup_before_restore(self) -> bool:
        return self.backups.cleanup_before_restore()

    def list_backups(self) -> List[BackupRecord]:
        return self.backups.list_backups()

    def delete_backup(self, backup_id: str) -> bool:
        return self.backups.delete_backup(backup_id)

    def backup_statistics(self) -> BackupStatistics:
        return self.backups.get_statistics()

    def close(self) -> None:
        """Lock the session and close every database connection."""
        self.session.lock()
        self.db.close_all()
        self.backups.catalog.close_all()
