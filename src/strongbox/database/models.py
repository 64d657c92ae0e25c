"""ORM-style helpers for database operations."""

from datetime import date, datetime
import json

from ..core.models import (
    BackupRecord,
    BackupStatus,
    BackupType,
    CardType,
    Collection,
    Credential,
    IdentityCard,
    MasterCredential,
    NoteCategory,
    SecureNote,
    StoredFile,
    VaultKeyDescriptor,
    VaultType,
)


class BaseModel:
    """Base class for DB models."""

    __slots__ = ("db",)

    def __init__(self, db):
        """Initialize with a DatabaseConnection."""
        self.db = db

    def _serialize_json(self, data):
        """Serialize Python data to JSON string."""
        return json.dumps(data) if data else None

    def _deserialize_json(self, data):
        """Deserialize JSON string to Python data."""
        return json.loads(data) if data else None


def _ts(value):
    return value.isoformat() if value is not None else None


def _parse_ts(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _parse_date(value):
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _blob(value):
    return bytes(value) if value is not None else None


class MasterCredentialModel(BaseModel):
    """DB model for the single master credential row."""

    def get(self):
        """Return the MasterCredential or None before initialization."""
        row = self.db.fetch_one("SELECT * FROM master_credential WHERE id = 1")
        if not row:
            return None
        return MasterCredential(
            salt=_blob(row["salt"]),
            verifier=_blob(row["verifier"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def save(self, credential):
        """Insert or replace the master credential."""
        query = """
            INSERT INTO master_credential (id, salt, verifier, created_at, updated_at)
            VALUES (1, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                salt = excluded.salt,
                verifier = excluded.verifier,
                updated_at = excluded.updated_at
        """
        self.db.execute(
            query,
            (
                credential.salt,
                credential.verifier,
                _ts(credential.created_at),
                _ts(credential.updated_at),
            ),
        )
        return True


class CollectionModel(BaseModel):
    """DB model for collections and their key descriptors."""

    def create(self, collection):
        """Create a collection and return it."""
        query = """
            INSERT INTO collections (collection_id, name, vault_type, icon,
                has_separate_secret, salt, verifier, created_at, last_accessed)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        d = collection.descriptor
        params = (
            collection.collection_id,
            collection.name,
            collection.vault_type.value,
            collection.icon,
            d.has_separate_secret,
            d.salt,
            d.verifier,
            _ts(collection.created_at),
            _ts(collection.last_accessed),
        )
        self.db.execute(query, params)
        return self.get_by_name(collection.name)

    def get(self, collection_id):
        """Get collection by ID."""
        row = self.db.fetch_one("SELECT * FROM collections WHERE collection_id = ?", (collection_id,))
        return row_to_collection(row) if row else None

    def get_by_name(self, name):
        """Get collection by name."""
        row = self.db.fetch_one("SELECT * FROM collections WHERE name = ?", (name,))
        return row_to_collection(row) if row else None

    def list_all(self):
        """List all collections."""
        rows = self.db.fetch_all("SELECT * FROM collections ORDER BY created_at, name")
        return [row_to_collection(row) for row in rows]

    def save_descriptor(self, name, descriptor):
        """Replace the key descriptor of a collection. Returns False if it DNE."""
        query = """
            UPDATE collections SET has_separate_secret = ?, salt = ?, verifier = ?
            WHERE name = ?
        """
        count = self.db.execute(
            query, (descriptor.has_separate_secret, descriptor.salt, descriptor.verifier, name)
        )
        return count > 0

    def touch(self, collection_id):
        """Record an access time."""
        query = "UPDATE collections SET last_accessed = ? WHERE collection_id = ?"
        self.db.execute(query, (_ts(datetime.utcnow()), collection_id))
        return True

    def delete(self, collection_id):
        """Delete collection by ID (cascades to its file records)."""
        self.db.execute("DELETE FROM collections WHERE collection_id = ?", (collection_id,))
        return True


def row_to_collection(row):
    """Convert a row dict to a Collection."""
    has_secret = bool(row["has_separate_secret"])
    descriptor = VaultKeyDescriptor(
        has_secret,
        _blob(row["salt"]) if has_secret else None,
        _blob(row["verifier"]) if has_secret else None,
    )
    return Collection(
        collection_id=row["collection_id"],
        name=row["name"],
        vault_type=VaultType(row["vault_type"]),
        icon=row["icon"],
        descriptor=descriptor,
        created_at=_parse_ts(row["created_at"]),
        last_accessed=_parse_ts(row["last_accessed"]),
    )


class CredentialModel(BaseModel):
    """DB model for credentials. Rows carry the sealed password, never plaintext."""

    def put(self, credential, envelope):
        """Insert or replace a credential with its sealed password."""
        query = """
            INSERT OR REPLACE INTO credentials (credential_id, title, username, email, url,
                encrypted_password, encryption_iv, notes, tags, is_favorite,
                created_at, last_modified)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            credential.credential_id,
            credential.title,
            credential.username,
            credential.email,
            credential.url,
            envelope.ciphertext,
            envelope.iv,
            credential.notes,
            self._serialize_json(credential.tags),
            credential.is_favorite,
            _ts(credential.created_at),
            _ts(credential.last_modified),
        )
        self.db.execute(query, params)
        return True

    def get(self, credential_id):
        """Get a raw credential row by ID."""
        return self.db.fetch_one("SELECT * FROM credentials WHERE credential_id = ?", (credential_id,))

    def list_all(self):
        """List all credential rows, ordered by title."""
        return self.db.fetch_all("SELECT * FROM credentials ORDER BY title COLLATE NOCASE")

    def update_envelope(self, credential_id, envelope):
        """Swap only the sealed password (re-encryption)."""
        query = "UPDATE credentials SET encrypted_password = ?, encryption_iv = ? WHERE credential_id = ?"
        self.db.execute(query, (envelope.ciphertext, envelope.iv, credential_id))
        return True

    def delete(self, credential_id):
        """Delete credential by ID."""
        return self.db.execute("DELETE FROM credentials WHERE credential_id = ?", (credential_id,)) > 0

    def row_to_credential(self, row):
        """Convert a row to a Credential without its password."""
        return Credential(
            credential_id=row["credential_id"],
            title=row["title"],
            username=row["username"],
            email=row["email"],
            url=row["url"],
            notes=row["notes"],
            tags=self._deserialize_json(row["tags"]) or [],
            is_favorite=bool(row["is_favorite"]),
            created_at=_parse_ts(row["created_at"]),
            last_modified=_parse_ts(row["last_modified"]),
        )


class NoteModel(BaseModel):
    """DB model for secure notes."""

    def put(self, note, envelope):
        """Insert or replace a note with its sealed body."""
        query = """
            INSERT OR REPLACE INTO secure_notes (note_id, title, encrypted_content, encryption_iv,
                category, tags, is_favorite, color_code, created_at, last_modified)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            note.note_id,
            note.title,
            envelope.ciphertext,
            envelope.iv,
            note.category.value,
            self._serialize_json(note.tags),
            note.is_favorite,
            note.color_code,
            _ts(note.created_at),
            _ts(note.last_modified),
        )
        self.db.execute(query, params)
        return True

    def get(self, note_id):
        """Get a raw note row by ID."""
        return self.db.fetch_one("SELECT * FROM secure_notes WHERE note_id = ?", (note_id,))

    def list_all(self, category=None):
        """List note rows, optionally filtered by category."""
        if category is not None:
            return self.db.fetch_all(
                "SELECT * FROM secure_notes WHERE category = ? ORDER BY last_modified DESC",
                (category.value,),
            )
        return self.db.fetch_all("SELECT * FROM secure_notes ORDER BY last_modified DESC")

    def update_envelope(self, note_id, envelope):
        """Swap only the sealed body (re-encryption)."""
        query = "UPDATE secure_notes SET encrypted_content = ?, encryption_iv = ? WHERE note_id = ?"
        self.db.execute(query, (envelope.ciphertext, envelope.iv, note_id))
        return True

    def delete(self, note_id):
        """Delete note by ID."""
        return self.db.execute("DELETE FROM secure_notes WHERE note_id = ?", (note_id,)) > 0

    def row_to_note(self, row):
        """Convert a row to a SecureNote without its content."""
        return SecureNote(
            note_id=row["note_id"],
            title=row["title"],
            category=NoteCategory(row["category"]),
            tags=self._deserialize_json(row["tags"]) or [],
            is_favorite=bool(row["is_favorite"]),
            color_code=row["color_code"],
            created_at=_parse_ts(row["created_at"]),
            last_modified=_parse_ts(row["last_modified"]),
        )


class IdentityCardModel(BaseModel):
    """DB model for identity cards."""

    def put(self, card, envelope):
        """Insert or replace a card with its sealed field map."""
        query = """
            INSERT OR REPLACE INTO identity_cards (card_id, card_type, card_name, encrypted_data,
                encryption_iv, card_number_last4, issuing_country, issuing_authority,
                issue_date, expiry_date, tags, created_at, last_modified)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            card.card_id,
            card.card_type.value,
            card.card_name,
            envelope.ciphertext,
            envelope.iv,
            card.card_number_last4,
            card.issuing_country,
            card.issuing_authority,
            card.issue_date.isoformat() if card.issue_date else None,
            card.expiry_date.isoformat() if card.expiry_date else None,
            self._serialize_json(card.tags),
            _ts(card.created_at),
            _ts(card.last_modified),
        )
        self.db.execute(query, params)
        return True

    def get(self, card_id):
        """Get a raw card row by ID."""
        return self.db.fetch_one("SELECT * FROM identity_cards WHERE card_id = ?", (card_id,))

    def list_all(self, card_type=None):
        """List card rows, optionally filtered by type."""
        if card_type is not None:
            return self.db.fetch_all(
                "SELECT * FROM identity_cards WHERE card_type = ? ORDER BY card_name",
                (card_type.value,),
            )
        return self.db.fetch_all("SELECT * FROM identity_cards ORDER BY card_name")

    def list_expiring_before(self, threshold):
        """List card rows whose expiry date is on or before ``threshold``."""
        query = """
            SELECT * FROM identity_cards
            WHERE expiry_date IS NOT NULL AND expiry_date <= ?
            ORDER BY expiry_date
        """
        return self.db.fetch_all(query, (threshold.isoformat(),))

    def update_envelope(self, card_id, envelope):
        """Swap only the sealed field map (re-encryption)."""
        query = "UPDATE identity_cards SET encrypted_data = ?, encryption_iv = ? WHERE card_id = ?"
        self.db.execute(query, (envelope.ciphertext, envelope.iv, card_id))
        return True

    def delete(self, card_id):
        """Delete card by ID."""
        return self.db.execute("DELETE FROM identity_cards WHERE card_id = ?", (card_id,)) > 0

    def row_to_card(self, row):
        """Convert a row to an IdentityCard without its field map."""
        return IdentityCard(
            card_id=row["card_id"],
            card_type=CardType(row["card_type"]),
            card_name=row["card_name"],
            card_number_last4=row["card_number_last4"],
            issuing_country=row["issuing_country"],
            issuing_authority=row["issuing_authority"],
            issue_date=_parse_date(row["issue_date"]),
            expiry_date=_parse_date(row["expiry_date"]),
            tags=self._deserialize_json(row["tags"]) or [],
            created_at=_parse_ts(row["created_at"]),
            last_modified=_parse_ts(row["last_modified"]),
        )


class StoredFileModel(BaseModel):
    """DB model for file metadata; payloads live in the blob store."""

    def put(self, stored):
        """Insert or replace file metadata."""
        query = """
            INSERT OR REPLACE INTO stored_files (file_id, collection_id, original_name, blob_name,
                original_size, encrypted_size, mime_type, checksum, uploaded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            stored.file_id,
            stored.collection_id,
            stored.original_name,
            stored.blob_name,
            stored.original_size,
            stored.encrypted_size,
            stored.mime_type,
            stored.checksum,
            _ts(stored.uploaded_at),
        )
        self.db.execute(query, params)
        return True

    def get(self, file_id):
        """Get file metadata by ID."""
        row = self.db.fetch_one("SELECT * FROM stored_files WHERE file_id = ?", (file_id,))
        return row_to_stored_file(row) if row else None

    def list_by_collection(self, collection_id):
        """List files of a collection, newest first."""
        rows = self.db.fetch_all(
            "SELECT * FROM stored_files WHERE collection_id = ? ORDER BY uploaded_at DESC",
            (collection_id,),
        )
        return [row_to_stored_file(row) for row in rows]

    def list_all(self):
        """List every file record."""
        return [row_to_stored_file(row) for row in self.db.fetch_all("SELECT * FROM stored_files")]

    def delete(self, file_id):
        """Delete file metadata by ID."""
        return self.db.execute("DELETE FROM stored_files WHERE file_id = ?", (file_id,)) > 0


def row_to_stored_file(row):
    """Convert a row dict to StoredFile."""
    return StoredFile(
        file_id=row["file_id"],
        collection_id=row["collection_id"],
        original_name=row["original_name"],
        blob_name=row["blob_name"],
        original_size=row["original_size"],
        encrypted_size=row["encrypted_size"],
        mime_type=row["mime_type"],
        checksum=row["checksum"],
        uploaded_at=_parse_ts(row["uploaded_at"]),
    )


class BackupModel(BaseModel):
    """DB model for the backup catalog."""

    def create(self, record):
        """Insert a catalog entry."""
        query = """
            INSERT INTO backups (backup_id, file_name, path, size, checksum, description,
                backup_type, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            record.backup_id,
            record.file_name,
            record.path,
            record.size,
            record.checksum,
            record.description,
            record.backup_type.value,
            record.status.value,
            _ts(record.created_at),
        )
        self.db.execute(query, params)
        return self.get(record.backup_id)

    def get(self, backup_id):
        """Get a catalog entry by ID."""
        row = self.db.fetch_one("SELECT * FROM backups WHERE backup_id = ?", (backup_id,))
        return row_to_backup(row) if row else None

    def get_by_file_name(self, file_name):
        """Get a catalog entry by artifact file name."""
        row = self.db.fetch_one("SELECT * FROM backups WHERE file_name = ?", (file_name,))
        return row_to_backup(row) if row else None

    def list_all(self):
        """List catalog entries, newest first."""
        rows = self.db.fetch_all("SELECT * FROM backups ORDER BY created_at DESC")
        return [row_to_backup(row) for row in rows]

    def update_status(self, backup_id, status):
        """Set the status of a catalog entry."""
        self.db.execute("UPDATE backups SET status = ? WHERE backup_id = ?", (status.value, backup_id))
        return True

    def delete(self, backup_id):
        """Delete a catalog entry."""
        return self.db.execute("DELETE FROM backups WHERE backup_id = ?", (backup_id,)) > 0


def row_to_backup(row):
    """Convert a row dict to BackupRecord."""
    return BackupRecord(
        backup_id=row["backup_id"],
        file_name=row["file_name"],
        path=row["path"],
        size=row["size"],
        checksum=row["checksum"],
        description=row["description"],
        backup_type=BackupType(row["backup_type"]),
        status=BackupStatus(row["status"]),
        created_at=_parse_ts(row["created_at"]),
    )
