"""
Record store facade over the SQLite models.

Sealed values travel as :class:`Envelope` objects next to the clear metadata;
the store never sees a key or a plaintext secret.
"""

from datetime import date, timedelta
from typing import List, Optional, Tuple

from .connection import DatabaseConnection
from .models import (
    CollectionModel,
    CredentialModel,
    IdentityCardModel,
    MasterCredentialModel,
    NoteModel,
    StoredFileModel,
)
from ..core.exceptions import CollectionExistsError, RecordNotFoundError, StorageError
from ..core.models import (
    Collection,
    Credential,
    IdentityCard,
    MasterCredential,
    SecureNote,
    StoredFile,
    VaultKeyDescriptor,
)
from ..security.envelope import Envelope


class RecordStore:
    """Typed access to every record kind kept in ``vault.db``."""

    def __init__(self, db: DatabaseConnection):
        self.db = db
        self.master = MasterCredentialModel(db)
        self.collections = CollectionModel(db)
        self.credentials = CredentialModel(db)
        self.notes = NoteModel(db)
        self.cards = IdentityCardModel(db)
        self.files = StoredFileModel(db)

    def transaction(self):
        """All model calls made inside the block commit or roll back together."""
        return self.db.get_transaction_context()

    # Master credential

    def get_master_credential(self) -> Optional[MasterCredential]:
        return self.master.get()

    def save_master_credential(self, credential: MasterCredential) -> None:
        self.master.save(credential)

    # Collections

    def create_collection(self, collection: Collection) -> Collection:
        if self.collections.get_by_name(collection.name) is not None:
            raise CollectionExistsError(f"Collection '{collection.name}' already exists")
        return self.collections.create(collection)

    def get_collection(self, name: str) -> Optional[Collection]:
        return self.collections.get_by_name(name)

    def get_collection_by_id(self, collection_id: str) -> Optional[Collection]:
        return self.collections.get(collection_id)

    def list_collections(self) -> List[Collection]:
        return self.collections.list_all()

    def save_collection_descriptor(self, name: str, descriptor: VaultKeyDescriptor) -> None:
        if not self.collections.save_descriptor(name, descriptor):
            raise RecordNotFoundError(f"Collection '{name}' not found")

    def touch_collection(self, collection_id: str) -> None:
        self.collections.touch(collection_id)

    def delete_collection(self, collection_id: str) -> None:
        self.collections.delete(collection_id)

    # Credentials

    def put_credential(self, credential: Credential, envelope: Envelope) -> None:
        self.credentials.put(credential, envelope)

    def get_credential(self, credential_id: str) -> Optional[Tuple[Credential, Envelope]]:
        row = self.credentials.get(credential_id)
        if not row:
            return None
        envelope = Envelope.from_parts(row["encryption_iv"], row["encrypted_password"])
        return self.credentials.row_to_credential(row), envelope

    def list_credentials(self) -> List[Credential]:
        return [self.credentials.row_to_credential(r) for r in self.credentials.list_all()]

    def list_credential_envelopes(self) -> List[Tuple[str, Envelope]]:
        return [
            (r["credential_id"], Envelope.from_parts(r["encryption_iv"], r["encrypted_password"]))
            for r in self.credentials.list_all()
        ]

    def update_credential_envelope(self, credential_id: str, envelope: Envelope) -> None:
        self.credentials.update_envelope(credential_id, envelope)

    def delete_credential(self, credential_id: str) -> bool:
        return self.credentials.delete(credential_id)

    # Notes

    def put_note(self, note: SecureNote, envelope: Envelope) -> None:
        self.notes.put(note, envelope)

    def get_note(self, note_id: str) -> Optional[Tuple[SecureNote, Envelope]]:
        row = self.notes.get(note_id)
        if not row:
            return None
        return self.notes.row_to_note(row), Envelope.from_parts(row["encryption_iv"], row["encrypted_content"])

    def list_notes(self, category=None) -> List[SecureNote]:
        return [self.notes.row_to_note(r) for r in self.notes.list_all(category)]

    def list_note_envelopes(self) -> List[Tuple[str, Envelope]]:
        return [
            (r["note_id"], Envelope.from_parts(r["encryption_iv"], r["encrypted_content"]))
            for r in self.notes.list_all()
        ]

    def update_note_envelope(self, note_id: str, envelope: Envelope) -> None:
        self.notes.update_envelope(note_id, envelope)

    def delete_note(self, note_id: str) -> bool:
        return self.notes.delete(note_id)

    # Identity cards

    def put_card(self, card: IdentityCard, envelope: Envelope) -> None:
        self.cards.put(card, envelope)

    def get_card(self, card_id: str) -> Optional[Tuple[IdentityCard, Envelope]]:
        row = self.cards.get(card_id)
        if not row:
            return None
        return self.cards.row_to_card(row), Envelope.from_parts(row["encryption_iv"], row["encrypted_data"])

    def list_cards(self, card_type=None) -> List[IdentityCard]:
        return [self.cards.row_to_card(r) for r in self.cards.list_all(card_type)]

    def list_expiring_cards(self, days: int) -> List[IdentityCard]:
        threshold = date.today() + timedelta(days=days)
        return [self.cards.row_to_card(r) for r in self.cards.list_expiring_before(threshold)]

    def list_card_envelopes(self) -> List[Tuple[str, Envelope]]:
        return [
            (r["card_id"], Envelope.from_parts(r["encryption_iv"], r["encrypted_data"]))
            for r in self.cards.list_all()
        ]

    def update_card_envelope(self, card_id: str, envelope: Envelope) -> None:
        self.cards.update_envelope(card_id, envelope)

    def delete_card(self, card_id: str) -> bool:
        return self.cards.delete(card_id)

    # Files

    def put_file(self, stored: StoredFile) -> None:
        if self.collections.get(stored.collection_id) is None:
            raise StorageError(f"Collection {stored.collection_id} does not exist")
        self.files.put(stored)

    def get_file(self, file_id: str) -> Optional[StoredFile]:
        return self.files.get(file_id)

    def list_files(self, collection_id: str) -> List[StoredFile]:
        return self.files.list_by_collection(collection_id)

    def list_all_files(self) -> List[StoredFile]:
        return self.files.list_all()

    def delete_file(self, file_id: str) -> bool:
        return self.files.delete(file_id)
