"""Unit tests for the VaultManager facade."""

from datetime import date, timedelta
from pathlib import Path

import pytest

from strongbox.config import StrongboxConfig
from strongbox.core.exceptions import (
    AlreadyInitializedError,
    CollectionExistsError,
    NotInitializedError,
    SessionLockedError,
)
from strongbox.core.models import CardType, KeyState, NoteCategory, VaultType
from strongbox.core.results import Outcome
from strongbox.core.vault_manager import VaultManager


MASTER = "Tr0ub4dor&3"


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def fresh(tmp_path):
    """A VaultManager over an empty root."""
    vm = VaultManager(StrongboxConfig(root=tmp_path / "vault"))
    yield vm
    vm.close()


@pytest.fixture
def vm(fresh):
    """An initialized, unlocked VaultManager."""
    fresh.initialize(MASTER)
    assert fresh.login(MASTER).ok
    return fresh


# ==============================================================================
# Tests: Master password
# ==============================================================================

def test_initialize_creates_default_collections(fresh):
    assert fresh.is_initialized() is False
    fresh.initialize(MASTER)
    assert fresh.is_initialized() is True
    names = [c.name for c in fresh.list_collections()]
    assert sorted(names) == ["Documents", "Images", "Others", "PDFs"]
    assert all(c.descriptor.state is KeyState.USES_MASTER_KEY for c in fresh.list_collections())


def test_initialize_twice_is_rejected(vm):
    with pytest.raises(AlreadyInitializedError):
        vm.initialize("other")


def test_login_before_initialize(fresh):
    with pytest.raises(NotInitializedError):
        fresh.login(MASTER)


def test_login_wrong_password(fresh):
    fresh.initialize(MASTER)
    result = fresh.login("wrong")
    assert result.outcome is Outcome.AUTH_FAILURE
    assert fresh.is_unlocked is False


def test_logout_locks(vm):
    vm.logout()
    assert not vm.is_unlocked
    with pytest.raises(SessionLockedError):
        vm.add_credential("Mail", "pw")


# ==============================================================================
# Tests: Records
# ==============================================================================

def test_credential_crud(vm):
    credential = vm.add_credential("Mail", "hunter2", username="ada", tags=["mail"])
    assert credential.password is None

    loaded = vm.get_credential(credential.credential_id).unwrap()
    assert loaded.password == "hunter2"
    assert loaded.username == "ada"

    loaded.password = "hunter3"
    loaded.title = "Mail (new)"
    assert vm.update_credential(loaded).ok
    again = vm.get_credential(credential.credential_id).unwrap()
    assert again.password == "hunter3"
    assert again.title == "Mail (new)"

    # metadata-only update keeps the sealed password
    again.password = None
    again.url = "https://mail.example"
    vm.update_credential(again)
    assert vm.get_credential(credential.credential_id).unwrap().password == "hunter3"

    assert [c.title for c in vm.list_credentials()] == ["Mail (new)"]
    assert all(c.password is None for c in vm.list_credentials())
    assert vm.delete_credential(credential.credential_id) is True
    assert vm.get_credential(credential.credential_id).outcome is Outcome.NOT_FOUND


def test_note_crud(vm):
    note = vm.add_note("Safe", "launch codes", category=NoteCategory.WORK)
    assert note.color_code == NoteCategory.WORK.default_color
    assert vm.get_note(note.note_id).unwrap().content == "launch codes"

    note.content = "new codes"
    vm.update_note(note)
    assert vm.get_note(note.note_id).unwrap().content == "new codes"
    assert [n.note_id for n in vm.list_notes(NoteCategory.WORK)] == [note.note_id]
    assert vm.list_notes(NoteCategory.MEDICAL) == []
    assert vm.delete_note(note.note_id) is True
    assert vm.update_note(note).outcome is Outcome.NOT_FOUND


def test_card_crud_and_expiry(vm):
    card = vm.add_card(
        CardType.CREDIT_CARD,
        "Visa",
        {"cardNumber": "4111111111111111", "cvv": "123"},
        expiry_date=date.today() + timedelta(days=5),
    )
    assert card.card_number_last4 == "1111"
    loaded = vm.get_card(card.card_id).unwrap()
    assert loaded.card_data == {"cardNumber": "4111111111111111", "cvv": "123"}
    assert loaded.card_number_last4 == "1111"

    loaded.card_data = {"cardNumber": "5500000000000004"}
    vm.update_card(loaded)
    assert vm.get_card(card.card_id).unwrap().card_number_last4 == "0004"

    assert [c.card_id for c in vm.expiring_cards(30)] == [card.card_id]
    assert [c.card_id for c in vm.list_cards(CardType.CREDIT_CARD)] == [card.card_id]
    assert vm.delete_card(card.card_id) is True
    assert vm.get_card(card.card_id).outcome is Outcome.NOT_FOUND


def test_tampered_record_is_decryption_failure(vm):
    credential = vm.add_credential("Mail", "hunter2")
    vm.db.execute(
        "UPDATE credentials SET encrypted_password = ? WHERE credential_id = ?",
        (b"\x00" * 15, credential.credential_id),
    )
    assert vm.get_credential(credential.credential_id).outcome is Outcome.DECRYPTION_FAILURE


# ==============================================================================
# Tests: Collections & Files
# ==============================================================================

def test_file_round_trip_on_master_key(vm, tmp_path):
    src = tmp_path / "report.pdf"
    src.write_bytes(b"%PDF-1.7 contents")
    stored = vm.add_file("PDFs", src).unwrap()
    assert stored.original_name == "report.pdf"
    assert stored.mime_type == "application/pdf"
    assert stored.original_size == len(b"%PDF-1.7 contents")
    assert vm.blobs.exists(stored.blob_name)
    assert b"contents" not in vm.blobs.read(stored.blob_name)

    assert vm.read_file(stored.file_id).unwrap() == b"%PDF-1.7 contents"
    out = vm.export_file(stored.file_id, tmp_path / "out" / "copy.pdf").unwrap()
    assert Path(out).read_bytes() == b"%PDF-1.7 contents"
    assert [f.file_id for f in vm.list_files("PDFs")] == [stored.file_id]


def test_add_raw_bytes_requires_name(vm):
    with pytest.raises(ValueError):
        vm.add_file("Others", b"raw")
    stored = vm.add_file("Others", b"raw", name="raw.bin").unwrap()
    assert vm.read_file(stored.file_id).unwrap() == b"raw"


def test_protected_collection(vm):
    collection = vm.create_collection("Private", VaultType.CUSTOM, secret="vaultPass1")
    assert collection.has_separate_secret
    with pytest.raises(CollectionExistsError):
        vm.create_collection("Private")

    assert vm.add_file("Private", b"x", name="x").outcome is Outcome.AUTH_FAILURE
    stored = vm.add_file("Private", b"top secret", secret="vaultPass1", name="s.txt").unwrap()

    assert vm.read_file(stored.file_id).outcome is Outcome.AUTH_FAILURE
    assert vm.read_file(stored.file_id, secret="wrong").outcome is Outcome.AUTH_FAILURE
    assert vm.read_file(stored.file_id, secret="vaultPass1").unwrap() == b"top secret"

    key = vm.unlock_collection("Private", "vaultPass1").unwrap()
    assert key != vm.session.get_master_key()
    assert vm.unlock_collection("Private", "nope").outcome is Outcome.AUTH_FAILURE
    assert vm.unlock_collection("Missing", "vaultPass1").outcome is Outcome.AUTH_FAILURE


def test_unlock_master_collection_returns_master_key(vm):
    assert vm.unlock_collection("Documents").unwrap() is vm.session.get_master_key()


def test_set_collection_secret_reencrypts_files(vm):
    stored = vm.add_file("Documents", b"doc body", name="d.txt").unwrap()
    old_blob = stored.blob_name

    assert vm.set_collection_secret("Documents", "vaultPass1").ok
    moved = vm.list_files("Documents")[0]
    assert moved.blob_name != old_blob
    assert not vm.blobs.exists(old_blob)
    assert vm.read_file(stored.file_id).outcome is Outcome.AUTH_FAILURE
    assert vm.read_file(stored.file_id, "vaultPass1").unwrap() == b"doc body"

    # rotating needs the current secret
    assert vm.set_collection_secret("Documents", "other").outcome is Outcome.AUTH_FAILURE
    assert vm.set_collection_secret("Documents", None, current_secret="vaultPass1").ok
    assert vm.read_file(stored.file_id).unwrap() == b"doc body"
    # master key still intact after the revert
    assert vm.get_credential(vm.add_credential("t", "p").credential_id).unwrap().password == "p"


def test_delete_collection_removes_files(vm):
    stored = vm.add_file("Images", b"\x89PNG", name="a.png").unwrap()
    assert vm.delete_collection("Images").unwrap() == 1
    assert not vm.blobs.exists(stored.blob_name)
    assert vm.read_file(stored.file_id).outcome is Outcome.NOT_FOUND
    assert "Images" not in [c.name for c in vm.list_collections()]


def test_delete_file(vm):
    stored = vm.add_file("Others", b"bye", name="bye.txt").unwrap()
    assert vm.delete_file(stored.file_id) is True
    assert not vm.blobs.exists(stored.blob_name)
    assert vm.delete_file(stored.file_id) is False


def test_corrupted_blob_is_integrity_or_decryption_failure(vm):
    stored = vm.add_file("Others", b"A" * 64, name="a.txt").unwrap()
    blob = bytearray(vm.blobs.read(stored.blob_name))
    blob[20] ^= 0x01  # first ciphertext block; CBC garbles block 0 and flips a bit in block 1
    vm.blobs.write(stored.blob_name, bytes(blob))
    assert vm.read_file(stored.file_id).outcome is Outcome.INTEGRITY_FAILURE


# ==============================================================================
# Tests: Master password rotation
# ==============================================================================

def test_change_master_password_reencrypts_everything(vm):
    credential = vm.add_credential("Mail", "hunter2")
    note = vm.add_note("n", "body")
    card = vm.add_card(CardType.SSN, "SSN", {"ssn": "123-45-6789"})
    stored = vm.add_file("Documents", b"file body", name="f.txt").unwrap()
    protected = vm.create_collection("Private", secret="vaultPass1")
    secret_file = vm.add_file("Private", b"secret", secret="vaultPass1", name="s").unwrap()

    assert vm.change_master_password("wrong", "next").outcome is Outcome.AUTH_FAILURE
    assert vm.change_master_password(MASTER, "N3w-master").ok

    assert vm.get_credential(credential.credential_id).unwrap().password == "hunter2"
    assert vm.get_note(note.note_id).unwrap().content == "body"
    assert vm.get_card(card.card_id).unwrap().card_data == {"ssn": "123-45-6789"}
    assert vm.read_file(stored.file_id).unwrap() == b"file body"
    # files behind a separate secret are left alone
    assert vm.list_files(protected.name)[0].blob_name == secret_file.blob_name
    assert vm.read_file(secret_file.file_id, "vaultPass1").unwrap() == b"secret"

    vm.logout()
    assert vm.login(MASTER).outcome is Outcome.AUTH_FAILURE
    assert vm.login("N3w-master").ok
    assert vm.get_credential(credential.credential_id).unwrap().password == "hunter2"


# ==============================================================================
# Tests: Backups
# ==============================================================================

def test_backup_and_restore_through_manager(vm):
    credential = vm.add_credential("Mail", "hunter2")
    stored = vm.add_file("Documents", b"kept", name="k.txt").unwrap()
    record = vm.create_backup("before changes").unwrap()
    assert vm.verify_backup(record.backup_id) is True
    assert vm.verify_backup("missing") is False

    vm.delete_credential(credential.credential_id)
    vm.delete_file(stored.file_id)

    report = vm.restore_backup(record.backup_id).unwrap()
    assert report.restored_files == 1
    assert vm.is_unlocked
    assert vm.get_credential(credential.credential_id).unwrap().password == "hunter2"
    assert vm.read_file(stored.file_id).unwrap() == b"kept"

    assert [b.backup_id for b in vm.list_backups()] == [record.backup_id]
    assert vm.backup_statistics().total_backups == 1
    assert vm.cleanup_before_restore() is True
    assert vm.delete_backup(record.backup_id) is True
    assert vm.restore_backup(record.backup_id).outcome is Outcome.NOT_FOUND


def test_backup_from_before_password_change_cannot_be_opened(vm):
    record = vm.create_backup().unwrap()
    assert vm.change_master_password(MASTER, "N3w-master").ok
    # backup is sealed under the old key; the current key cannot open it
    assert vm.restore_backup(record.backup_id).outcome is Outcome.DECRYPTION_FAILURE
    assert vm.is_unlocked
