"""
Domain models for Strongbox records, collections and backups
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple
import uuid


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.utcnow()


class VaultType(Enum):
    # Kind of file collection; the default collections use the first four
    IMAGES = "images"
    PDFS = "pdfs"
    DOCUMENTS = "documents"
    OTHERS = "others"
    CUSTOM = "custom"

    @property
    def display_name(self) -> str:
        return _VAULT_TYPE_TABLE[self][0]

    @property
    def icon(self) -> str:
        return _VAULT_TYPE_TABLE[self][1]


_VAULT_TYPE_TABLE: Dict[VaultType, Tuple[str, str]] = {
    VaultType.IMAGES: ("Images", "🖼️"),
    VaultType.PDFS: ("PDFs", "📕"),
    VaultType.DOCUMENTS: ("Documents", "📄"),
    VaultType.OTHERS: ("Others", "📦"),
    VaultType.CUSTOM: ("Custom", "🗂️"),
}

DEFAULT_COLLECTIONS = (VaultType.IMAGES, VaultType.PDFS, VaultType.DOCUMENTS, VaultType.OTHERS)


class NoteCategory(Enum):
    PERSONAL = "personal"
    WORK = "work"
    FINANCIAL = "financial"
    MEDICAL = "medical"
    TECHNICAL = "technical"
    OTHER = "other"

    @property
    def display_name(self) -> str:
        return _NOTE_CATEGORY_TABLE[self][0]

    @property
    def default_color(self) -> str:
        return _NOTE_CATEGORY_TABLE[self][1]


_NOTE_CATEGORY_TABLE: Dict[NoteCategory, Tuple[str, str]] = {
    NoteCategory.PERSONAL: ("Personal", "#4A90E2"),
    NoteCategory.WORK: ("Work", "#7B68EE"),
    NoteCategory.FINANCIAL: ("Financial", "#2ECC71"),
    NoteCategory.MEDICAL: ("Medical", "#E74C3C"),
    NoteCategory.TECHNICAL: ("Technical", "#F39C12"),
    NoteCategory.OTHER: ("Other", "#95A5A6"),
}


class CardType(Enum):
    # Identity document kinds; field lists live in CARD_FIELDS, not on the enum
    PASSPORT = "passport"
    DRIVERS_LICENSE = "drivers_license"
    NATIONAL_ID = "national_id"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_ACCOUNT = "bank_account"
    INSURANCE = "insurance"
    SSN = "ssn"
    MEMBERSHIP = "membership"
    OTHER = "other"

    @property
    def display_name(self) -> str:
        return CARD_FIELDS[self].display_name

    @property
    def fields(self) -> Tuple[str, ...]:
        return CARD_FIELDS[self].fields

    @property
    def number_field(self) -> Optional[str]:
        return CARD_FIELDS[self].number_field


@dataclass(frozen=True)
class CardSchema:
    display_name: str
    fields: Tuple[str, ...]
    number_field: Optional[str] = None


CARD_FIELDS: Dict[CardType, CardSchema] = {
    CardType.PASSPORT: CardSchema(
        "Passport",
        ("passportNumber", "fullName", "nationality", "dateOfBirth", "placeOfBirth", "sex"),
        "passportNumber",
    ),
    CardType.DRIVERS_LICENSE: CardSchema(
        "Driver's License",
        ("licenseNumber", "fullName", "dateOfBirth", "address", "class", "restrictions"),
        "licenseNumber",
    ),
    CardType.NATIONAL_ID: CardSchema(
        "National ID",
        ("idNumber", "fullName", "dateOfBirth", "address", "nationality"),
        "idNumber",
    ),
    CardType.CREDIT_CARD: CardSchema(
        "Credit Card",
        ("cardNumber", "cardholderName", "cvv", "pin", "billingAddress"),
        "cardNumber",
    ),
    CardType.DEBIT_CARD: CardSchema(
        "Debit Card",
        ("cardNumber", "cardholderName", "cvv", "pin", "bankName"),
        "cardNumber",
    ),
    CardType.BANK_ACCOUNT: CardSchema(
        "Bank Account",
        ("accountNumber", "accountType", "routingNumber", "swiftCode", "bankName", "branchAddress"),
        "accountNumber",
    ),
    CardType.INSURANCE: CardSchema(
        "Insurance Card",
        ("policyNumber", "groupNumber", "memberName", "memberId", "providerName", "providerPhone"),
        "policyNumber",
    ),
    CardType.SSN: CardSchema("SSN/Tax ID", ("ssn", "fullName", "dateOfBirth"), "ssn"),
    CardType.MEMBERSHIP: CardSchema(
        "Membership Card",
        ("memberNumber", "memberName", "organizationName"),
        "memberNumber",
    ),
    CardType.OTHER: CardSchema("Other", ("customField1", "customField2", "customField3")),
}


def last4_of(card_type: CardType, card_data: Dict[str, str]) -> Optional[str]:
    """Return the clear-text display suffix of the card's primary number field."""
    name = card_type.number_field
    if not name:
        return None
    value = card_data.get(name)
    if value is None or len(value) < 4:
        return None
    return value[-4:]


class BackupType(Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    SCHEDULED = "scheduled"


class BackupStatus(Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CORRUPTED = "corrupted"


class KeyState(Enum):
    # Per-collection key state machine; USES_MASTER_KEY is the initial state
    USES_MASTER_KEY = "uses_master_key"
    HAS_OWN_SECRET = "has_own_secret"


@dataclass(frozen=True)
class MasterCredential:
    """Salt and verifier for the master password. Never holds the key."""

    salt: bytes
    verifier: bytes
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __repr__(self) -> str:
        return f"MasterCredential(salt_len={len(self.salt)}, created_at={self.created_at!r})"


@dataclass(frozen=True)
class VaultKeyDescriptor:
    """Separate-secret material of a collection; salt and verifier travel together."""

    has_separate_secret: bool = False
    salt: Optional[bytes] = None
    verifier: Optional[bytes] = None

    def __post_init__(self):
        if self.has_separate_secret:
            if self.salt is None or self.verifier is None:
                raise ValueError("A separate secret needs both a salt and a verifier")
        elif self.salt is not None or self.verifier is not None:
            raise ValueError("Salt and verifier must be absent without a separate secret")

    @property
    def state(self) -> KeyState:
        return KeyState.HAS_OWN_SECRET if self.has_separate_secret else KeyState.USES_MASTER_KEY

    @classmethod
    def master(cls) -> "VaultKeyDescriptor":
        return cls(False, None, None)

    def __repr__(self) -> str:
        return f"VaultKeyDescriptor(state={self.state.value})"


@dataclass
class Collection:
    """A named grouping of files that may carry its own password."""

    name: str
    vault_type: VaultType = VaultType.CUSTOM
    icon: Optional[str] = None
    descriptor: VaultKeyDescriptor = field(default_factory=VaultKeyDescriptor.master)
    collection_id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    last_accessed: Optional[datetime] = None

    @property
    def has_separate_secret(self) -> bool:
        return self.descriptor.has_separate_secret

    def to_dict(self) -> Dict:
        return {
            "collection_id": self.collection_id,
            "name": self.name,
            "vault_type": self.vault_type.value,
            "icon": self.icon or self.vault_type.icon,
            "has_separate_secret": self.has_separate_secret,
            "created_at": self.created_at.isoformat(),
            "last_accessed": self.last_accessed.isoformat() if self.last_accessed else None,
        }


@dataclass
class Credential:
    """A website/app login. ``password`` is only populated after decryption."""

    title: str
    username: Optional[str] = None
    email: Optional[str] = None
    url: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    notes: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    is_favorite: bool = False
    credential_id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    last_modified: datetime = field(default_factory=_now)


@dataclass
class SecureNote:
    """A free-text note. ``content`` is only populated after decryption."""

    title: str
    content: Optional[str] = field(default=None, repr=False)
    category: NoteCategory = NoteCategory.PERSONAL
    tags: List[str] = field(default_factory=list)
    is_favorite: bool = False
    color_code: Optional[str] = None
    note_id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    last_modified: datetime = field(default_factory=_now)


@dataclass
class IdentityCard:
    """An identity document. ``card_data`` is only populated after decryption."""

    card_type: CardType
    card_name: str
    card_data: Dict[str, str] = field(default_factory=dict, repr=False)
    card_number_last4: Optional[str] = None
    issuing_country: Optional[str] = None
    issuing_authority: Optional[str] = None
    issue_date: Optional[date] = None
    expiry_date: Optional[date] = None
    tags: List[str] = field(default_factory=list)
    card_id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    last_modified: datetime = field(default_factory=_now)

    @property
    def is_expired(self) -> bool:
        return self.expiry_date is not None and self.expiry_date < date.today()

    def days_until_expiry(self) -> Optional[int]:
        if self.expiry_date is None:
            return None
        return (self.expiry_date - date.today()).days

    def missing_fields(self) -> List[str]:
        return [name for name in self.card_type.fields if not self.card_data.get(name)]


@dataclass
class StoredFile:
    """Metadata of an encrypted file payload kept in the blob store."""

    collection_id: str
    original_name: str
    blob_name: str
    original_size: int
    encrypted_size: int
    checksum: str
    mime_type: Optional[str] = None
    file_id: str = field(default_factory=_new_id)
    uploaded_at: datetime = field(default_factory=_now)


@dataclass
class BackupRecord:
    """Catalog entry for one encrypted backup artifact."""

    file_name: str
    path: str
    size: int
    checksum: str
    description: Optional[str] = None
    backup_type: BackupType = BackupType.MANUAL
    status: BackupStatus = BackupStatus.IN_PROGRESS
    backup_id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict:
        return {
            "backup_id": self.backup_id,
            "file_name": self.file_name,
            "path": self.path,
            "size": self.size,
            "checksum": self.checksum,
            "description": self.description,
            "backup_type": self.backup_type.value,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class RestoreReport:
    backup_id: str
    restored_files: int
    before_restore_path: str


@dataclass(frozen=True)
class BackupStatistics:
    total_backups: int
    total_size: int
    latest: Optional[BackupRecord] = None
    oldest: Optional[BackupRecord] = None
