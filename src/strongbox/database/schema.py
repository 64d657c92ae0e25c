"""SQLite schema definitions for Strongbox."""

# SQL schema definitions
SCHEMA_VERSION = 1

CREATE_TABLES = [
    # Master credential - a single row; salt + verifier only, never the key
    """
    CREATE TABLE IF NOT EXISTS master_credential (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        salt BLOB NOT NULL,
        verifier BLOB NOT NULL,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    )
    """,
    # Collections - file vaults; salt/verifier present only with a separate secret
    """
    CREATE TABLE IF NOT EXISTS collections (
        collection_id TEXT PRIMARY KEY,
        name TEXT UNIQUE NOT NULL,
        vault_type TEXT NOT NULL,
        icon TEXT,
        has_separate_secret BOOLEAN NOT NULL DEFAULT 0,
        salt BLOB,
        verifier BLOB,
        created_at TIMESTAMP NOT NULL,
        last_accessed TIMESTAMP,
        CHECK ((has_separate_secret = 1 AND salt IS NOT NULL AND verifier IS NOT NULL)
            OR (has_separate_secret = 0 AND salt IS NULL AND verifier IS NULL))
    )
    """,
    # Credentials - password sealed as (encryption_iv, encrypted_password)
    """
    CREATE TABLE IF NOT EXISTS credentials (
        credential_id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        username TEXT,
        email TEXT,
        url TEXT,
        encrypted_password BLOB NOT NULL,
        encryption_iv BLOB NOT NULL,
        notes TEXT,
        tags TEXT,
        is_favorite BOOLEAN DEFAULT 0,
        created_at TIMESTAMP NOT NULL,
        last_modified TIMESTAMP NOT NULL
    )
    """,
    # Secure notes - body sealed as (encryption_iv, encrypted_content)
    """
    CREATE TABLE IF NOT EXISTS secure_notes (
        note_id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        encrypted_content BLOB NOT NULL,
        encryption_iv BLOB NOT NULL,
        category TEXT NOT NULL,
        tags TEXT,
        is_favorite BOOLEAN DEFAULT 0,
        color_code TEXT,
        created_at TIMESTAMP NOT NULL,
        last_modified TIMESTAMP NOT NULL
    )
    """,
    # Identity cards - field map sealed as (encryption_iv, encrypted_data)
    """
    CREATE TABLE IF NOT EXISTS identity_cards (
        card_id TEXT PRIMARY KEY,
        card_type TEXT NOT NULL,
        card_name TEXT NOT NULL,
        encrypted_data BLOB NOT NULL,
        encryption_iv BLOB NOT NULL,
        card_number_last4 TEXT,
        issuing_country TEXT,
        issuing_authority TEXT,
        issue_date DATE,
        expiry_date DATE,
        tags TEXT,
        created_at TIMESTAMP NOT NULL,
        last_modified TIMESTAMP NOT NULL
    )
    """,
    # Stored files - payload lives in the blob store under blob_name
    """
    CREATE TABLE IF NOT EXISTS stored_files (
        file_id TEXT PRIMARY KEY,
        collection_id TEXT NOT NULL,
        original_name TEXT NOT NULL,
        blob_name TEXT UNIQUE NOT NULL,
        original_size INTEGER NOT NULL,
        encrypted_size INTEGER NOT NULL,
        mime_type TEXT,
        checksum TEXT NOT NULL,
        uploaded_at TIMESTAMP NOT NULL,
        FOREIGN KEY (collection_id) REFERENCES collections(collection_id) ON DELETE CASCADE
    )
    """,
    # Schema version table
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

# Index definitions for optimization
CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_credentials_title ON credentials(title)",
    "CREATE INDEX IF NOT EXISTS idx_notes_category ON secure_notes(category)",
    "CREATE INDEX IF NOT EXISTS idx_cards_type ON identity_cards(card_type)",
    "CREATE INDEX IF NOT EXISTS idx_cards_expiry ON identity_cards(expiry_date)",
    "CREATE INDEX IF NOT EXISTS idx_files_collection ON stored_files(collection_id)",
]

# Backup catalog - kept outside the store so a restore never rewrites it
CREATE_CATALOG_TABLES = [
    """
    CREATE TABLE IF NOT EXISTS backups (
        backup_id TEXT PRIMARY KEY,
        file_name TEXT UNIQUE NOT NULL,
        path TEXT NOT NULL,
        size INTEGER NOT NULL,
        checksum TEXT NOT NULL,
        description TEXT,
        backup_type TEXT NOT NULL,
        status TEXT NOT NULL,
        created_at TIMESTAMP NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_backups_created_at ON backups(created_at)",
]


def get_init_schema():
    """
    Get complete record store schema initialization SQL

    Returns:
        List of SQL statements to execute
    """
    statements = []
    statements.extend(CREATE_TABLES)
    statements.extend(CREATE_INDEXES)
    statements.append(
        f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})"
    )
    return statements


def get_catalog_schema():
    """Get the backup catalog schema."""
    return list(CREATE_CATALOG_TABLES)


def get_drop_schema():
    """
    Get SQL statements to drop all tables for testing

    Returns:
        List of DROP TABLE statements
    """
    return [
        "DROP TABLE IF EXISTS stored_files",
        "DROP TABLE IF EXISTS identity_cards",
        "DROP TABLE IF EXISTS secure_notes",
        "DROP TABLE IF EXISTS credentials",
        "DROP TABLE IF EXISTS collections",
        "DROP TABLE IF EXISTS master_credential",
        "DROP TABLE IF EXISTS schema_version",
    ]
