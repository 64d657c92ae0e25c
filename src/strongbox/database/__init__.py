"""SQLite record store for Strongbox."""
