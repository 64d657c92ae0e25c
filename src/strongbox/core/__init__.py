"""Core services of Strongbox: results, blob storage, backups and the vault manager."""
