"""Backup-chain model: snapshots, catalog, chain resolution and deletion ledgers."""
