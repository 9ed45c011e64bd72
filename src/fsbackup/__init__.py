"""fs-backup: full, incremental and point-in-time filesystem backups."""

__version__ = "0.3.0"
