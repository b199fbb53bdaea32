"""pledger - personal ledger with encrypted CSV storage and Firefly III sync."""

__version__ = "0.4.0"
