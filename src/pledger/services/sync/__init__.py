"""
Sync services.

- push: reconcile local ledger/networth records with Firefly III
- accounts: per-run cache of remote accounts and currencies
"""

from pledger.services.sync.accounts import AccountData, AccountKind, AccountResolver
from pledger.services.sync.push import Ledger, Networth, Push, PushSummary, Syncable

__all__ = [
    "AccountData",
    "AccountKind",
    "AccountResolver",
    "Ledger",
    "Networth",
    "Push",
    "PushSummary",
    "Syncable",
]
