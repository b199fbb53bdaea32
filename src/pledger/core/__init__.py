"""
Core module - Foundation components for pledger.

Provides:
- Resource: locked, optionally encrypted read-modify-write access to a CSV file
- Streaming file encryption (encrypt/decrypt)
- Line models: Transaction (ledger) and Entry (networth)
- Money and Currency value types
- Configuration loading
"""

from pledger.core.config import Config, FireflyOptions, load_config
from pledger.core.encryption import decrypt, encrypt
from pledger.core.exceptions import (
    PledgerError,
    StorageError,
    CryptoError,
    NotEncryptedError,
    IncorrectPasswordError,
    EncryptionError,
    DecryptionError,
    KeyDerivationError,
    LockHeldError,
    InvalidLineError,
    ExistingFileError,
    ConfigurationError,
    RemoteServiceError,
    MissingAccountIdError,
    MissingOpeningBalanceError,
)
from pledger.core.models import Entry, Line, Mode, Transaction, build_line, parse_line
from pledger.core.money import Currency, Money
from pledger.core.resource import Resource

__all__ = [
    # Storage
    "Resource",
    "encrypt",
    "decrypt",
    # Models
    "Mode",
    "Line",
    "Transaction",
    "Entry",
    "build_line",
    "parse_line",
    "Currency",
    "Money",
    # Configuration
    "Config",
    "FireflyOptions",
    "load_config",
    # Exceptions
    "PledgerError",
    "StorageError",
    "CryptoError",
    "NotEncryptedError",
    "IncorrectPasswordError",
    "EncryptionError",
    "DecryptionError",
    "KeyDerivationError",
    "LockHeldError",
    "InvalidLineError",
    "ExistingFileError",
    "ConfigurationError",
    "RemoteServiceError",
    "MissingAccountIdError",
    "MissingOpeningBalanceError",
]
