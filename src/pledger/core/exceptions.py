"""
Custom exceptions for the pledger core module.

All pledger-specific exceptions inherit from PledgerError for easy catching.
"""


class PledgerError(Exception):
    """Base exception for all pledger errors."""

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code


class StorageError(PledgerError):
    """Filesystem errors while loading or persisting a resource."""

    def __init__(self, message: str, code: str = "STORAGE_ERROR"):
        super().__init__(message, code)


class CryptoError(PledgerError):
    """Encryption/decryption errors."""

    def __init__(self, message: str, code: str = "CRYPTO_ERROR"):
        super().__init__(message, code)


class NotEncryptedError(CryptoError):
    """Raised when a file is too small to have been encrypted."""

    def __init__(self, message: str = "File not big enough to have been encrypted",
                 code: str = "NOT_ENCRYPTED"):
        super().__init__(message, code)


class IncorrectPasswordError(CryptoError):
    """Raised when a chunk fails authentication."""

    def __init__(self, message: str = "Incorrect password", code: str = "INCORRECT_PASSWORD"):
        super().__init__(message, code)


class EncryptionError(CryptoError):
    """Raised when sealing a chunk fails."""

    def __init__(self, message: str = "Encrypting file failed", code: str = "ENCRYPT_FAILED"):
        super().__init__(message, code)


class DecryptionError(CryptoError):
    """Raised when the encrypted stream is malformed or truncated."""

    def __init__(self, message: str = "Decrypting file failed", code: str = "DECRYPT_FAILED"):
        super().__init__(message, code)


class KeyDerivationError(CryptoError):
    """Raised when the key cannot be derived from the password."""

    def __init__(self, message: str = "Deriving key failed", code: str = "KEY_DERIVATION_FAILED"):
        super().__init__(message, code)


class LockHeldError(PledgerError):
    """Raised when another instance already holds the lock of a file."""

    def __init__(self, filepath: str, code: str = "LOCK_HELD"):
        super().__init__(
            f"Another instance already loaded '{filepath}' "
            f"(remove '{filepath}.lock' if no other instance is running)",
            code,
        )
        self.filepath = filepath


class InvalidLineError(PledgerError):
    """Raised when a row of a ledger/networth file cannot be parsed."""

    def __init__(self, line_number: int, reason: str, code: str = "INVALID_LINE"):
        super().__init__(f"Line {line_number}: {reason}", code)
        self.line_number = line_number
        self.reason = reason


class ExistingFileError(PledgerError):
    """Raised when a file would be overwritten without --force."""

    def __init__(self, filepath: str, code: str = "EXISTING_FILE"):
        super().__init__(f"File {filepath} already exists, use --force to overwrite it", code)
        self.filepath = filepath


class ConfigurationError(PledgerError):
    """Missing or malformed configuration."""

    def __init__(self, message: str, code: str = "CONFIG_ERROR"):
        super().__init__(message, code)


class UndefinedEditorError(PledgerError):
    """Raised when $EDITOR is not set."""

    def __init__(self, message: str = "EDITOR variable is not set", code: str = "UNDEFINED_EDITOR"):
        super().__init__(message, code)


class RemoteServiceError(PledgerError):
    """Any failure returned by the accounting service, transport errors included."""

    def __init__(self, message: str, status: int = None, code: str = "REMOTE_ERROR"):
        super().__init__(message, code)
        self.status = status


class MissingAccountIdError(PledgerError):
    """Raised when an account was used before being resolved to a remote id."""

    def __init__(self, message: str = "Id of the account is missing", code: str = "MISSING_ACCOUNT_ID"):
        super().__init__(message, code)


class MissingOpeningBalanceError(PledgerError):
    """Raised when the service did not create the opening balance transaction."""

    def __init__(self, account_id: str, code: str = "MISSING_OPENING_BALANCE"):
        super().__init__(
            f"Account {account_id} is missing an opening balance transaction", code
        )
        self.account_id = account_id
