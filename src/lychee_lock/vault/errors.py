# LycheeLock - Vault Error Kinds
#
# Errors that SyncEngine reports through the store's observable error
# field. Cryptographic failures share one generic message so callers
# cannot tell a wrong key from corrupted data.

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Error kinds surfaced to presentation layers."""

    NOT_AUTHENTICATED = "not_authenticated"
    DECRYPTION_FAILED = "decryption_failed"
    REMOTE_UNAVAILABLE = "remote_unavailable"


@dataclass(frozen=True)
class StatusError:
    """User-visible error held in VaultState.error."""

    kind: ErrorKind
    message: str

    @property
    def retryable(self) -> bool:
        return self.kind in (ErrorKind.REMOTE_UNAVAILABLE, ErrorKind.DECRYPTION_FAILED)


class VaultError(Exception):
    """Base class for vault errors that map onto an ErrorKind."""

    kind: ErrorKind = ErrorKind.REMOTE_UNAVAILABLE
    user_message = "Vault operation failed"

    def __init__(self, message: str = ""):
        super().__init__(message or self.user_message)

    def to_status(self) -> StatusError:
        return StatusError(kind=self.kind, message=self.user_message)


class NotAuthenticatedError(VaultError):
    """No unlocked session (MasterKey or account identity missing)."""

    kind = ErrorKind.NOT_AUTHENTICATED
    user_message = "Not authenticated"


class DecryptionFailedError(VaultError):
    """Authenticated decryption failed (wrong key, tampering, truncation)."""

    kind = ErrorKind.DECRYPTION_FAILED
    user_message = "Failed to decrypt vault data"

    def __init__(self):
        # Never carry distinguishing detail
        super().__init__(self.user_message)


class RemoteUnavailableError(VaultError):
    """The remote vault store could not be read or written."""

    kind = ErrorKind.REMOTE_UNAVAILABLE
    user_message = "Vault storage is unavailable, please try again"


class KeyDerivationError(ValueError):
    """Key derivation inputs were malformed."""
