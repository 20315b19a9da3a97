# LycheeLock - Vault Module
#
# Client-side encrypted credential vault:
# - PBKDF2 key derivation, AES-256-GCM whole-vault encryption
# - Observable in-memory credential store
# - Remote single-record sync (load / save)
# - TOTP second factor gating key availability

from .credential_store import CredentialStore, VaultState
from .encryption import MasterKey, VaultBlob, VaultCipher, derive_key, derive_key_async, generate_salt
from .errors import (
    DecryptionFailedError,
    ErrorKind,
    KeyDerivationError,
    NotAuthenticatedError,
    RemoteUnavailableError,
    StatusError,
    VaultError,
)
from .models import Account, PasswordEntry, TotpEnrollment, VaultRecord
from .remote import (
    InMemoryVaultStore,
    PostgrestVaultStore,
    RemoteVaultStore,
    SqliteVaultStore,
    create_remote_store,
)
from .session import Session, SessionPhase, SessionState
from .sync import SyncEngine, SyncResult
from .totp import TotpEngine

__all__ = [
    "Account",
    "CredentialStore",
    "DecryptionFailedError",
    "ErrorKind",
    "InMemoryVaultStore",
    "KeyDerivationError",
    "MasterKey",
    "NotAuthenticatedError",
    "PasswordEntry",
    "PostgrestVaultStore",
    "RemoteUnavailableError",
    "RemoteVaultStore",
    "Session",
    "SessionPhase",
    "SessionState",
    "SqliteVaultStore",
    "StatusError",
    "SyncEngine",
    "SyncResult",
    "TotpEngine",
    "TotpEnrollment",
    "VaultBlob",
    "VaultCipher",
    "VaultError",
    "VaultRecord",
    "VaultState",
    "create_remote_store",
    "derive_key",
    "derive_key_async",
    "generate_salt",
]
