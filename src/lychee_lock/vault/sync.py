# LycheeLock - Vault Sync Engine
#
# load(): fetch remote record -> decrypt -> replace CredentialStore entries
# save(): snapshot CredentialStore -> encrypt (fresh nonce) -> upsert
#
# Whole-vault overwrite: the remote row always holds exactly the last
# successfully saved snapshot. Two sessions saving concurrently resolve
# as last-upsert-wins; there is no merge.
#
# One asyncio.Lock per engine serializes load/save so their critical
# sections never interleave on the same store. Results are applied to the
# store only after every step has succeeded, so a cancelled call leaves
# the previous entries in place.

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from ..core.audit_log import AuditLogger, EventSeverity, EventType, get_audit_logger
from .credential_store import CredentialStore
from .encryption import VaultBlob, VaultCipher
from .errors import (
    DecryptionFailedError,
    NotAuthenticatedError,
    RemoteUnavailableError,
    StatusError,
)
from .models import (
    VaultRecord,
    entries_from_payload,
    entries_to_payload,
    format_timestamp,
    utc_now,
)
from .remote import RemoteVaultStore
from .session import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    """Outcome of a load() or save() call."""

    ok: bool
    error: Optional[StatusError] = None
    entry_count: int = 0

    @classmethod
    def failed(cls, error: StatusError) -> "SyncResult":
        return cls(ok=False, error=error)


class SyncEngine:
    """
    Moves the encrypted vault between CredentialStore and the remote store.

    Usage::

        engine = SyncEngine(session, store, SqliteVaultStore("data/vaults.db"))
        result = await engine.load()
        store.add({"name": "Gmail", "password": "..."})
        result = await engine.save()

    Errors never propagate: they are published on ``store.state.error``
    and returned in the SyncResult.
    """

    def __init__(
        self,
        session: Session,
        store: CredentialStore,
        remote: RemoteVaultStore,
        audit: Optional[AuditLogger] = None,
    ):
        self.session = session
        self.store = store
        self.remote = remote
        self._audit = audit
        self._lock = asyncio.Lock()

    @property
    def audit(self) -> AuditLogger:
        return self._audit or get_audit_logger()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def _still_unlocked(self, key) -> bool:
        return self.session.master_key is key and not key.destroyed

    def _refuse(self, operation: str, error: NotAuthenticatedError) -> SyncResult:
        status = error.to_status()
        self.store.set_error(status)
        self.audit.log_vault_event(
            EventType.VAULT_SYNC_REFUSED,
            f"{operation} refused: no unlocked session",
            severity=EventSeverity.ALERT,
        )
        return SyncResult.failed(status)

    async def load(self) -> SyncResult:
        """
        Replace the store's entries with the decrypted remote vault.

        - No unlocked session: NOT_AUTHENTICATED, no I/O
        - No remote record: empty vault, no error
        - Decryption failure: DECRYPTION_FAILED, store emptied
        - Remote failure: REMOTE_UNAVAILABLE, entries untouched
        """
        try:
            user_id, key = self.session.credentials()
        except NotAuthenticatedError as e:
            return self._refuse("Load", e)

        async with self._lock:
            # Session may have ended while this call waited for the lock
            if not self._still_unlocked(key):
                return self._refuse("Load", NotAuthenticatedError())

            self.store.begin_sync()
            try:
                record = await self.remote.get_by_user(user_id)

                if record is None or record.is_empty:
                    entries = []
                else:
                    blob = VaultBlob.decode(record.encrypted_data, record.iv)
                    payload = await asyncio.to_thread(VaultCipher.decrypt_blob, blob, key)
                    try:
                        entries = entries_from_payload(payload)
                    except (ValueError, TypeError, KeyError):
                        raise DecryptionFailedError() from None

                # Locked or logged out while we were fetching
                if not self._still_unlocked(key):
                    raise NotAuthenticatedError()

            except RemoteUnavailableError as e:
                logger.warning("Vault load failed: %s", e)
                status = e.to_status()
                self.store.finish_sync(error=status)
                self.audit.log_vault_event(
                    EventType.VAULT_REMOTE_ERROR, "Vault load failed: storage unavailable",
                    user_id=user_id, severity=EventSeverity.INVESTIGATE,
                )
                return SyncResult.failed(status)

            except DecryptionFailedError as e:
                logger.warning("Vault load failed: decryption failed")
                status = e.to_status()
                self.store.replace_entries((), error=status)
                self.audit.log_vault_event(
                    EventType.VAULT_DECRYPT_FAILED, "Vault data could not be decrypted",
                    user_id=user_id, severity=EventSeverity.CRITICAL,
                )
                return SyncResult.failed(status)

            except NotAuthenticatedError as e:
                self.store.finish_sync()
                return self._refuse("Load", e)

            except asyncio.CancelledError:
                self.store.finish_sync()
                raise

            self.store.replace_entries(entries)

        self.audit.log_vault_event(
            EventType.VAULT_LOADED, "Vault loaded",
            user_id=user_id, details={"entry_count": len(entries)},
        )
        logger.info("Loaded vault for %s (%d entries)", user_id, len(entries))
        return SyncResult(ok=True, entry_count=len(entries))

    async def save(self) -> SyncResult:
        """
        Encrypt the whole current collection and upsert it.

        - No unlocked session: NOT_AUTHENTICATED, no I/O
        - Remote failure: REMOTE_UNAVAILABLE, entries untouched
        """
        try:
            user_id, key = self.session.credentials()
        except NotAuthenticatedError as e:
            return self._refuse("Save", e)

        async with self._lock:
            if not self._still_unlocked(key):
                return self._refuse("Save", NotAuthenticatedError())

            entries = self.store.entries
            self.store.begin_sync()
            try:
                payload = entries_to_payload(entries)
                blob = await asyncio.to_thread(VaultCipher.encrypt, payload, key)
                encrypted_data, iv = blob.encode()

                await self.remote.upsert(VaultRecord(
                    user_id=user_id,
                    encrypted_data=encrypted_data,
                    iv=iv,
                    updated_at=format_timestamp(utc_now()),
                ))

            except RemoteUnavailableError as e:
                logger.warning("Vault save failed: %s", e)
                status = e.to_status()
                self.store.finish_sync(error=status)
                self.audit.log_vault_event(
                    EventType.VAULT_REMOTE_ERROR, "Vault save failed: storage unavailable",
                    user_id=user_id, severity=EventSeverity.INVESTIGATE,
                )
                return SyncResult.failed(status)

            except NotAuthenticatedError as e:
                self.store.finish_sync()
                return self._refuse("Save", e)

            except asyncio.CancelledError:
                self.store.finish_sync()
                raise

            self.store.finish_sync()

        self.audit.log_vault_event(
            EventType.VAULT_SAVED, "Vault saved",
            user_id=user_id, details={"entry_count": len(entries)},
        )
        logger.info("Saved vault for %s (%d entries)", user_id, len(entries))
        return SyncResult(ok=True, entry_count=len(entries))
