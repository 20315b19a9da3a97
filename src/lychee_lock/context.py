# LycheeLock - Application Context
#
# Explicitly constructs and owns every long-lived object of one vault
# process. Presentation layers receive this context (or the pieces they
# need) instead of importing module-level singletons.

import logging
from typing import Optional

from .core.audit_log import AuditLogger, EventType
from .core.config import Settings
from .vault.credential_store import CredentialStore
from .vault.models import TotpEnrollment
from .vault.remote import RemoteVaultStore, create_remote_store
from .vault.session import Session
from .vault.sync import SyncEngine
from .vault.totp import TotpEngine

logger = logging.getLogger(__name__)


class VaultContext:
    """
    Wiring for one vault session.

    Usage::

        ctx = VaultContext(Settings.from_env())
        ctx.session.authenticate(account, salt)
        ok, msg = await ctx.session.unlock(password, code, totp_secret)
        await ctx.sync.load()
        ...
        ctx.logout()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        remote: Optional[RemoteVaultStore] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.settings = settings or Settings()
        self._owns_audit = audit is None
        self.audit = audit or AuditLogger(log_dir=self.settings.audit_log_dir)
        self.totp = TotpEngine(
            issuer=self.settings.totp_issuer, window=self.settings.totp_window,
        )
        self.remote = remote or create_remote_store(self.settings)
        self.session = Session(
            totp=self.totp, iterations=self.settings.pbkdf2_iterations, audit=self.audit,
        )
        self.store = CredentialStore()
        self.sync = SyncEngine(self.session, self.store, self.remote, audit=self.audit)

    def enroll_totp(self, username: str, with_qr: bool = True) -> TotpEnrollment:
        """Create a new authenticator secret for an account."""
        secret = self.totp.generate_secret()
        uri = self.totp.provisioning_uri(username, secret)
        qr = self.totp.render_qr(uri) if with_qr else None

        self.audit.log_vault_event(
            EventType.TOTP_ENROLLED, "Authenticator enrollment generated",
            details={"username": username},
        )
        return TotpEnrollment(secret=secret, uri=uri, qr_data_url=qr)

    def lock(self) -> None:
        """Drop the key and the decrypted entries; stay signed in."""
        self.session.lock()
        self.store.reset()

    def logout(self) -> None:
        """Destroy the key and clear all decrypted state."""
        self.session.logout()
        self.store.reset()

    async def close(self) -> None:
        """Log out, release the remote store and close an owned audit log."""
        self.logout()
        await self.remote.close()
        if self._owns_audit:
            self.audit.close()
