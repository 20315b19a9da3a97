# LycheeLock - Vault Session
#
# Session state machine:
#
#   UNAUTHENTICATED --authenticate()--> AUTHENTICATED (password checked, vault locked)
#   AUTHENTICATED   --unlock()-------->  UNLOCKED      (TOTP verified, MasterKey derived)
#   UNLOCKED        --lock()---------->  AUTHENTICATED (key zeroized)
#   any             --logout()-------->  UNAUTHENTICATED (key zeroized)
#
# The MasterKey lives only on this object and is never part of the
# published snapshot. SyncEngine reads it through credentials().

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from ..core.audit_log import AuditLogger, EventSeverity, EventType, get_audit_logger
from ..core.config import DEFAULT_PBKDF2_ITERATIONS
from .encryption import MasterKey, derive_key_async
from .errors import NotAuthenticatedError
from .models import Account
from .observable import StateContainer
from .totp import TotpEngine

logger = logging.getLogger(__name__)

MAX_BACKOFF_SEC = 16


class SessionPhase(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    UNLOCKED = "unlocked"


@dataclass(frozen=True)
class SessionState:
    """Snapshot published to observers (never includes key material)."""

    phase: SessionPhase = SessionPhase.UNAUTHENTICATED
    account: Optional[Account] = None
    totp_verified: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.phase != SessionPhase.UNAUTHENTICATED

    @property
    def is_unlocked(self) -> bool:
        return self.phase == SessionPhase.UNLOCKED


class Session:
    """
    One login session for one account.

    Security:
    - MasterKey exists only while UNLOCKED
    - Unlocking requires a valid TOTP code before any key is derived
    - Failed second-factor attempts back off exponentially
      (1st: none, 2nd: 2s, 3rd: 4s, 4th: 8s, 5th+: 16s)
    - Every transition is written to the audit log
    """

    def __init__(
        self,
        totp: Optional[TotpEngine] = None,
        iterations: int = DEFAULT_PBKDF2_ITERATIONS,
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._state: StateContainer[SessionState] = StateContainer(SessionState())
        self._totp = totp or TotpEngine()
        self._iterations = iterations
        self._audit = audit
        self._clock = clock

        self._salt: Optional[bytes] = None
        self._master_key: Optional[MasterKey] = None

        # Rate limiting for second-factor attempts
        self.failed_attempts = 0
        self.lockout_until: Optional[float] = None

    @property
    def audit(self) -> AuditLogger:
        return self._audit or get_audit_logger()

    # ── Accessors ────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state.get()

    @property
    def account(self) -> Optional[Account]:
        return self._state.get().account

    @property
    def master_key(self) -> Optional[MasterKey]:
        return self._master_key

    def subscribe(self, observer: Callable[[SessionState], None]) -> Callable[[], None]:
        return self._state.subscribe(observer)

    def credentials(self) -> Tuple[str, MasterKey]:
        """
        Account id and MasterKey of an unlocked session.

        Raises:
            NotAuthenticatedError: If the session is not UNLOCKED
        """
        state = self._state.get()
        key = self._master_key
        if not state.is_unlocked or state.account is None or key is None or key.destroyed:
            raise NotAuthenticatedError()
        return state.account.id, key

    # ── Transitions ──────────────────────────────────────────────────

    def authenticate(self, account: Account, salt: bytes) -> None:
        """Record a password-verified login (vault stays locked)."""
        self._discard_key()
        self._salt = bytes(salt)
        self.failed_attempts = 0
        self.lockout_until = None
        self._state.set(SessionState(phase=SessionPhase.AUTHENTICATED, account=account))

        self.audit.log_vault_event(
            EventType.SESSION_AUTHENTICATED,
            "Password verified, vault locked",
            user_id=account.id,
        )

    async def unlock(self, password: str, code: str, totp_secret: str) -> Tuple[bool, str]:
        """
        Verify the second factor, then derive the MasterKey.

        Args:
            password: Master password (used only for key derivation)
            code: Current code from the authenticator app
            totp_secret: Account's base32 TOTP secret

        Returns:
            (success, message)

        Raises:
            KeyDerivationError: If the stored salt or password is malformed
        """
        state = self._state.get()
        if not state.is_authenticated or state.account is None or self._salt is None:
            return False, "Sign in before unlocking the vault."
        if state.is_unlocked:
            return True, "Vault already unlocked."
        if not state.account.totp_enabled:
            return False, "Two-factor enrollment is required before the vault can be unlocked."

        now = self._clock()
        if self.lockout_until and now < self.lockout_until:
            remaining = int(self.lockout_until - now) + 1
            self.audit.log_vault_event(
                EventType.SESSION_UNLOCK_FAILED,
                f"Unlock attempt during lockout period ({remaining}s remaining)",
                user_id=state.account.id,
                severity=EventSeverity.ALERT,
            )
            return False, f"Too many failed attempts. Please wait {remaining} seconds."

        if not self._totp.verify_code(code, totp_secret, timestamp=now):
            return self._handle_failed_unlock(state.account)

        self._state.update(lambda s: SessionState(phase=s.phase, account=s.account, totp_verified=True))

        key = await derive_key_async(password, self._salt, self._iterations)

        # Logged out or re-authenticated while deriving
        current = self._state.get()
        if current.account != state.account or not current.is_authenticated:
            key.destroy()
            return False, "Session ended during unlock."

        # A concurrent unlock finished first; keep its key
        if current.is_unlocked and self._master_key is not None:
            key.destroy()
            return True, "Vault already unlocked."

        self._discard_key()
        self._master_key = key
        self.failed_attempts = 0
        self.lockout_until = None
        self._state.set(SessionState(
            phase=SessionPhase.UNLOCKED, account=state.account, totp_verified=True,
        ))

        self.audit.log_vault_event(
            EventType.SESSION_UNLOCKED, "Vault unlocked", user_id=state.account.id,
        )
        logger.info("Vault unlocked for account %s", state.account.id)
        return True, "Vault unlocked successfully!"

    def _handle_failed_unlock(self, account: Account) -> Tuple[bool, str]:
        """Rate-limited failure response for wrong authentication codes."""
        self.failed_attempts += 1
        delay_seconds = min(2 ** (self.failed_attempts - 1), MAX_BACKOFF_SEC)
        if self.failed_attempts > 1:
            self.lockout_until = self._clock() + delay_seconds

        self.audit.log_vault_event(
            EventType.SESSION_UNLOCK_FAILED,
            f"Invalid authentication code (attempt {self.failed_attempts})",
            user_id=account.id,
            severity=EventSeverity.ALERT,
        )

        if self.failed_attempts == 1:
            return False, "Invalid authentication code"
        return False, f"Invalid authentication code. Please wait {delay_seconds} seconds before trying again."

    def lock(self) -> None:
        """Drop the MasterKey; the account stays signed in."""
        state = self._state.get()
        if not state.is_unlocked:
            return
        self._discard_key()
        self._state.set(SessionState(phase=SessionPhase.AUTHENTICATED, account=state.account))

        self.audit.log_vault_event(
            EventType.SESSION_LOCKED, "Vault locked", user_id=state.account.id if state.account else None,
        )

    def logout(self) -> None:
        """End the session and destroy all key material."""
        state = self._state.get()
        self._discard_key()
        self._salt = None
        self.failed_attempts = 0
        self.lockout_until = None
        self._state.reset()

        if state.account is not None:
            self.audit.log_vault_event(
                EventType.SESSION_LOGGED_OUT, "Logged out", user_id=state.account.id,
            )

    def _discard_key(self) -> None:
        if self._master_key is not None:
            self._master_key.destroy()
            self._master_key = None
