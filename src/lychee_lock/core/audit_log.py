# LycheeLock - Security Audit Log
#
# Append-only structured audit trail for session and vault events.
# Every unlock, lock, load, save and decrypt failure is recorded with a
# timestamp and account context. Key material, passwords, TOTP secrets and
# codes are never passed to this module.

import json
import logging
import os
import socket
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog

AUDIT_LOGGER_NAME = "lychee_lock.audit"


class EventType(str, Enum):
    """Types of security events that can be logged."""

    # Session Events
    SESSION_AUTHENTICATED = "session.authenticated"
    SESSION_UNLOCKED = "session.unlocked"
    SESSION_UNLOCK_FAILED = "session.unlock.failed"
    SESSION_LOCKED = "session.locked"
    SESSION_LOGGED_OUT = "session.logged_out"

    # Second Factor
    TOTP_ENROLLED = "totp.enrolled"

    # Vault Events
    VAULT_LOADED = "vault.loaded"
    VAULT_SAVED = "vault.saved"
    VAULT_DECRYPT_FAILED = "vault.decrypt.failed"
    VAULT_SYNC_REFUSED = "vault.sync.refused"
    VAULT_REMOTE_ERROR = "vault.remote.error"


class EventSeverity(str, Enum):
    """
    Severity levels for security events.

    - INFO: Normal activity (logged only)
    - INVESTIGATE: Something unusual that may be benign
    - ALERT: A security control rejected an operation
    - CRITICAL: Data could not be recovered or written
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


class AuditLogger:
    """
    Append-only audit logger for vault security events.

    Features:
    - Structured JSON logging (structlog)
    - Automatic timestamp and event ID
    - Account and host context capture
    - Daily log files
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: ./audit_logs)
        """
        self.log_dir = Path(log_dir) if log_dir else Path("./audit_logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        # One stdlib logger per instance so each file only gets its own events
        self.logger_name = f"{AUDIT_LOGGER_NAME}.{uuid4().hex[:12]}"
        self.log_file = self._setup_file_handler()
        self.logger = structlog.get_logger(self.logger_name)

    def _setup_file_handler(self) -> Path:
        """Attach a file handler for today's audit log."""
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = self.log_dir / f"audit_{today}.log"

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))  # structlog handles formatting

        audit_logger = logging.getLogger(self.logger_name)
        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        audit_logger.propagate = False
        self._file_handler = file_handler
        return log_file

    def close(self):
        """Detach and close the file handler."""
        logging.getLogger(self.logger_name).removeHandler(self._file_handler)
        self._file_handler.close()

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_context: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Log a security event (append-only).

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (never secrets)
            user_context: Account context (user_id, username)

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())

        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": details or {},
            "user_context": user_context or self._get_default_user_context(),
        }

        self.logger.info("security_event", **event_data)

        return event_id

    def log_vault_event(
        self,
        event_type: EventType,
        message: str,
        user_id: Optional[str] = None,
        severity: EventSeverity = EventSeverity.INFO,
        details: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Log a vault or session event for a given account.

        Args:
            event_type: Type of vault event
            message: Event description
            user_id: Account the event concerns
            severity: Event severity
            details: Additional details (never log actual passwords!)

        Returns:
            str: Event ID
        """
        user_context = self._get_default_user_context()
        if user_id is not None:
            user_context["user_id"] = user_id

        return self.log_event(
            event_type=event_type,
            severity=severity,
            message=f"Vault: {message}",
            details=details,
            user_context=user_context,
        )

    def _get_default_user_context(self) -> Dict[str, Any]:
        """Get default user context (OS user, hostname, etc.)."""
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
        }

    def read_events(self) -> list:
        """Read back today's events (forensic review and tests)."""
        self._file_handler.flush()
        if not self.log_file.exists():
            return []

        events = []
        with open(self.log_file, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue
        return events


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def log_security_event(
    event_type: EventType,
    severity: EventSeverity,
    message: str,
    **kwargs
) -> str:
    """
    Convenience function for logging security events.

    Usage:
        log_security_event(
            EventType.SESSION_LOCKED,
            EventSeverity.INFO,
            "Vault locked by user",
            details={"reason": "idle"}
        )
    """
    return get_audit_logger().log_event(event_type, severity, message, **kwargs)
