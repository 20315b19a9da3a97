# Tests for the structured security audit log

import pytest

from lychee_lock.core import audit_log
from lychee_lock.core.audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
    log_security_event,
)


@pytest.fixture
def audit(tmp_path):
    logger = AuditLogger(log_dir=tmp_path / "audit")
    yield logger
    logger.close()


def test_log_event_writes_json_line(audit):
    event_id = audit.log_event(
        EventType.VAULT_SAVED, EventSeverity.INFO, "Vault saved", details={"entry_count": 3},
    )

    (event,) = audit.read_events()
    assert event["event_id"] == event_id
    assert event["event_type"] == "vault.saved"
    assert event["severity"] == "info"
    assert event["details"] == {"entry_count": 3}
    assert "hostname" in event["user_context"]


def test_vault_event_carries_user_id(audit):
    audit.log_vault_event(
        EventType.VAULT_DECRYPT_FAILED, "decrypt failed",
        user_id="user-9", severity=EventSeverity.CRITICAL,
    )

    (event,) = audit.read_events()
    assert event["message"] == "Vault: decrypt failed"
    assert event["severity"] == "critical"
    assert event["user_context"]["user_id"] == "user-9"


def test_log_file_is_append_only(tmp_path):
    first = AuditLogger(log_dir=tmp_path)
    first.log_event(EventType.SESSION_LOCKED, EventSeverity.INFO, "one")
    first.close()

    second = AuditLogger(log_dir=tmp_path)
    second.log_event(EventType.SESSION_LOCKED, EventSeverity.INFO, "two")
    messages = [e["message"] for e in second.read_events()]
    second.close()

    assert messages == ["one", "two"]


def test_global_logger_is_singleton():
    assert get_audit_logger() is get_audit_logger()


def test_log_security_event_uses_global_logger():
    event_id = log_security_event(EventType.VAULT_SYNC_REFUSED, EventSeverity.ALERT, "refused")
    events = audit_log.get_audit_logger().read_events()
    assert [e["event_id"] for e in events] == [event_id]


def test_loggers_do_not_share_events(tmp_path):
    first = AuditLogger(log_dir=tmp_path / "first")
    second = AuditLogger(log_dir=tmp_path / "second")
    try:
        first.log_event(EventType.VAULT_SAVED, EventSeverity.INFO, "only first")
        assert [e["message"] for e in first.read_events()] == ["only first"]
        assert second.read_events() == []
    finally:
        first.close()
        second.close()
