"""
Shared pytest fixtures for the LycheeLock test suite.

The autouse fixture below redirects the global AuditLogger to a temp
directory so tests never write into the real ./audit_logs/ directory.
"""

import pytest

from lychee_lock.vault.encryption import derive_key

# Lowest work factor the KDF accepts; keeps the suite fast
TEST_ITERATIONS = 100_000


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test."""
    import lychee_lock.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    orig_init = audit_mod.AuditLogger.__init__
    created = []

    def patched_init(self, log_dir=None):
        orig_init(self, log_dir=log_dir or tmp_path / "audit_logs")
        created.append(self)

    monkeypatch.setattr(audit_mod.AuditLogger, "__init__", patched_init)

    yield

    audit_mod._audit_logger = old_logger

    # Detach every file handler opened during the test
    for audit_logger in created:
        audit_logger.close()


@pytest.fixture(scope="session")
def zero_salt():
    return bytes(16)


@pytest.fixture(scope="session")
def master_key(zero_salt):
    """Key for 'correct horse battery staple' over 16 zero bytes."""
    return derive_key("correct horse battery staple", zero_salt, TEST_ITERATIONS)


@pytest.fixture(scope="session")
def other_key(zero_salt):
    """Key re-derived from a different password (wrong key)."""
    return derive_key("Tr0ub4dor&3", zero_salt, TEST_ITERATIONS)
