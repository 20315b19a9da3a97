# LycheeLock - Main Package
#
# Client-side encrypted password vault with TOTP-gated unlocking and
# single-record remote sync.

__version__ = "0.3.0"
__author__ = "LycheeLock Team"
__description__ = "Client-side encrypted password vault"

from .context import VaultContext
from .core import EventSeverity, EventType, Settings, get_audit_logger

__all__ = [
    "__version__",
    "VaultContext",
    "Settings",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
]
