# LycheeLock - Vault Data Models
#
#   PasswordEntry - one credential inside the encrypted vault payload
#   VaultRecord   - the single remote row per account (base64 text columns)
#   Account       - identity supplied by the external account provider
#
# Entries serialize with camelCase timestamp keys so payloads stay
# compatible with vaults written by the browser client.

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# Fields a caller may set on add() and change on update()
EDITABLE_FIELDS = ("name", "username", "password", "url", "notes", "category")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """ISO 8601 UTC with a trailing Z."""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class PasswordEntry:
    """A single stored credential.

    ``id`` and ``created_at`` never change after creation; ``updated_at``
    moves forward on every mutation of this entry.
    """

    id: str
    name: str
    username: str = ""
    password: str = field(default="", repr=False)
    url: str = ""
    notes: str = ""
    category: str = "general"
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "password": self.password,
            "url": self.url,
            "notes": self.notes,
            "category": self.category,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PasswordEntry":
        """Build an entry from its payload form.

        Defaults are filled only for keys that are absent, so an entry
        saved with an empty value loads back unchanged.

        Raises:
            ValueError: If the item is not an object, the id is missing,
                or a field or timestamp has the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError("vault entry must be an object")
        if not data.get("id"):
            raise ValueError("entry is missing an id")

        values = {}
        for name in EDITABLE_FIELDS:
            value = data.get(name, "general" if name == "category" else "")
            if not isinstance(value, str):
                raise ValueError(f"entry field {name!r} must be a string")
            values[name] = value

        created = data.get("createdAt", data.get("created_at"))
        updated = data.get("updatedAt", data.get("updated_at", created))
        for stamp in (created, updated):
            if stamp is not None and not isinstance(stamp, str):
                raise ValueError("entry timestamps must be strings")

        return cls(
            id=str(data["id"]),
            created_at=parse_timestamp(created) if created else utc_now(),
            updated_at=parse_timestamp(updated) if updated else utc_now(),
            **values,
        )


def entries_to_payload(entries) -> Dict[str, Any]:
    """Plaintext vault payload for a collection of entries."""
    return {"entries": [entry.to_dict() for entry in entries]}


def entries_from_payload(payload: Any) -> List[PasswordEntry]:
    """Parse a decrypted payload.

    Accepts ``{"entries": [...]}`` and the legacy bare list form.

    Raises:
        ValueError: If the payload shape is invalid or ids repeat.
    """
    if isinstance(payload, dict):
        items = payload.get("entries", [])
    elif isinstance(payload, list):
        items = payload
    else:
        raise ValueError("vault payload must be an object or a list")

    if not isinstance(items, list):
        raise ValueError("vault entries must be a list")

    entries = [PasswordEntry.from_dict(item) for item in items]
    ids = [entry.id for entry in entries]
    if len(ids) != len(set(ids)):
        raise ValueError("vault payload contains duplicate entry ids")
    return entries


@dataclass(frozen=True)
class VaultRecord:
    """Remote row: ``vaults(user_id UNIQUE, encrypted_data, iv, updated_at)``."""

    user_id: str
    encrypted_data: str
    iv: str
    updated_at: str

    @property
    def is_empty(self) -> bool:
        return not self.encrypted_data or not self.iv

    def to_row(self) -> Dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "VaultRecord":
        return cls(
            user_id=str(row["user_id"]),
            encrypted_data=row.get("encrypted_data") or "",
            iv=row.get("iv") or "",
            updated_at=str(row.get("updated_at") or ""),
        )


@dataclass(frozen=True)
class Account:
    """Account identity from the external account/session provider."""

    id: str
    username: str
    email: str = ""
    totp_enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "totp_enabled": self.totp_enabled,
        }


@dataclass(frozen=True)
class TotpEnrollment:
    """Material shown to the user when enrolling an authenticator."""

    secret: str = field(repr=False)
    uri: str = field(repr=False)
    qr_data_url: Optional[str] = field(default=None, repr=False)
