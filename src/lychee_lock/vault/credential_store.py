# LycheeLock - Credential Store
#
# In-memory, ordered collection of PasswordEntry records plus transient
# loading/error status. All mutations are synchronous and local; nothing
# here touches the remote store (persistence is SyncEngine.save()).

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from .errors import StatusError
from .models import EDITABLE_FIELDS, PasswordEntry, utc_now
from .observable import StateContainer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VaultState:
    """Snapshot published to observers."""

    entries: Tuple[PasswordEntry, ...] = ()
    is_loading: bool = False
    error: Optional[StatusError] = None


class CredentialStore:
    """
    Owns the decrypted credential collection for one session.

    Observers receive a fresh VaultState after every change::

        store = CredentialStore()
        store.subscribe(lambda state: print(len(state.entries)))
        entry = store.add({"name": "Gmail", "password": "..."})
        store.update(entry.id, username="me@example.com")
        store.delete(entry.id)
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._state: StateContainer[VaultState] = StateContainer(VaultState())
        self._clock = clock

    # ── Accessors ────────────────────────────────────────────────────

    @property
    def state(self) -> VaultState:
        return self._state.get()

    @property
    def entries(self) -> Tuple[PasswordEntry, ...]:
        return self._state.get().entries

    def get(self, entry_id: str) -> Optional[PasswordEntry]:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    def subscribe(self, observer: Callable[[VaultState], None]) -> Callable[[], None]:
        return self._state.subscribe(observer)

    # ── Mutations ────────────────────────────────────────────────────

    def add(self, fields: Optional[Dict[str, Any]] = None, **kwargs) -> PasswordEntry:
        """
        Append a new entry.

        Args:
            fields: Entry fields without id or timestamps
            **kwargs: Same, as keywords

        Returns:
            The created entry (fresh id, createdAt == updatedAt == now)

        Raises:
            ValueError: If an unknown or reserved field is given
        """
        values = dict(fields or {}, **kwargs)
        self._check_fields(values)

        existing = {entry.id for entry in self.entries}
        entry_id = str(uuid.uuid4())
        while entry_id in existing:
            entry_id = str(uuid.uuid4())

        now = self._clock()
        entry = PasswordEntry(
            id=entry_id,
            name=values.get("name", ""),
            username=values.get("username", ""),
            password=values.get("password", ""),
            url=values.get("url", ""),
            notes=values.get("notes", ""),
            category=values.get("category", "general"),
            created_at=now,
            updated_at=now,
        )

        self._state.update(lambda s: replace(s, entries=s.entries + (entry,)))
        logger.debug("Added vault entry %s", entry_id)
        return entry

    def update(self, entry_id: str, fields: Optional[Dict[str, Any]] = None, **kwargs) -> Optional[PasswordEntry]:
        """
        Merge fields into one entry and bump its updatedAt.

        Returns:
            The updated entry, or None if no entry has that id
        """
        values = dict(fields or {}, **kwargs)
        self._check_fields(values)

        updated: Optional[PasswordEntry] = None

        def apply(state: VaultState) -> VaultState:
            nonlocal updated
            entries = list(state.entries)
            for index, entry in enumerate(entries):
                if entry.id == entry_id:
                    updated = replace(
                        entry, **values, updated_at=self._next_timestamp(entry.updated_at)
                    )
                    entries[index] = updated
                    return replace(state, entries=tuple(entries))
            return state

        if self.get(entry_id) is None:
            logger.debug("Update ignored: no vault entry %s", entry_id)
            return None

        self._state.update(apply)
        return updated

    def delete(self, entry_id: str) -> bool:
        """Remove an entry. Returns False (and changes nothing) if absent."""
        if self.get(entry_id) is None:
            return False

        self._state.update(
            lambda s: replace(s, entries=tuple(e for e in s.entries if e.id != entry_id))
        )
        logger.debug("Deleted vault entry %s", entry_id)
        return True

    def reset(self) -> None:
        """Clear to the initial empty state (logout)."""
        self._state.reset()

    # ── Sync status (driven by SyncEngine) ───────────────────────────

    def begin_sync(self) -> None:
        self._state.update(lambda s: replace(s, is_loading=True, error=None))

    def finish_sync(self, error: Optional[StatusError] = None) -> None:
        self._state.update(lambda s: replace(s, is_loading=False, error=error))

    def replace_entries(self, entries: Iterable[PasswordEntry], error: Optional[StatusError] = None) -> None:
        """Swap in a whole collection and end the sync in one notification."""
        entries = tuple(entries)
        self._state.set(VaultState(entries=entries, is_loading=False, error=error))

    def set_error(self, error: StatusError) -> None:
        self._state.update(lambda s: replace(s, error=error))

    # ── Helpers ──────────────────────────────────────────────────────

    def _next_timestamp(self, previous: datetime) -> datetime:
        now = self._clock()
        if now <= previous:
            now = previous + timedelta(microseconds=1)
        return now

    @staticmethod
    def _check_fields(values: Dict[str, Any]) -> None:
        unknown = set(values) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot set field(s): {', '.join(sorted(unknown))}")
        for name, value in values.items():
            if not isinstance(value, str):
                raise ValueError(f"Field {name!r} must be a string")
