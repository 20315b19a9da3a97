# LycheeLock - Remote Vault Record Stores
#
# Single-row-per-account persistence for the encrypted vault:
#
#   vaults(user_id UNIQUE, encrypted_data TEXT, iv TEXT, updated_at TEXT)
#
# Every adapter offers the same two calls: get_by_user() and upsert()
# keyed on user_id. The store only ever sees base64 ciphertext; it has no
# merge logic, so the latest successful upsert replaces the row wholesale.
#
# Adapters:
#   InMemoryVaultStore  - dict-backed (tests, ephemeral sessions)
#   SqliteVaultStore    - local SQLite file, WAL mode
#   PostgrestVaultStore - PostgREST / Supabase REST endpoint over httpx

import asyncio
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Optional, Union

import httpx

from ..core.config import Settings
from .errors import RemoteUnavailableError
from .models import VaultRecord

logger = logging.getLogger(__name__)

TABLE_NAME = "vaults"

# Retry configuration for the REST adapter
MAX_RETRIES = 3
INITIAL_BACKOFF_SEC = 0.5
BACKOFF_MULTIPLIER = 2.0
REQUEST_TIMEOUT_SEC = 15


class RemoteVaultStore(ABC):
    """Contract for the remote single-record vault store.

    Implementations raise ``RemoteUnavailableError`` for any transport or
    storage failure. A missing row is not a failure: ``get_by_user``
    returns ``None``.
    """

    @abstractmethod
    async def get_by_user(self, user_id: str) -> Optional[VaultRecord]:
        """Fetch the account's record, or None if it has never been saved."""

    @abstractmethod
    async def upsert(self, record: VaultRecord) -> None:
        """Insert or wholesale-replace the row for ``record.user_id``."""

    async def close(self) -> None:
        """Release any held resources."""


class InMemoryVaultStore(RemoteVaultStore):
    """Dict-backed store. Yields to the event loop on every call so
    concurrency behaves like a real remote."""

    def __init__(self):
        self._rows: Dict[str, VaultRecord] = {}
        self.get_calls = 0
        self.upsert_calls = 0

    async def get_by_user(self, user_id: str) -> Optional[VaultRecord]:
        self.get_calls += 1
        await asyncio.sleep(0)
        return self._rows.get(user_id)

    async def upsert(self, record: VaultRecord) -> None:
        self.upsert_calls += 1
        await asyncio.sleep(0)
        self._rows[record.user_id] = record

    def __len__(self) -> int:
        return len(self._rows)


class SqliteVaultStore(RemoteVaultStore):
    """Vault records in a local SQLite file.

    Usage::

        store = SqliteVaultStore("data/vaults.db")
        await store.upsert(record)
        record = await store.get_by_user("user-uuid")
    """

    def __init__(self, db_path: Union[str, Path] = "data/vaults.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_database()

    @contextmanager
    def _connect(self):
        """Open a WAL-mode SQLite connection; auto-closes on exit."""
        conn = sqlite3.connect(str(self.db_path), timeout=10, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_database(self):
        """Create the vaults table if it doesn't exist."""
        with self._connect() as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                    user_id TEXT PRIMARY KEY,
                    encrypted_data TEXT NOT NULL,
                    iv TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

    def _get_sync(self, user_id: str) -> Optional[VaultRecord]:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT user_id, encrypted_data, iv, updated_at FROM {TABLE_NAME} WHERE user_id = ?",
                    (user_id,),
                ).fetchone()
        if row is None:
            return None
        return VaultRecord.from_row(dict(row))

    def _upsert_sync(self, record: VaultRecord) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    f"""
                    INSERT INTO {TABLE_NAME} (user_id, encrypted_data, iv, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET
                        encrypted_data = excluded.encrypted_data,
                        iv = excluded.iv,
                        updated_at = excluded.updated_at
                    """,
                    (record.user_id, record.encrypted_data, record.iv, record.updated_at),
                )

    async def get_by_user(self, user_id: str) -> Optional[VaultRecord]:
        try:
            return await asyncio.to_thread(self._get_sync, user_id)
        except sqlite3.Error as e:
            logger.error("Vault record read failed: %s", e)
            raise RemoteUnavailableError(str(e)) from e

    async def upsert(self, record: VaultRecord) -> None:
        try:
            await asyncio.to_thread(self._upsert_sync, record)
        except sqlite3.Error as e:
            logger.error("Vault record write failed: %s", e)
            raise RemoteUnavailableError(str(e)) from e


class PostgrestVaultStore(RemoteVaultStore):
    """Vault records behind a PostgREST (e.g. Supabase) REST endpoint.

    Reads use ``GET /rest/v1/vaults?user_id=eq.<id>``; writes use
    ``POST /rest/v1/vaults?on_conflict=user_id`` with
    ``Prefer: resolution=merge-duplicates``. Rate limits and server
    errors are retried with exponential backoff.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        access_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = MAX_RETRIES,
        initial_backoff: float = INITIAL_BACKOFF_SEC,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._access_token = access_token
        self._max_retries = max(1, max_retries)
        self._initial_backoff = initial_backoff
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SEC)

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/rest/v1/{TABLE_NAME}"

    def set_access_token(self, token: Optional[str]) -> None:
        """Bearer token of the signed-in account (row-level security)."""
        self._access_token = token

    def _build_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
        bearer = self._access_token or self._api_key
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    async def _request(self, method: str, **kwargs) -> httpx.Response:
        """Execute a request with retry + exponential backoff."""
        backoff = self._initial_backoff
        last_exc: Optional[Exception] = None
        headers = self._build_headers()
        headers.update(kwargs.pop("headers", {}))

        for attempt in range(1, self._max_retries + 1):
            try:
                resp = await self._client.request(method, self.endpoint, headers=headers, **kwargs)
            except httpx.HTTPError as exc:
                last_exc = exc
                logger.warning(
                    "Vault store request failed (%s), attempt %d/%d",
                    type(exc).__name__, attempt, self._max_retries,
                )
            else:
                if resp.status_code < 400:
                    return resp

                if resp.status_code == 429 or resp.status_code >= 500:
                    last_exc = httpx.HTTPStatusError(
                        f"status {resp.status_code}", request=resp.request, response=resp
                    )
                    retry_after = resp.headers.get("Retry-After")
                    logger.warning(
                        "Vault store returned %d, attempt %d/%d",
                        resp.status_code, attempt, self._max_retries,
                    )
                    if retry_after and attempt < self._max_retries:
                        try:
                            await asyncio.sleep(float(retry_after))
                            continue
                        except ValueError:
                            pass
                else:
                    logger.error("Vault store rejected request: %d", resp.status_code)
                    raise RemoteUnavailableError(f"vault store returned {resp.status_code}")

            if attempt < self._max_retries:
                await asyncio.sleep(backoff)
                backoff *= BACKOFF_MULTIPLIER

        raise RemoteUnavailableError(
            f"vault store request failed after {self._max_retries} attempts: {last_exc}"
        )

    async def get_by_user(self, user_id: str) -> Optional[VaultRecord]:
        resp = await self._request(
            "GET",
            params={"user_id": f"eq.{user_id}", "select": "*"},
        )
        try:
            rows = resp.json()
        except ValueError as e:
            raise RemoteUnavailableError("vault store returned invalid JSON") from e

        if not rows:
            return None
        if not isinstance(rows, list) or not isinstance(rows[0], dict):
            raise RemoteUnavailableError("vault store returned an unexpected payload")
        return VaultRecord.from_row(rows[0])

    async def upsert(self, record: VaultRecord) -> None:
        await self._request(
            "POST",
            params={"on_conflict": "user_id"},
            json=record.to_row(),
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def create_remote_store(settings: Settings) -> RemoteVaultStore:
    """Build the adapter named by ``settings.remote_backend``."""
    if settings.remote_backend == "memory":
        return InMemoryVaultStore()
    if settings.remote_backend == "postgrest":
        return PostgrestVaultStore(settings.postgrest_url, api_key=settings.postgrest_key)
    return SqliteVaultStore(settings.sqlite_path)
