"""SQLite-backed key-value store holding one serialized collection per namespace."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Mapping, Optional, Sequence

from .errors import ConflictError

LOGGER = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "schema.sql"


def _create_connection(store_url: str) -> sqlite3.Connection:
    """Instantiate a SQLite connection for the provided URL."""

    if store_url == "sqlite:///:memory:":
        db_path = ":memory:"
    elif store_url.startswith("sqlite:///"):
        db_path = store_url.replace("sqlite:///", "", 1)
    elif store_url.startswith("sqlite://"):
        db_path = store_url.replace("sqlite://", "", 1)
    else:
        raise ValueError("Only sqlite store URLs are supported in this implementation.")

    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(db_path, check_same_thread=False)
    connection.row_factory = sqlite3.Row
    return connection


def execute(db: sqlite3.Connection, query: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
    """Execute a write query and commit immediately."""

    cursor = db.execute(query, params or [])
    db.commit()
    return cursor


def query_all(db: sqlite3.Connection, query: str, params: Sequence[Any] | None = None) -> list[sqlite3.Row]:
    """Execute a read query returning multiple rows."""

    cursor = db.execute(query, params or [])
    return cursor.fetchall()


def query_one(db: sqlite3.Connection, query: str, params: Sequence[Any] | None = None) -> sqlite3.Row | None:
    """Execute a read query returning a single row."""

    cursor = db.execute(query, params or [])
    return cursor.fetchone()


class KeyValueStore:
    """Durable namespace -> bytes storage with a version stamp per namespace.

    Reads and writes are coroutines: each one yields to the event loop (after
    an optional simulated latency) before touching SQLite, and each SQLite
    write is atomic. Writes may be guarded by the versions of other
    namespaces, but only one namespace is ever written at a time.

    ``write`` accepts an ``expected_version``; when given, the write only
    lands if the stored version still matches, otherwise ``ConflictError``
    is raised. ``locked`` hands out per-namespace asyncio locks so callers in
    the same process can serialize their read-modify-write cycles.
    """

    def __init__(self, connection: sqlite3.Connection, latency: float = 0.0, url: str = "") -> None:
        self._connection: Optional[sqlite3.Connection] = connection
        self.latency = latency
        self.url = url
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    @classmethod
    def open(cls, store_url: str, latency_ms: int = 0) -> "KeyValueStore":
        """Open the store at ``store_url`` and make sure the schema exists."""

        store = cls(_create_connection(store_url), latency=latency_ms / 1000, url=store_url)
        store.ensure_schema()
        LOGGER.debug("Opened key-value store at %s", store_url)
        return store

    def ensure_schema(self) -> None:
        """Create the ``kv_store`` table by running the schema script."""

        with SCHEMA_PATH.open("r", encoding="utf-8") as sql_file:
            self.connection.executescript(sql_file.read())
        self.connection.commit()

    @property
    def connection(self) -> sqlite3.Connection:
        if self._connection is None:
            raise RuntimeError("The key-value store has been closed.")
        return self._connection

    @property
    def closed(self) -> bool:
        return self._connection is None

    def close(self) -> None:
        connection = self._connection
        self._connection = None
        if connection is not None:
            connection.close()
            LOGGER.debug("Closed key-value store at %s", self.url)

    def __enter__(self) -> "KeyValueStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    async def _suspend(self) -> None:
        await asyncio.sleep(self.latency)

    async def read(self, namespace: str) -> bytes | None:
        """Return the payload stored under ``namespace``, or None when absent."""

        payload, _ = await self.read_versioned(namespace)
        return payload

    async def read_versioned(self, namespace: str) -> tuple[bytes | None, int]:
        """Return ``(payload, version)``; an absent namespace is ``(None, 0)``."""

        await self._suspend()
        row = query_one(
            self.connection,
            "SELECT payload, version FROM kv_store WHERE namespace = ?",
            (namespace,),
        )
        if row is None:
            LOGGER.debug("Read %s: absent", namespace)
            return None, 0
        payload = row["payload"]
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        LOGGER.debug("Read %s: %d bytes at version %d", namespace, len(payload), row["version"])
        return bytes(payload), row["version"]

    async def write(
        self,
        namespace: str,
        payload: bytes,
        expected_version: Optional[int] = None,
        guards: Optional[Mapping[str, int]] = None,
    ) -> int:
        """Store ``payload`` under ``namespace`` and return the new version.

        ``guards`` maps other namespaces the caller read to the versions it
        saw; if any of them moved on, nothing is written and
        ``ConflictError`` names the namespace that changed. The guard checks
        and the write share one SQLite transaction.
        """

        await self._suspend()
        db = self.connection
        blob = sqlite3.Binary(payload)
        db.execute("BEGIN IMMEDIATE")
        try:
            for guarded, seen in (guards or {}).items():
                if self._version(guarded) != seen:
                    raise self._conflict(guarded, seen)
            if expected_version is None:
                db.execute(
                    """
                    INSERT INTO kv_store (namespace, payload, version)
                    VALUES (?, ?, 1)
                    ON CONFLICT(namespace) DO UPDATE SET
                        payload = excluded.payload,
                        version = kv_store.version + 1,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (namespace, blob),
                )
            elif expected_version == 0:
                try:
                    db.execute(
                        "INSERT INTO kv_store (namespace, payload, version) VALUES (?, ?, 1)",
                        (namespace, blob),
                    )
                except sqlite3.IntegrityError as exc:
                    raise self._conflict(namespace, expected_version) from exc
            else:
                cursor = db.execute(
                    """
                    UPDATE kv_store
                    SET payload = ?, version = version + 1, updated_at = CURRENT_TIMESTAMP
                    WHERE namespace = ? AND version = ?
                    """,
                    (blob, namespace, expected_version),
                )
                if cursor.rowcount == 0:
                    raise self._conflict(namespace, expected_version)
            version = self._version(namespace)
        except Exception:
            db.rollback()
            raise
        db.commit()
        LOGGER.debug("Wrote %s: %d bytes at version %d", namespace, len(payload), version)
        return version

    def _version(self, namespace: str) -> int:
        row = query_one(self.connection, "SELECT version FROM kv_store WHERE namespace = ?", (namespace,))
        return row["version"] if row else 0

    def _conflict(self, namespace: str, expected_version: int) -> ConflictError:
        actual = self._version(namespace)
        LOGGER.warning(
            "Write conflict on %s: expected version %d, found %d", namespace, expected_version, actual
        )
        return ConflictError(
            f"Namespace '{namespace}' changed concurrently (expected version {expected_version}, found {actual}).",
            namespace=namespace,
            expected_version=expected_version,
            actual_version=actual,
        )

    async def delete_namespace(self, namespace: str) -> bool:
        """Drop a namespace entirely. Returns True if something was removed."""

        await self._suspend()
        cursor = execute(self.connection, "DELETE FROM kv_store WHERE namespace = ?", (namespace,))
        return cursor.rowcount > 0

    def namespaces(self) -> list[str]:
        rows = query_all(self.connection, "SELECT namespace FROM kv_store ORDER BY namespace ASC")
        return [row["namespace"] for row in rows]

    def _lock_for(self, namespace: str) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if loop is not self._lock_loop:
            # asyncio locks are bound to the loop that first waits on them
            self._locks = {}
            self._lock_loop = loop
        lock = self._locks.get(namespace)
        if lock is None:
            lock = self._locks[namespace] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def locked(self, *namespaces: str) -> AsyncIterator[None]:
        """Hold the writer lock of every namespace given, acquired in sorted order."""

        acquired: list[asyncio.Lock] = []
        try:
            for namespace in sorted(set(namespaces)):
                lock = self._lock_for(namespace)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
