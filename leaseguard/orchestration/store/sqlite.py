"""
Leaseguard SQLite Store

Durable document store on aiosqlite. Documents are kept as JSON text in
a single table keyed by collection and id, with WAL mode enabled.
Each revision-checked write runs in a ``BEGIN IMMEDIATE`` transaction, so
stores in other processes sharing the file see the conflict.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import aiosqlite
import structlog

from leaseguard.orchestration.store.base import REVISION_FIELD, DocumentStore

logger = structlog.get_logger(__name__)


class SQLiteDocumentStore(DocumentStore):
    """Document store backed by a SQLite database file."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS documents (
            collection TEXT NOT NULL,
            id TEXT NOT NULL,
            revision INTEGER NOT NULL,
            data TEXT NOT NULL,
            PRIMARY KEY (collection, id)
        )
    """

    def __init__(self, path: Path, busy_timeout_ms: int = 5000):
        super().__init__()
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: Optional[aiosqlite.Connection] = None

    async def _open(self) -> None:
        if str(self.path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(str(self.path), isolation_level=None)
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute(f"PRAGMA busy_timeout={self.busy_timeout_ms}")
        await self._conn.execute(self.SCHEMA)
        logger.info("sqlite_store_opened", path=str(self.path))

    async def _close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("SQLite store not initialized")
        return self._conn

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        await self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            await self.conn.rollback()
            raise
        await self.conn.commit()

    async def _read(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        cursor = await self.conn.execute(
            "SELECT data FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
        )
        row = await cursor.fetchone()
        await cursor.close()
        return json.loads(row[0]) if row else None

    async def _write(self, collection: str, doc_id: str, doc: Dict[str, Any]) -> None:
        await self.conn.execute(
            "INSERT OR REPLACE INTO documents (collection, id, revision, data) "
            "VALUES (?, ?, ?, ?)",
            (collection, doc_id, doc.get(REVISION_FIELD, 0), json.dumps(doc, default=str)),
        )

    async def _scan(self, collection: str) -> List[Dict[str, Any]]:
        cursor = await self.conn.execute(
            "SELECT data FROM documents WHERE collection = ?",
            (collection,),
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [json.loads(row[0]) for row in rows]
