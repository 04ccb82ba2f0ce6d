"""
Leaseguard Document Store

Abstract document store used for workflows, executions, approvals and
execution logs. Every stored document carries a ``revision`` that is
incremented on each write; writers may pass ``expected_revision`` to get
optimistic concurrency control. Writes are published to in-process
watchers so waiters can wake on change instead of polling.
"""

from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import structlog

from leaseguard.orchestration.exceptions import (
    ConcurrentModificationError,
    DocumentNotFoundError,
)

logger = structlog.get_logger(__name__)

REVISION_FIELD = "revision"

# Collection names
WORKFLOWS = "workflows"
EXECUTIONS = "executions"
APPROVALS = "approvals"
EXECUTION_LOGS = "execution_logs"


class DocumentWatch:
    """Subscription to writes on a single document."""

    def __init__(self, key: Tuple[str, str]):
        self.key = key
        self._queue: asyncio.Queue = asyncio.Queue()

    def _push(self, doc: Dict[str, Any]) -> None:
        self._queue.put_nowait(doc)

    async def next(self) -> Dict[str, Any]:
        """Wait for the next written version of the document."""
        return await self._queue.get()


class DocumentStore(ABC):
    """
    Base class for document stores.

    Subclasses implement raw reads and writes; revision checking and
    change publication live here.
    """

    def __init__(self):
        self._watchers: Dict[Tuple[str, str], List[DocumentWatch]] = {}
        self._write_lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self) -> None:
        """Prepare the store for use."""
        if self._initialized:
            return
        await self._open()
        self._initialized = True
        logger.info("document_store_initialized", store=type(self).__name__)

    async def close(self) -> None:
        """Release store resources."""
        if not self._initialized:
            return
        await self._close()
        self._initialized = False
        logger.info("document_store_closed", store=type(self).__name__)

    # === Backend hooks ===

    async def _open(self) -> None:
        pass

    async def _close(self) -> None:
        pass

    @abstractmethod
    async def _read(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Read a raw document."""

    @abstractmethod
    async def _write(self, collection: str, doc_id: str, doc: Dict[str, Any]) -> None:
        """Write a raw document."""

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        """Make one read-check-write atomic against other writers."""
        yield

    @abstractmethod
    async def _scan(self, collection: str) -> List[Dict[str, Any]]:
        """Read every document in a collection."""

    # === Public API ===

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Get a document by ID."""
        return await self._read(collection, doc_id)

    async def set(
        self,
        collection: str,
        doc_id: str,
        doc: Dict[str, Any],
        expected_revision: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Write a whole document.

        Returns the stored document with its new revision.
        """
        async with self._write_lock, self._transaction():
            current = await self._read(collection, doc_id)
            self._check_revision(collection, doc_id, current, expected_revision)
            stored = dict(doc)
            stored[REVISION_FIELD] = self._revision_of(current) + 1
            await self._write(collection, doc_id, stored)

        self._publish(collection, doc_id, stored)
        return copy.deepcopy(stored)

    async def update(
        self,
        collection: str,
        doc_id: str,
        changes: Dict[str, Any],
        expected_revision: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Merge top-level fields into an existing document."""
        async with self._write_lock, self._transaction():
            current = await self._read(collection, doc_id)
            if current is None:
                raise DocumentNotFoundError(collection, doc_id)
            self._check_revision(collection, doc_id, current, expected_revision)
            stored = dict(current)
            stored.update(changes)
            stored[REVISION_FIELD] = self._revision_of(current) + 1
            await self._write(collection, doc_id, stored)

        self._publish(collection, doc_id, stored)
        return copy.deepcopy(stored)

    async def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Query documents by top-level equality filters.

        Documents missing the ``order_by`` field sort first.
        """
        docs = await self._scan(collection)

        if filters:
            docs = [
                d for d in docs
                if all(d.get(k) == v for k, v in filters.items())
            ]

        if order_by:
            docs.sort(
                key=lambda d: (d.get(order_by) is not None, d.get(order_by) or ""),
                reverse=descending,
            )

        if limit is not None:
            docs = docs[:limit]

        return docs

    @asynccontextmanager
    async def watch(self, collection: str, doc_id: str) -> AsyncIterator[DocumentWatch]:
        """Subscribe to writes on one document for the duration of the block."""
        key = (collection, doc_id)
        watch = DocumentWatch(key)
        self._watchers.setdefault(key, []).append(watch)
        try:
            yield watch
        finally:
            watchers = self._watchers.get(key, [])
            if watch in watchers:
                watchers.remove(watch)
            if not watchers:
                self._watchers.pop(key, None)

    # === Internal ===

    @staticmethod
    def _revision_of(doc: Optional[Dict[str, Any]]) -> int:
        if doc is None:
            return 0
        return int(doc.get(REVISION_FIELD, 0))

    def _check_revision(
        self,
        collection: str,
        doc_id: str,
        current: Optional[Dict[str, Any]],
        expected: Optional[int],
    ) -> None:
        if expected is None:
            return
        actual = self._revision_of(current)
        if actual != expected:
            raise ConcurrentModificationError(collection, doc_id, expected, actual)

    def _publish(self, collection: str, doc_id: str, doc: Dict[str, Any]) -> None:
        for watch in list(self._watchers.get((collection, doc_id), [])):
            watch._push(copy.deepcopy(doc))
