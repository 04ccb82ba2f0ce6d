"""
Tests for Leaseguard document stores.
"""

import asyncio

import pytest

from leaseguard.orchestration.exceptions import (
    ConcurrentModificationError,
    DocumentNotFoundError,
)
from leaseguard.orchestration.store import MemoryDocumentStore, SQLiteDocumentStore


async def open_store(kind, tmp_path):
    if kind == "memory":
        store = MemoryDocumentStore()
    else:
        store = SQLiteDocumentStore(tmp_path / "leaseguard.db")
    await store.initialize()
    return store


@pytest.fixture(params=["memory", "sqlite"])
def kind(request):
    return request.param


class TestDocumentStore:
    """Behavior shared by every store backend."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, kind, tmp_path):
        """Test writes stamp increasing revisions."""
        store = await open_store(kind, tmp_path)

        first = await store.set("workflows", "wf-1", {"id": "wf-1", "name": "Audit"})
        second = await store.set("workflows", "wf-1", {"id": "wf-1", "name": "Audit v2"})

        assert first["revision"] == 1
        assert second["revision"] == 2
        assert (await store.get("workflows", "wf-1"))["name"] == "Audit v2"
        assert await store.get("workflows", "missing") is None

        await store.close()

    @pytest.mark.asyncio
    async def test_revision_conflict(self, kind, tmp_path):
        """Test expected revisions are enforced."""
        store = await open_store(kind, tmp_path)

        await store.set("executions", "ex-1", {"id": "ex-1"}, expected_revision=0)

        with pytest.raises(ConcurrentModificationError):
            await store.set("executions", "ex-1", {"id": "ex-1"}, expected_revision=0)

        updated = await store.update("executions", "ex-1", {"status": "failed"}, expected_revision=1)
        assert updated["revision"] == 2
        assert updated["status"] == "failed"

        with pytest.raises(ConcurrentModificationError):
            await store.update("executions", "ex-1", {"status": "completed"}, expected_revision=1)

        await store.close()

    @pytest.mark.asyncio
    async def test_update_missing_document(self, kind, tmp_path):
        """Test partial updates require an existing document."""
        store = await open_store(kind, tmp_path)

        with pytest.raises(DocumentNotFoundError):
            await store.update("approvals", "nope", {"status": "approved"})

        await store.close()

    @pytest.mark.asyncio
    async def test_query(self, kind, tmp_path):
        """Test equality filters, ordering and limits."""
        store = await open_store(kind, tmp_path)

        for i, status in enumerate(["completed", "failed", "completed"]):
            await store.set("executions", f"ex-{i}", {
                "id": f"ex-{i}",
                "workflow_id": "wf-1",
                "status": status,
                "started_at": f"2024-01-0{i + 1}T00:00:00",
            })
        await store.set("executions", "other", {"id": "other", "workflow_id": "wf-2"})

        completed = await store.query(
            "executions",
            filters={"workflow_id": "wf-1", "status": "completed"},
            order_by="started_at",
            descending=True,
        )
        assert [d["id"] for d in completed] == ["ex-2", "ex-0"]

        latest = await store.query(
            "executions",
            filters={"workflow_id": "wf-1"},
            order_by="started_at",
            descending=True,
            limit=1,
        )
        assert [d["id"] for d in latest] == ["ex-2"]

        await store.close()

    @pytest.mark.asyncio
    async def test_watch_wakes_on_write(self, kind, tmp_path):
        """Test watchers receive writes to their document only."""
        store = await open_store(kind, tmp_path)
        await store.set("approvals", "ap-1", {"id": "ap-1", "status": "pending"})

        async with store.watch("approvals", "ap-1") as watch:
            waiter = asyncio.create_task(watch.next())
            await store.set("approvals", "ap-2", {"id": "ap-2"})
            await store.update("approvals", "ap-1", {"status": "approved"})

            doc = await asyncio.wait_for(waiter, timeout=1)

        assert doc["status"] == "approved"
        assert doc["revision"] == 2
        assert store._watchers == {}

        await store.close()

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, kind, tmp_path):
        """Test callers cannot mutate stored state through results."""
        store = await open_store(kind, tmp_path)

        await store.set("workflows", "wf-1", {"id": "wf-1", "steps": [{"id": "a"}]})
        doc = await store.get("workflows", "wf-1")
        doc["steps"].append({"id": "b"})

        assert len((await store.get("workflows", "wf-1"))["steps"]) == 1

        await store.close()


class TestPersistence:
    """Tests for data surviving a reopen."""

    @pytest.mark.asyncio
    async def test_memory_snapshots(self, tmp_path):
        """Test JSON snapshots are reloaded."""
        store = MemoryDocumentStore(tmp_path / "store")
        await store.initialize()
        await store.set("workflows", "wf-1", {"id": "wf-1", "name": "Audit"})
        await store.close()

        assert (tmp_path / "store" / "workflows.json").exists()

        reopened = MemoryDocumentStore(tmp_path / "store")
        await reopened.initialize()
        doc = await reopened.get("workflows", "wf-1")

        assert doc["name"] == "Audit"
        assert doc["revision"] == 1

    @pytest.mark.asyncio
    async def test_sqlite_reopen(self, tmp_path):
        """Test SQLite data is durable across connections."""
        path = tmp_path / "data" / "leaseguard.db"

        store = SQLiteDocumentStore(path)
        await store.initialize()
        await store.set("approvals", "ap-1", {"id": "ap-1", "status": "pending"})
        await store.close()

        reopened = SQLiteDocumentStore(path)
        await reopened.initialize()
        doc = await reopened.get("approvals", "ap-1")
        await reopened.update("approvals", "ap-1", {"status": "approved"}, expected_revision=1)

        assert doc["status"] == "pending"
        assert (await reopened.get("approvals", "ap-1"))["revision"] == 2

        await reopened.close()


class TestSharedSQLiteFile:
    """Tests for several store instances on one database file."""

    @pytest.mark.asyncio
    async def test_only_one_conditional_write_wins(self, tmp_path):
        """Test revision checks hold across connections."""
        path = tmp_path / "shared.db"
        first = SQLiteDocumentStore(path)
        second = SQLiteDocumentStore(path)
        await first.initialize()
        await second.initialize()

        await first.set("approvals", "ap-1", {"id": "ap-1", "status": "pending"}, expected_revision=0)

        results = await asyncio.gather(
            first.update("approvals", "ap-1", {"status": "timeout"}, expected_revision=1),
            second.update("approvals", "ap-1", {"status": "approved"}, expected_revision=1),
            return_exceptions=True,
        )

        written = [r for r in results if isinstance(r, dict)]
        conflicts = [r for r in results if isinstance(r, ConcurrentModificationError)]
        assert len(written) == 1
        assert len(conflicts) == 1
        assert conflicts[0].actual == 2

        stored = await second.get("approvals", "ap-1")
        assert stored["revision"] == 2
        assert stored["status"] == written[0]["status"]

        await first.close()
        await second.close()

    @pytest.mark.asyncio
    async def test_create_conflicts_across_connections(self, tmp_path):
        """Test two creators of the same document cannot both succeed."""
        path = tmp_path / "shared.db"
        first = SQLiteDocumentStore(path)
        second = SQLiteDocumentStore(path)
        await first.initialize()
        await second.initialize()

        await first.set("executions", "ex-1", {"id": "ex-1"}, expected_revision=0)

        with pytest.raises(ConcurrentModificationError):
            await second.set("executions", "ex-1", {"id": "ex-1"}, expected_revision=0)

        # A failed check leaves the connection usable
        updated = await second.update("executions", "ex-1", {"status": "running"}, expected_revision=1)
        assert updated["revision"] == 2

        await first.close()
        await second.close()
