"""
Leaseguard In-Memory Store

Process-local document store with optional JSON snapshots on disk.
"""

from __future__ import annotations

import copy
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from leaseguard.orchestration.store.base import DocumentStore

logger = structlog.get_logger(__name__)


class MemoryDocumentStore(DocumentStore):
    """
    Document store held in memory.

    When ``persistence_path`` is set each collection is snapshotted to
    ``<persistence_path>/<collection>.json`` after every write and
    reloaded on initialize.
    """

    def __init__(
        self,
        persistence_path: Optional[Path] = None,
        auto_persist: bool = True,
    ):
        super().__init__()
        self.persistence_path = Path(persistence_path) if persistence_path else None
        self.auto_persist = auto_persist
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    async def _open(self) -> None:
        if self.persistence_path and self.persistence_path.exists():
            self._load_from_disk()

    async def _close(self) -> None:
        if self.persistence_path and self.auto_persist:
            for collection in list(self._collections):
                self._save_to_disk(collection)

    async def _read(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def _write(self, collection: str, doc_id: str, doc: Dict[str, Any]) -> None:
        self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(doc)
        if self.persistence_path and self.auto_persist:
            self._save_to_disk(collection)

    async def _scan(self, collection: str) -> List[Dict[str, Any]]:
        return [copy.deepcopy(d) for d in self._collections.get(collection, {}).values()]

    def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))

    # === Persistence ===

    def _load_from_disk(self) -> None:
        for path in sorted(self.persistence_path.glob("*.json")):
            with open(path, "r") as f:
                data = json.load(f)
            self._collections[path.stem] = {
                doc["id"]: doc for doc in data.get("documents", [])
            }
            logger.info("collection_loaded", collection=path.stem, count=len(self._collections[path.stem]))

    def _save_to_disk(self, collection: str) -> None:
        self.persistence_path.mkdir(parents=True, exist_ok=True)
        path = self.persistence_path / f"{collection}.json"
        data = {
            "documents": list(self._collections.get(collection, {}).values()),
            "saved_at": datetime.now().isoformat(),
        }
        with open(path, "w") as f:
            json.dump(data, f, indent=2, default=str)
