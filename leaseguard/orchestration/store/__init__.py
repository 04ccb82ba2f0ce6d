"""Document stores for orchestration state."""

from leaseguard.orchestration.store.base import (
    APPROVALS,
    EXECUTION_LOGS,
    EXECUTIONS,
    WORKFLOWS,
    DocumentStore,
    DocumentWatch,
)
from leaseguard.orchestration.store.memory import MemoryDocumentStore
from leaseguard.orchestration.store.sqlite import SQLiteDocumentStore

__all__ = [
    "APPROVALS",
    "EXECUTION_LOGS",
    "EXECUTIONS",
    "WORKFLOWS",
    "DocumentStore",
    "DocumentWatch",
    "MemoryDocumentStore",
    "SQLiteDocumentStore",
]
