"""
Leaseguard Execution History

Append-only audit log of execution outcomes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
import uuid

import structlog

from leaseguard.orchestration.store.base import EXECUTION_LOGS, DocumentStore
from leaseguard.orchestration.types import WorkflowExecution

logger = structlog.get_logger(__name__)


class ExecutionHistory:
    """Writes and reads execution log entries."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def record(
        self,
        execution: WorkflowExecution,
        event: str = "execution_finished",
        details: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Append a log entry for an execution."""
        now = datetime.now()
        end = execution.completed_at or now
        entry = {
            "id": str(uuid.uuid4()),
            "event": event,
            "execution_id": execution.id,
            "workflow_id": execution.workflow_id,
            "status": execution.status.value,
            "duration_ms": (end - execution.started_at).total_seconds() * 1000,
            "flags_raised": len(execution.flags),
            "timestamp": now.isoformat(),
            "details": details or {},
        }
        await self.store.set(EXECUTION_LOGS, entry["id"], entry)

        logger.info(
            "execution_logged",
            entry_event=event,
            execution_id=execution.id,
            status=entry["status"],
            duration_ms=entry["duration_ms"],
        )
        return entry

    async def entries(
        self,
        execution_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        filters = {}
        if execution_id:
            filters["execution_id"] = execution_id
        if workflow_id:
            filters["workflow_id"] = workflow_id
        return await self.store.query(
            EXECUTION_LOGS,
            filters=filters,
            order_by="timestamp",
            descending=True,
            limit=limit,
        )
