"""
Leaseguard Execution Repository

Stores execution documents with revision checks. Only the task running
an execution writes its document, so a revision conflict means another
writer interfered and is raised rather than merged.
"""

from __future__ import annotations

from typing import List, Optional

import structlog

from leaseguard.orchestration.store.base import EXECUTIONS, DocumentStore
from leaseguard.orchestration.types import ExecutionStatus, WorkflowExecution

logger = structlog.get_logger(__name__)


class ExecutionRepository:
    """Persistence for workflow executions."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def create(self, execution: WorkflowExecution) -> WorkflowExecution:
        stored = await self.store.set(
            EXECUTIONS, execution.id, execution.to_dict(), expected_revision=0
        )
        execution.revision = stored["revision"]
        return execution

    async def save(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Write the execution, checking it was not changed underneath us."""
        stored = await self.store.set(
            EXECUTIONS,
            execution.id,
            execution.to_dict(),
            expected_revision=execution.revision,
        )
        execution.revision = stored["revision"]
        return execution

    async def get(self, execution_id: str) -> Optional[WorkflowExecution]:
        doc = await self.store.get(EXECUTIONS, execution_id)
        return WorkflowExecution.from_dict(doc) if doc else None

    async def list(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100,
    ) -> List[WorkflowExecution]:
        """Executions, newest first."""
        filters = {}
        if workflow_id:
            filters["workflow_id"] = workflow_id
        if status:
            filters["status"] = ExecutionStatus(status).value

        docs = await self.store.query(
            EXECUTIONS,
            filters=filters,
            order_by="started_at",
            descending=True,
            limit=limit,
        )
        return [WorkflowExecution.from_dict(d) for d in docs]
