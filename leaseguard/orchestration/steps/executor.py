"""
Leaseguard Step Executor

Runs a single workflow step: marks its StepRun, dispatches to the
handler for its type (or to the approval gateway) and records the
outcome. Errors are recorded on the StepRun and re-raised; retry and
terminal failure are decided by the engine.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional, TYPE_CHECKING

import structlog

from leaseguard.orchestration.exceptions import (
    OrchestrationError,
    StepExecutionError,
    StepTimeoutError,
    UnknownStepTypeError,
)
from leaseguard.orchestration.execution.context import ExecutionContext
from leaseguard.orchestration.execution.repository import ExecutionRepository
from leaseguard.orchestration.steps.base import BaseStepHandler
from leaseguard.orchestration.types import StepStatus, StepType

if TYPE_CHECKING:
    from leaseguard.orchestration.approval.gateway import ApprovalGateway
    from leaseguard.orchestration.types import WorkflowExecution, WorkflowStep

logger = structlog.get_logger(__name__)


class StepExecutor:
    """
    Executes workflow steps.

    Handlers are registered per step type; ``register_handler`` replaces
    a built-in one.
    """

    def __init__(
        self,
        repository: ExecutionRepository,
        approval_gateway: "ApprovalGateway",
        handlers: Optional[Dict[StepType, BaseStepHandler]] = None,
    ):
        self.repository = repository
        self.approval_gateway = approval_gateway
        self._handlers: Dict[StepType, BaseStepHandler] = dict(handlers or {})

    def register_handler(self, step_type: StepType, handler: BaseStepHandler) -> None:
        """Register a handler for a step type."""
        self._handlers[step_type] = handler

    def get_handler(self, step_type: StepType) -> Optional[BaseStepHandler]:
        return self._handlers.get(step_type)

    async def run(self, step: "WorkflowStep", execution: "WorkflowExecution") -> Any:
        """Run one attempt of a step and return its result."""
        run = execution.get_step_run(step.id)
        run.status = StepStatus.RUNNING
        run.started_at = datetime.now()
        run.completed_at = None
        run.error = None
        run.attempts += 1
        await self.repository.save(execution)

        logger.info(
            "step_started",
            execution_id=execution.id,
            step_id=step.id,
            step_type=step.type.value,
            attempt=run.attempts,
        )

        try:
            if step.human_approval_required:
                result = await self.approval_gateway.request_approval(step, execution)
            else:
                result = await self._dispatch(step, execution)

        except asyncio.CancelledError:
            run.status = StepStatus.FAILED
            run.error = "cancelled"
            run.completed_at = datetime.now()
            raise

        except OrchestrationError as e:
            await self._record_failure(execution, run, e)
            raise

        except Exception as e:
            await self._record_failure(execution, run, e)
            raise StepExecutionError(str(e), step_id=step.id) from e

        run.status = StepStatus.COMPLETED
        run.result = result
        run.completed_at = datetime.now()
        await self.repository.save(execution)

        logger.info("step_completed", execution_id=execution.id, step_id=step.id)
        return result

    async def _dispatch(self, step: "WorkflowStep", execution: "WorkflowExecution") -> Any:
        handler = self._handlers.get(step.type)
        if handler is None:
            raise UnknownStepTypeError(f"Unknown step type: {step.type.value}", step_id=step.id)

        context = ExecutionContext(execution)
        if not step.timeout_ms:
            return await handler.execute(step, context)

        try:
            return await asyncio.wait_for(
                handler.execute(step, context),
                timeout=step.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            raise StepTimeoutError(
                f"Step timed out after {step.timeout_ms}ms",
                step_id=step.id,
            ) from None

    async def _record_failure(self, execution, run, error: Exception) -> None:
        run.status = StepStatus.FAILED
        run.error = str(error)
        run.completed_at = datetime.now()
        await self.repository.save(execution)

        logger.error(
            "step_failed",
            execution_id=execution.id,
            step_id=run.step_id,
            error=str(error),
            error_type=type(error).__name__,
        )
