"""
Leaseguard Workflow Engine

Workflow definitions and the execution state machine. Steps of one
execution run strictly in definition order inside the caller's task;
separate executions run as independent tasks.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Union
import uuid

import structlog

from leaseguard.core.config import OrchestrationConfig
from leaseguard.orchestration.approval.gateway import ApprovalGateway
from leaseguard.orchestration.collaborators import Notification, Notifier, WorkflowScheduler
from leaseguard.orchestration.compensation import RollbackManager
from leaseguard.orchestration.conditions.evaluator import ConditionEvaluator
from leaseguard.orchestration.exceptions import (
    InvalidWorkflowError,
    OrchestrationError,
    WorkflowNotFoundError,
)
from leaseguard.orchestration.execution.context import ExecutionContext
from leaseguard.orchestration.execution.history import ExecutionHistory
from leaseguard.orchestration.steps.executor import StepExecutor
from leaseguard.orchestration.store.base import WORKFLOWS, DocumentStore
from leaseguard.orchestration.templates import get_default_workflows
from leaseguard.orchestration.types import (
    Approval,
    ExecutionStatus,
    RetryPolicy,
    StepRun,
    StepStatus,
    TriggerType,
    Workflow,
    WorkflowExecution,
    WorkflowStatus,
    WorkflowStep,
)

logger = structlog.get_logger(__name__)


class WorkflowEngine:
    """
    Orchestrates compliance workflows.

    Features:
    - Workflow creation with validation and schedule registration
    - Sequential step execution with condition gating
    - Forward jumps via ``on_success.next_step``
    - Per-step retry policies
    - Rollback of reversible auto-fixes on failure
    - Human approval delegation
    - Execution audit log
    """

    def __init__(
        self,
        store: DocumentStore,
        executor: StepExecutor,
        approval_gateway: ApprovalGateway,
        notifier: Notifier,
        history: ExecutionHistory,
        rollback: Optional[RollbackManager] = None,
        scheduler: Optional[WorkflowScheduler] = None,
        config: Optional[OrchestrationConfig] = None,
        evaluator: Optional[ConditionEvaluator] = None,
    ):
        self.store = store
        self.executor = executor
        self.repository = executor.repository
        self.approval_gateway = approval_gateway
        self.notifier = notifier
        self.history = history
        self.rollback = rollback
        self.scheduler = scheduler
        self.config = config or OrchestrationConfig()
        self.evaluator = evaluator or ConditionEvaluator()

        self._tasks: Set[asyncio.Task] = set()
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize the engine."""
        if self._initialized:
            return

        await self.store.initialize()

        self._initialized = True
        logger.info("workflow_engine_initialized")

    async def shutdown(self) -> None:
        """Cancel running executions and close the store."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        await self.store.close()
        self._initialized = False
        logger.info("workflow_engine_shutdown", cancelled=len(tasks))

    # === Workflow definitions ===

    async def create_workflow(self, definition: Union[Workflow, Dict[str, Any]]) -> Workflow:
        """
        Validate and store a new workflow.

        The workflow gets a fresh id, ``active`` status and a creation
        time. Scheduled workflows are registered with the scheduler.
        """
        try:
            workflow = (
                Workflow.from_dict(definition)
                if isinstance(definition, dict)
                else Workflow.from_dict(definition.to_dict())
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidWorkflowError(f"Invalid workflow definition: {e}") from e

        workflow.id = str(uuid.uuid4())
        workflow.status = WorkflowStatus.ACTIVE
        workflow.created_at = datetime.now()
        workflow.last_executed_at = None
        workflow.next_execution_at = None

        errors = self.validate_workflow(workflow)
        if errors:
            raise InvalidWorkflowError(
                f"Invalid workflow: {'; '.join(errors)}",
                errors=errors,
            )

        if workflow.trigger.type == TriggerType.SCHEDULED:
            workflow.next_execution_at = self._register_schedule(workflow)

        await self.store.set(WORKFLOWS, workflow.id, workflow.to_dict(), expected_revision=0)

        logger.info(
            "workflow_created",
            workflow_id=workflow.id,
            name=workflow.name,
            steps=len(workflow.steps),
            trigger=workflow.trigger.type.value,
        )
        return workflow

    def _register_schedule(self, workflow: Workflow) -> Optional[datetime]:
        if self.scheduler is None:
            logger.warning("workflow_scheduler_missing", workflow_id=workflow.id)
            return None
        try:
            return self.scheduler.register(workflow)
        except ValueError as e:
            raise InvalidWorkflowError(str(e)) from e

    @staticmethod
    def validate_workflow(workflow: Workflow) -> List[str]:
        """Return the problems with a workflow definition."""
        errors = []

        if not workflow.name:
            errors.append("name is required")
        if not workflow.steps:
            errors.append("at least one step is required")

        if workflow.trigger.type == TriggerType.SCHEDULED and not workflow.trigger.schedule:
            errors.append("scheduled trigger requires a schedule")
        if workflow.trigger.type == TriggerType.EVENT and not workflow.trigger.event:
            errors.append("event trigger requires an event")
        if workflow.trigger.type == TriggerType.THRESHOLD and not workflow.trigger.threshold:
            errors.append("threshold trigger requires a threshold")

        seen = set()
        for step in workflow.steps:
            if not step.id:
                errors.append("step id is required")
            elif step.id in seen:
                errors.append(f"duplicate step id: {step.id}")
            seen.add(step.id)

        for index, step in enumerate(workflow.steps):
            for label, target in (
                ("on_success", step.on_success.next_step),
                ("on_failure", step.on_failure.next_step),
            ):
                if target is None:
                    continue
                target_index = workflow.step_index(target)
                if target_index < 0:
                    errors.append(f"step {step.id}: {label}.next_step {target!r} does not exist")
                elif target_index <= index:
                    errors.append(
                        f"step {step.id}: {label}.next_step {target!r} must come after the step"
                    )

            retry = step.on_failure.retry
            if retry and (retry.attempts < 0 or retry.delay_ms < 0):
                errors.append(f"step {step.id}: retry attempts and delay must be >= 0")
            if step.timeout_ms is not None and step.timeout_ms <= 0:
                errors.append(f"step {step.id}: timeout must be positive")

        return errors

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Get a workflow by ID."""
        doc = await self.store.get(WORKFLOWS, workflow_id)
        return Workflow.from_dict(doc) if doc else None

    async def list_workflows(self, status: Optional[WorkflowStatus] = None) -> List[Workflow]:
        filters = {"status": WorkflowStatus(status).value} if status else None
        docs = await self.store.query(WORKFLOWS, filters=filters, order_by="created_at")
        return [Workflow.from_dict(d) for d in docs]

    async def create_default_workflows(self, skip_existing: bool = True) -> List[Workflow]:
        """Install the built-in workflows."""
        existing = set()
        if skip_existing:
            existing = {w.metadata.get("template") for w in await self.list_workflows()}

        created = []
        for workflow in get_default_workflows():
            if workflow.metadata.get("template") in existing:
                continue
            created.append(await self.create_workflow(workflow))

        logger.info("default_workflows_created", count=len(created))
        return created

    # === Execution ===

    async def execute_workflow(
        self,
        workflow_id: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> WorkflowExecution:
        """
        Run a workflow to completion in the current task.

        Returns the completed execution. Step failures that exhaust their
        retry policy mark the execution failed and are re-raised.
        """
        workflow = await self.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)

        execution = WorkflowExecution(
            workflow_id=workflow.id,
            steps=[StepRun(step_id=step.id) for step in workflow.steps],
            context=dict(context or {}),
        )
        await self.repository.create(execution)

        logger.info(
            "execution_started",
            execution_id=execution.id,
            workflow_id=workflow.id,
            steps=len(workflow.steps),
        )

        try:
            await self._run_steps(workflow, execution)
        except asyncio.CancelledError:
            await self._finish(workflow, execution, ExecutionStatus.CANCELLED, error="cancelled")
            raise
        except Exception as e:
            await self._fail(workflow, execution, e)
            raise

        await self._finish(workflow, execution, ExecutionStatus.COMPLETED)
        return execution

    def start_workflow(
        self,
        workflow_id: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> asyncio.Task:
        """Run a workflow as an independent background task."""
        task = asyncio.create_task(self.execute_workflow(workflow_id, context))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("background_execution_failed", error=str(error))

    @property
    def running_count(self) -> int:
        return len(self._tasks)

    async def _run_steps(self, workflow: Workflow, execution: WorkflowExecution) -> None:
        context = ExecutionContext(execution)

        for index, step in enumerate(workflow.steps):
            run = execution.steps[index]

            # Skipped by an earlier forward jump
            if run.status == StepStatus.SKIPPED:
                continue

            if not self.evaluator.evaluate_all(step.conditions, execution.context):
                self._skip(run)
                await self.repository.save(execution)
                logger.info("step_skipped", execution_id=execution.id, step_id=step.id, reason="conditions")
                continue

            execution.current_step = step.id
            await self.repository.save(execution)

            result = await self._run_step(step, execution)
            context.set_result(step.id, result)

            if step.on_success.notification:
                await self._notify(
                    step,
                    execution,
                    subject=f"Step completed: {step.name}",
                    priority="medium",
                )

            if step.on_success.next_step:
                self._jump(workflow, execution, index, step.on_success.next_step)

            await self.repository.save(execution)

    async def _run_step(self, step: WorkflowStep, execution: WorkflowExecution) -> Any:
        try:
            return await self.executor.run(step, execution)
        except OrchestrationError as e:
            if step.on_failure.notification:
                await self._notify(
                    step,
                    execution,
                    subject=f"Step failed: {step.name}",
                    priority="high",
                    error=str(e),
                )

            policy = step.on_failure.retry
            if policy is None or policy.attempts <= 0 or not e.retryable:
                raise
            return await self._retry(step, execution, policy, e)

    async def _retry(
        self,
        step: WorkflowStep,
        execution: WorkflowExecution,
        policy: RetryPolicy,
        error: OrchestrationError,
    ) -> Any:
        """Re-run a failed step up to ``policy.attempts`` more times."""
        last_error = error
        for attempt in range(1, policy.attempts + 1):
            logger.info(
                "step_retry",
                execution_id=execution.id,
                step_id=step.id,
                attempt=attempt,
                max_attempts=policy.attempts,
                delay_ms=policy.delay_ms,
            )
            await asyncio.sleep(policy.delay_ms / 1000)

            try:
                return await self.executor.run(step, execution)
            except OrchestrationError as e:
                last_error = e
                if not e.retryable:
                    raise

        logger.error("step_retries_exhausted", execution_id=execution.id, step_id=step.id)
        raise last_error

    @staticmethod
    def _skip(run: StepRun) -> None:
        run.status = StepStatus.SKIPPED
        run.completed_at = datetime.now()

    def _jump(
        self,
        workflow: Workflow,
        execution: WorkflowExecution,
        index: int,
        target: str,
    ) -> None:
        target_index = workflow.step_index(target)
        if target_index <= index:
            raise InvalidWorkflowError(f"next_step {target!r} must come after step {workflow.steps[index].id!r}")

        for run in execution.steps[index + 1:target_index]:
            self._skip(run)

        logger.info(
            "step_jump",
            execution_id=execution.id,
            from_step=workflow.steps[index].id,
            to_step=target,
            skipped=target_index - index - 1,
        )

    async def _fail(self, workflow: Workflow, execution: WorkflowExecution, error: Exception) -> None:
        if self.rollback is not None and self.config.rollback_on_failure:
            await self.rollback.rollback(execution)

        logger.error(
            "execution_failed",
            execution_id=execution.id,
            workflow_id=workflow.id,
            step_id=execution.current_step,
            error=str(error),
        )
        await self._finish(workflow, execution, ExecutionStatus.FAILED, error=str(error))

    async def _finish(
        self,
        workflow: Workflow,
        execution: WorkflowExecution,
        status: ExecutionStatus,
        error: Optional[str] = None,
    ) -> None:
        execution.status = status
        execution.completed_at = datetime.now()
        execution.error = error
        await self.repository.save(execution)
        await self.history.record(execution)

        await self.store.update(
            WORKFLOWS,
            workflow.id,
            {"last_executed_at": execution.completed_at.isoformat()},
        )

        if status == ExecutionStatus.COMPLETED:
            logger.info(
                "execution_completed",
                execution_id=execution.id,
                workflow_id=workflow.id,
                duration_ms=execution.duration_ms,
                flags=len(execution.flags),
            )

    async def _notify(
        self,
        step: WorkflowStep,
        execution: WorkflowExecution,
        subject: str,
        priority: str,
        error: Optional[str] = None,
    ) -> None:
        notification = Notification(
            recipients=list(self.config.admin_recipients),
            subject=subject,
            body=error or "",
            channels=list(self.config.notification_channels),
            priority=priority,
            metadata={
                "execution_id": execution.id,
                "workflow_id": execution.workflow_id,
                "step_id": step.id,
            },
        )
        try:
            await self.notifier.send(notification)
        except Exception as e:
            logger.error("step_notification_failed", step_id=step.id, error=str(e))

    # === Queries ===

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        return await self.repository.get(execution_id)

    async def get_workflow_executions(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: Optional[int] = None,
    ) -> List[WorkflowExecution]:
        """Executions, newest first."""
        return await self.repository.list(
            workflow_id=workflow_id,
            status=status,
            limit=limit or self.config.execution_list_limit,
        )

    # === Approvals ===

    async def approve_human_approval(
        self,
        approval_id: str,
        decision: str,
        responded_by: str,
        reason: Optional[str] = None,
        modifications: Optional[Dict[str, Any]] = None,
    ) -> Approval:
        """Respond to a pending approval."""
        return await self.approval_gateway.respond(
            approval_id,
            decision,
            responded_by,
            reason=reason,
            modifications=modifications,
        )

    async def get_pending_approvals(self) -> List[Approval]:
        return await self.approval_gateway.get_pending()
