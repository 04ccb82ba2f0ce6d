"""
Leaseguard Approval Gateway

Human-in-the-loop approval gates for workflow steps.

The waiting side subscribes to writes on the approval document and
races them against the approval deadline. Responses and timeouts are
revision-checked writes, so exactly one terminal transition wins.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import structlog

from leaseguard.core.config import OrchestrationConfig
from leaseguard.orchestration.collaborators import Notification, Notifier
from leaseguard.orchestration.exceptions import (
    AlreadyRespondedError,
    ApprovalNotFoundError,
    ApprovalRejectedError,
    ApprovalTimeoutError,
    ConcurrentModificationError,
)
from leaseguard.orchestration.store.base import APPROVALS, DocumentStore
from leaseguard.orchestration.types import (
    Approval,
    ApprovalDecision,
    ApprovalOutcome,
    ApprovalResponse,
    ApprovalStatus,
)

if TYPE_CHECKING:
    from leaseguard.orchestration.types import WorkflowExecution, WorkflowStep

logger = structlog.get_logger(__name__)


class ApprovalGateway:
    """
    Creates, persists and resolves approval requests.

    Features:
    - Request creation with a fixed deadline
    - Approver notification
    - Wake-on-write waiting with deadline enforcement
    - Single-winner response handling
    """

    def __init__(
        self,
        store: DocumentStore,
        notifier: Notifier,
        config: Optional[OrchestrationConfig] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.config = config or OrchestrationConfig()

    # === Requesting ===

    async def request_approval(
        self,
        step: "WorkflowStep",
        execution: "WorkflowExecution",
    ) -> Dict[str, Any]:
        """
        Gate a step on a human decision.

        Returns the approval outcome as a dict when approved. Raises
        ApprovalRejectedError or ApprovalTimeoutError otherwise.
        """
        approval = await self.create_approval(step, execution)
        await self._notify_approvers(approval, step)
        outcome = await self.wait_for_decision(approval.id, step_id=step.id)
        return outcome.to_dict()

    async def create_approval(
        self,
        step: "WorkflowStep",
        execution: "WorkflowExecution",
    ) -> Approval:
        now = datetime.now()
        timeout_ms = step.timeout_ms or self.config.default_approval_timeout_ms

        approval = Approval(
            execution_id=execution.id,
            step_id=step.id,
            requested_at=now,
            requested_by=self.config.approval_requested_by,
            description=f"Approval required for: {step.name}",
            data={"step": step.to_dict(), "context": execution.context},
            timeout_at=now + timedelta(milliseconds=timeout_ms),
        )

        stored = await self.store.set(APPROVALS, approval.id, approval.to_dict(), expected_revision=0)
        approval.revision = stored["revision"]

        logger.info(
            "approval_requested",
            approval_id=approval.id,
            execution_id=execution.id,
            step_id=step.id,
            timeout_at=approval.timeout_at.isoformat(),
        )
        return approval

    async def _notify_approvers(self, approval: Approval, step: "WorkflowStep") -> None:
        notification = Notification(
            recipients=list(self.config.approver_recipients),
            subject=f"Approval required: {step.name}",
            body=approval.description,
            channels=list(self.config.notification_channels),
            priority="high",
            template="approval-required",
            metadata={
                "approval_id": approval.id,
                "execution_id": approval.execution_id,
                "step_id": approval.step_id,
                "timeout_at": approval.timeout_at.isoformat(),
            },
        )
        try:
            await self.notifier.send(notification)
        except Exception as e:
            logger.error("approval_notification_failed", approval_id=approval.id, error=str(e))

    # === Waiting ===

    async def wait_for_decision(
        self,
        approval_id: str,
        step_id: Optional[str] = None,
    ) -> ApprovalOutcome:
        """
        Block until the approval is decided or its deadline passes.

        Writes through this store wake the waiter at once. Writes from
        other processes are picked up by re-reading the document every
        ``approval_poll_interval_ms``. If the waiting task is cancelled a
        still-pending approval is closed as timed out.
        """
        poll_interval = self.config.approval_poll_interval_ms / 1000

        async with self.store.watch(APPROVALS, approval_id) as watch:
            # Read after subscribing so a response in between is not missed
            doc = await self.store.get(APPROVALS, approval_id)
            if doc is None:
                raise ApprovalNotFoundError(approval_id)

            try:
                while True:
                    approval = Approval.from_dict(doc)
                    if not approval.is_pending:
                        return self._conclude(approval, step_id)

                    remaining = (approval.timeout_at - datetime.now()).total_seconds()
                    if remaining <= 0:
                        timed_out = await self._expire(approval)
                        if timed_out is None:
                            raise ApprovalTimeoutError(approval_id, step_id=step_id)
                        doc = timed_out
                        continue

                    try:
                        doc = await asyncio.wait_for(
                            watch.next(),
                            timeout=min(remaining, poll_interval),
                        )
                    except asyncio.TimeoutError:
                        doc = await self.store.get(APPROVALS, approval_id)

            except asyncio.CancelledError:
                await self._abandon(approval_id)
                raise

    async def _abandon(self, approval_id: str) -> None:
        """Close a pending approval whose waiter has gone away."""
        doc = await self.store.get(APPROVALS, approval_id)
        if doc is None:
            return
        approval = Approval.from_dict(doc)
        if not approval.is_pending:
            return
        if await self._expire(approval) is None:
            logger.info("approval_abandoned", approval_id=approval_id, step_id=approval.step_id)

    async def _expire(self, approval: Approval) -> Optional[Dict[str, Any]]:
        """
        Mark a pending approval as timed out.

        Returns None when the timeout was recorded, or the current document
        when a response landed first.
        """
        try:
            await self.store.update(
                APPROVALS,
                approval.id,
                {
                    "status": ApprovalStatus.TIMEOUT.value,
                    "responded_at": datetime.now().isoformat(),
                },
                expected_revision=approval.revision,
            )
        except ConcurrentModificationError:
            logger.info("approval_timeout_lost_race", approval_id=approval.id)
            return await self.store.get(APPROVALS, approval.id)

        logger.warning("approval_timed_out", approval_id=approval.id, step_id=approval.step_id)
        return None

    def _conclude(self, approval: Approval, step_id: Optional[str]) -> ApprovalOutcome:
        if approval.status == ApprovalStatus.APPROVED:
            logger.info("approval_granted", approval_id=approval.id, approved_by=approval.responded_by)
            return ApprovalOutcome(
                approved=True,
                approval_id=approval.id,
                approved_by=approval.responded_by,
                response=approval.response,
            )

        if approval.status == ApprovalStatus.REJECTED:
            reason = approval.response.reason if approval.response else None
            logger.info("approval_rejected", approval_id=approval.id, reason=reason)
            raise ApprovalRejectedError(approval.id, reason=reason, step_id=step_id)

        raise ApprovalTimeoutError(approval.id, step_id=step_id)

    # === Responding ===

    async def respond(
        self,
        approval_id: str,
        decision: str,
        responded_by: str,
        reason: Optional[str] = None,
        modifications: Optional[Dict[str, Any]] = None,
    ) -> Approval:
        """Record an approver's decision on a pending approval."""
        try:
            parsed = ApprovalDecision(decision)
        except ValueError:
            raise ValueError(f"Invalid decision: {decision!r}; expected 'approve' or 'reject'") from None

        doc = await self.store.get(APPROVALS, approval_id)
        if doc is None:
            raise ApprovalNotFoundError(approval_id)

        approval = Approval.from_dict(doc)
        if not approval.is_pending:
            raise AlreadyRespondedError(approval_id, approval.status.value)

        status = ApprovalStatus.APPROVED if parsed == ApprovalDecision.APPROVE else ApprovalStatus.REJECTED
        response = ApprovalResponse(decision=parsed, reason=reason, modifications=modifications)

        try:
            stored = await self.store.update(
                APPROVALS,
                approval_id,
                {
                    "status": status.value,
                    "responded_at": datetime.now().isoformat(),
                    "responded_by": responded_by,
                    "response": response.to_dict(),
                },
                expected_revision=approval.revision,
            )
        except ConcurrentModificationError:
            current = Approval.from_dict(await self.store.get(APPROVALS, approval_id))
            raise AlreadyRespondedError(approval_id, current.status.value) from None

        logger.info(
            "approval_responded",
            approval_id=approval_id,
            decision=parsed.value,
            responded_by=responded_by,
        )
        return Approval.from_dict(stored)

    # === Queries ===

    async def get(self, approval_id: str) -> Optional[Approval]:
        doc = await self.store.get(APPROVALS, approval_id)
        return Approval.from_dict(doc) if doc else None

    async def get_pending(self, now: Optional[datetime] = None) -> List[Approval]:
        """Pending approvals whose deadline has not passed, oldest first."""
        now = now or datetime.now()
        docs = await self.store.query(
            APPROVALS,
            filters={"status": ApprovalStatus.PENDING.value},
            order_by="requested_at",
        )
        approvals = [Approval.from_dict(d) for d in docs]
        return [a for a in approvals if not a.is_expired(now)]
