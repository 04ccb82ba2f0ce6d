"""
Leaseguard Verify and Update Steps

Check that an action took effect and synchronize domain state.
"""

from __future__ import annotations

from typing import Any, Dict, TYPE_CHECKING

import structlog

from leaseguard.orchestration.collaborators import CertificationService, DomainUpdater
from leaseguard.orchestration.exceptions import VerificationFailedError
from leaseguard.orchestration.execution.context import ACTION_RESULT, CLASSIFICATION
from leaseguard.orchestration.execution.history import ExecutionHistory
from leaseguard.orchestration.steps.base import BaseStepHandler
from leaseguard.orchestration.types import ActionResult, ActionType, UpdateResult, Verification

if TYPE_CHECKING:
    from leaseguard.orchestration.execution.context import ExecutionContext
    from leaseguard.orchestration.types import WorkflowStep

logger = structlog.get_logger(__name__)

RESOLVED_ISSUE_STATUSES = frozenset({"resolved", "verified", "closed"})


class VerifyStepHandler(BaseStepHandler):
    """
    Handler for verify steps.

    Auto-fixes and tickets are verified by re-reading the issue status.
    With ``parameters.require_verified`` an unverified outcome fails the
    step so the retry policy can run it again.
    """

    def __init__(self, certification: CertificationService):
        self.certification = certification

    async def execute(
        self,
        step: "WorkflowStep",
        context: "ExecutionContext",
    ) -> Dict[str, Any]:
        action = ActionResult.from_dict(self.require_input(step, context, ACTION_RESULT, "action"))
        verification = await self._verify(action)

        logger.info(
            "verification_completed",
            step_id=step.id,
            action=action.action,
            verified=verification.verified,
        )

        if not verification.verified and step.parameters.get("require_verified"):
            raise VerificationFailedError(
                f"Action {action.action} could not be verified",
                step_id=step.id,
                details=verification.details,
            )
        return verification.to_dict()

    async def _verify(self, action: ActionResult) -> Verification:
        if action.action in (ActionType.AUTO_FIX.value, ActionType.CREATE_TICKET.value):
            if not action.issue_id:
                return Verification(False, {"reason": "no issue recorded"}, retry_required=True)
            issue = await self.certification.get_issue(action.issue_id)
            status = issue.get("status") if issue else None
            verified = status in RESOLVED_ISSUE_STATUSES
            return Verification(
                verified,
                {"issue_id": action.issue_id, "status": status, "auto_fix_id": action.auto_fix_id},
                retry_required=not verified,
            )

        if action.action == ActionType.BLOCK_ACCESS.value:
            return Verification(
                action.blocked,
                {"resources": action.resources},
                retry_required=not action.blocked,
            )

        if action.action == ActionType.NOTIFY.value:
            sent = action.notification_id is not None
            return Verification(sent, {"notification_id": action.notification_id}, retry_required=not sent)

        return Verification(action.success, {"action": action.action})


class UpdateStepHandler(BaseStepHandler):
    """
    Handler for update steps.

    Applies ``parameters.lease_updates`` to the lease in ``leaseId``,
    recalculates certification scores for every entry in
    ``affectedResources`` and writes an audit log entry.
    """

    def __init__(
        self,
        certification: CertificationService,
        domain: DomainUpdater,
        history: ExecutionHistory,
    ):
        self.certification = certification
        self.domain = domain
        self.history = history

    async def execute(
        self,
        step: "WorkflowStep",
        context: "ExecutionContext",
    ) -> Dict[str, Any]:
        result = UpdateResult()

        lease_id = context.get("leaseId")
        if lease_id:
            changes = dict(step.parameters.get("lease_updates") or {})
            changes["last_compliance_check"] = result.timestamp.isoformat()
            await self.domain.update(lease_id, changes)
            result.updates.append(f"lease:{lease_id}")

        classification = context.latest(CLASSIFICATION) or {}
        metrics = {
            "flags_raised": len(context.execution.flags),
            "severity": classification.get("severity"),
            **(step.parameters.get("metrics") or {}),
        }
        for resource_id in context.get("affectedResources") or []:
            await self.certification.calculate_scores(resource_id, metrics)
            result.updates.append(f"scores:{resource_id}")

        await self.history.record(
            context.execution,
            event="domain_updated",
            details={"step_id": step.id, "updates": result.updates},
        )

        logger.info("update_completed", step_id=step.id, updates=len(result.updates))
        return result.to_dict()
