"""
Leaseguard Execute Step

Applies the decided action through the action collaborators.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, TYPE_CHECKING
import uuid

import structlog

from leaseguard.core.config import OrchestrationConfig
from leaseguard.orchestration.collaborators import (
    CertificationService,
    DomainUpdater,
    Notification,
    Notifier,
)
from leaseguard.orchestration.exceptions import UnknownActionError
from leaseguard.orchestration.execution.context import ACTION_RESULT, DECISION
from leaseguard.orchestration.steps.base import BaseStepHandler
from leaseguard.orchestration.types import (
    ActionResult,
    ActionType,
    Classification,
    Decision,
)

if TYPE_CHECKING:
    from leaseguard.orchestration.execution.context import ExecutionContext
    from leaseguard.orchestration.types import WorkflowStep

logger = structlog.get_logger(__name__)


class ExecuteStepHandler(BaseStepHandler):
    """
    Handler for execute steps.

    The action comes from ``parameters.action`` when set, otherwise from
    the latest decision.
    """

    def __init__(
        self,
        certification: CertificationService,
        notifier: Notifier,
        domain: DomainUpdater,
        config: Optional[OrchestrationConfig] = None,
    ):
        self.certification = certification
        self.notifier = notifier
        self.domain = domain
        self.config = config or OrchestrationConfig()

        self._actions = {
            ActionType.AUTO_FIX.value: self._auto_fix,
            ActionType.CREATE_TICKET.value: self._create_ticket,
            ActionType.BLOCK_ACCESS.value: self._block_access,
            ActionType.NOTIFY.value: self._notify,
            ActionType.LOG.value: self._log,
        }

    async def execute(
        self,
        step: "WorkflowStep",
        context: "ExecutionContext",
    ) -> Dict[str, Any]:
        decision = Decision.from_dict(self.require_input(step, context, DECISION, "decision"))
        action = step.parameters.get("action") or decision.action

        handler = self._actions.get(action)
        if handler is None:
            raise UnknownActionError(f"Unknown action: {action}", step_id=step.id, action=action)

        classification = decision.classification or Classification()
        result: ActionResult = await handler(step, context, classification)

        payload = result.to_dict()
        context.set_latest(ACTION_RESULT, payload)

        logger.info("action_executed", step_id=step.id, action=action, success=result.success)
        return payload

    def _issue(
        self,
        step: "WorkflowStep",
        context: "ExecutionContext",
        classification: Classification,
    ) -> Dict[str, Any]:
        return {
            "id": str(uuid.uuid4()),
            "type": classification.category,
            "severity": classification.severity.value,
            "title": step.parameters.get("title") or f"{classification.category} issue detected",
            "description": step.parameters.get("description")
            or "; ".join(f.message for f in classification.flags if f.message),
            "affected_resources": self._resources(context),
            "execution_id": context.execution.id,
        }

    @staticmethod
    def _resources(context: "ExecutionContext") -> List[str]:
        return list(context.get("affectedResources") or [])

    # === Actions ===

    async def _auto_fix(self, step, context, classification) -> ActionResult:
        issue = self._issue(step, context, classification)
        auto_fix = await self.certification.create_auto_fix(issue)
        return ActionResult(
            action=ActionType.AUTO_FIX.value,
            issue_id=auto_fix.get("issue_id", issue["id"]),
            auto_fix_id=auto_fix["id"],
            resources=issue["affected_resources"],
            rollback_available=bool(auto_fix.get("rollback_available")),
            rollback_actions=list(auto_fix.get("rollback_actions") or []),
        )

    async def _create_ticket(self, step, context, classification) -> ActionResult:
        issue = self._issue(step, context, classification)
        assigned_to = step.parameters.get("assign_to") or self.config.default_ticket_assignee
        issue["assigned_to"] = assigned_to
        issue["priority"] = classification.priority

        ticket = await self.certification.create_issue(issue)
        return ActionResult(
            action=ActionType.CREATE_TICKET.value,
            issue_id=ticket["id"],
            ticket_id=ticket["id"],
            priority=classification.priority,
            assigned_to=assigned_to,
            resources=issue["affected_resources"],
        )

    async def _block_access(self, step, context, classification) -> ActionResult:
        resources = self._resources(context)
        reason = f"{classification.severity.value} {classification.category} finding"
        outcome = await self.domain.block_access(resources, reason)
        return ActionResult(
            action=ActionType.BLOCK_ACCESS.value,
            blocked=bool(outcome.get("blocked", True)),
            resources=list(outcome.get("resources", resources)),
        )

    async def _notify(self, step, context, classification) -> ActionResult:
        notification = Notification(
            recipients=list(step.parameters.get("recipients") or self.config.admin_recipients),
            subject=f"Action Required: {classification.category} issue detected",
            body="; ".join(f.message for f in classification.flags if f.message),
            channels=list(step.parameters.get("channels") or self.config.notification_channels),
            priority=classification.severity.value,
            metadata={
                "execution_id": context.execution.id,
                "step_id": step.id,
                "severity": classification.severity.value,
            },
        )
        notification_id = await self.notifier.send(notification)
        return ActionResult(
            action=ActionType.NOTIFY.value,
            notification_id=notification_id,
            resources=self._resources(context),
        )

    async def _log(self, step, context, classification) -> ActionResult:
        logger.info(
            "compliance_finding_logged",
            execution_id=context.execution.id,
            step_id=step.id,
            severity=classification.severity.value,
            category=classification.category,
        )
        return ActionResult(action=ActionType.LOG.value)
