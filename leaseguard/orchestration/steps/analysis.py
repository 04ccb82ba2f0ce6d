"""
Leaseguard Classify and Decide Steps

Apply classification and decision rules to upstream results.
"""

from __future__ import annotations

from typing import Any, Dict, TYPE_CHECKING

import structlog

from leaseguard.orchestration.execution.context import CLASSIFICATION, DECISION, DETECTION
from leaseguard.orchestration.rules.classification import classify
from leaseguard.orchestration.rules.decision import decide
from leaseguard.orchestration.steps.base import BaseStepHandler
from leaseguard.orchestration.types import Classification, DetectionResult

if TYPE_CHECKING:
    from leaseguard.orchestration.execution.context import ExecutionContext
    from leaseguard.orchestration.types import WorkflowStep

logger = structlog.get_logger(__name__)


class ClassifyStepHandler(BaseStepHandler):
    """Classifies the latest detection and collects its flags."""

    async def execute(
        self,
        step: "WorkflowStep",
        context: "ExecutionContext",
    ) -> Dict[str, Any]:
        raw = self.require_input(step, context, DETECTION, "detection")
        detection = DetectionResult.from_dict(raw)

        classification = classify(detection)
        context.execution.flags.extend(detection.flags)

        result = classification.to_dict()
        context.set_latest(CLASSIFICATION, result)

        logger.info(
            "classification_completed",
            step_id=step.id,
            severity=classification.severity.value,
            category=classification.category,
            requires_approval=classification.requires_approval,
        )
        return result


class DecideStepHandler(BaseStepHandler):
    """Chooses a response action for the latest classification."""

    async def execute(
        self,
        step: "WorkflowStep",
        context: "ExecutionContext",
    ) -> Dict[str, Any]:
        raw = self.require_input(step, context, CLASSIFICATION, "classification")
        classification = Classification.from_dict(raw)

        decision = decide(classification, step.parameters.get("rules"))
        result = decision.to_dict()
        context.set_latest(DECISION, result)

        logger.info(
            "decision_completed",
            step_id=step.id,
            action=decision.action,
            auto_execute=decision.auto_execute,
            escalation_required=decision.escalation_required,
        )
        return result
