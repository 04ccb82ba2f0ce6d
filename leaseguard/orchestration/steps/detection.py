"""
Leaseguard Detection Step

Runs a registered analysis agent against the execution context.
"""

from __future__ import annotations

from typing import Any, Dict, TYPE_CHECKING

import structlog

from leaseguard.orchestration.agents import AgentRegistry
from leaseguard.orchestration.exceptions import (
    AgentNotFoundError,
    StepConfigurationError,
    StepExecutionError,
)
from leaseguard.orchestration.execution.context import DETECTION
from leaseguard.orchestration.steps.base import BaseStepHandler
from leaseguard.orchestration.types import DetectionResult

if TYPE_CHECKING:
    from leaseguard.orchestration.execution.context import ExecutionContext
    from leaseguard.orchestration.types import WorkflowStep

logger = structlog.get_logger(__name__)


class DetectStepHandler(BaseStepHandler):
    """Handler for detect steps."""

    def __init__(self, agents: AgentRegistry):
        self.agents = agents

    async def execute(
        self,
        step: "WorkflowStep",
        context: "ExecutionContext",
    ) -> Dict[str, Any]:
        if not step.agent:
            raise StepConfigurationError("Detect step requires an agent", step_id=step.id)

        agent = self.agents.resolve(step.agent)
        if agent is None:
            raise AgentNotFoundError(step.agent, step_id=step.id)

        request: Dict[str, Any] = {
            "type": step.action,
            "data": context.snapshot(),
            **step.parameters,
        }
        raw = await agent.analyze(request)
        if not isinstance(raw, dict):
            raise StepExecutionError(
                f"Agent {step.agent!r} returned {type(raw).__name__}, expected a mapping",
                step_id=step.id,
                retryable=False,
            )

        detection = DetectionResult.from_dict(raw)
        result = detection.to_dict()
        context.set_latest(DETECTION, result)

        logger.info(
            "detection_completed",
            step_id=step.id,
            agent=step.agent,
            flags=len(detection.flags),
            score=detection.score,
        )
        return result
