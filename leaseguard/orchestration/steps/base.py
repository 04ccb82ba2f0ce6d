"""
Leaseguard Step Handlers

Base class shared by the per-type step handlers.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, TYPE_CHECKING

from leaseguard.orchestration.exceptions import MissingInputError

if TYPE_CHECKING:
    from leaseguard.orchestration.execution.context import ExecutionContext
    from leaseguard.orchestration.types import WorkflowStep


class BaseStepHandler:
    """Base class for step handlers."""

    async def execute(
        self,
        step: "WorkflowStep",
        context: "ExecutionContext",
    ) -> Dict[str, Any]:
        """Run the step and return its result as a dict."""
        raise NotImplementedError

    @staticmethod
    def source_step(step: "WorkflowStep") -> Optional[str]:
        """Step whose result this step reads, if one is named."""
        return step.parameters.get("source_step") or step.parameters.get("sourceStep")

    def require_input(
        self,
        step: "WorkflowStep",
        context: "ExecutionContext",
        kind: str,
        label: str,
    ) -> Any:
        """Fetch the upstream result a step depends on or fail."""
        source = self.source_step(step)
        value = context.source(kind, source)
        if value is None:
            where = f"step {source!r}" if source else f"context key {kind!r}"
            raise MissingInputError(f"No {label} result found in {where}", step_id=step.id)
        return value
