"""
Leaseguard Execution Context

Typed access to the shared context of an execution.

Contract:
- ``"<step_id>_result"`` keys are written once per step by the engine and
  read through ``get_result(step_id)``.
- The named keys ``detectionResult``, ``classification``, ``decision`` and
  ``actionResult`` hold the latest result of that kind and are read
  through ``latest(kind)``.
- Anything else (``leaseId``, ``affectedResources`` ...) is trigger input
  and is read through ``get(path)``.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional, TYPE_CHECKING

import structlog

from leaseguard.orchestration.conditions.evaluator import get_nested
from leaseguard.orchestration.exceptions import DuplicateResultError

if TYPE_CHECKING:
    from leaseguard.orchestration.types import WorkflowExecution

logger = structlog.get_logger(__name__)

RESULT_SUFFIX = "_result"

DETECTION = "detectionResult"
CLASSIFICATION = "classification"
DECISION = "decision"
ACTION_RESULT = "actionResult"

LATEST_KEYS = frozenset({DETECTION, CLASSIFICATION, DECISION, ACTION_RESULT})


def result_key(step_id: str) -> str:
    return f"{step_id}{RESULT_SUFFIX}"


class ExecutionContext:
    """View over ``execution.context``; writes land on the execution."""

    def __init__(self, execution: "WorkflowExecution"):
        self.execution = execution

    @property
    def data(self) -> Dict[str, Any]:
        return self.execution.context

    def get(self, path: str, default: Any = None) -> Any:
        """Get a context value using dot notation."""
        return get_nested(self.data, path, default)

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the context, safe to hand to collaborators."""
        return copy.deepcopy(self.data)

    # === Step results ===

    def has_result(self, step_id: str) -> bool:
        return result_key(step_id) in self.data

    def get_result(self, step_id: str) -> Optional[Any]:
        """Result recorded for a step, or None."""
        return self.data.get(result_key(step_id))

    def set_result(self, step_id: str, result: Any) -> None:
        """Record a step result. Each step records at most once."""
        key = result_key(step_id)
        if key in self.data:
            raise DuplicateResultError(step_id)
        self.data[key] = result
        logger.debug("context_result_recorded", step_id=step_id)

    # === Latest results by kind ===

    def latest(self, kind: str) -> Optional[Any]:
        if kind not in LATEST_KEYS:
            raise KeyError(f"Unknown result kind: {kind}")
        return self.data.get(kind)

    def set_latest(self, kind: str, value: Any) -> None:
        if kind not in LATEST_KEYS:
            raise KeyError(f"Unknown result kind: {kind}")
        self.data[kind] = value

    def source(self, kind: str, source_step: Optional[str] = None) -> Optional[Any]:
        """
        Input for a step: the named source step's result when given,
        otherwise the latest result of ``kind``.
        """
        if source_step:
            return self.get_result(source_step)
        return self.latest(kind)
