"""
Leaseguard Condition Evaluator

Evaluates step conditions against the execution context.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog

from leaseguard.orchestration.conditions.operators import OperatorRegistry
from leaseguard.orchestration.types import Condition

logger = structlog.get_logger(__name__)

_MISSING = object()


def get_nested(data: Any, path: str, default: Any = None) -> Any:
    """
    Resolve a dotted path through dicts and lists.

    ``"scan_result.flags.0.type"`` walks keys and list indices; any
    missing segment yields ``default``.
    """
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
        elif isinstance(current, (list, tuple)) and part.lstrip("-").isdigit():
            index = int(part)
            current = current[index] if -len(current) <= index < len(current) else _MISSING
        else:
            current = getattr(current, part, _MISSING) if current is not None else _MISSING

        if current is _MISSING:
            return default
    return current


class ConditionEvaluator:
    """
    Evaluates conditions for step gating.

    A step runs only when every one of its conditions holds; an empty
    list always holds.
    """

    def __init__(self, operators: Optional[OperatorRegistry] = None):
        self.operators = operators or OperatorRegistry()

    def evaluate(self, condition: Condition, context: Dict[str, Any]) -> bool:
        """Evaluate a single condition."""
        left = get_nested(context, condition.field)
        result = self.operators.evaluate(condition.operator, left, condition.value)

        logger.debug(
            "condition_evaluated",
            field=condition.field,
            operator=condition.operator.value,
            result=result,
        )
        return result

    def evaluate_all(self, conditions: List[Condition], context: Dict[str, Any]) -> bool:
        """True when every condition holds."""
        return all(self.evaluate(c, context) for c in conditions)
