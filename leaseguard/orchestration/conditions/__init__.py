"""Step condition evaluation."""

from leaseguard.orchestration.conditions.evaluator import ConditionEvaluator, get_nested
from leaseguard.orchestration.conditions.operators import OperatorRegistry, compare

__all__ = [
    "ConditionEvaluator",
    "OperatorRegistry",
    "compare",
    "get_nested",
]
