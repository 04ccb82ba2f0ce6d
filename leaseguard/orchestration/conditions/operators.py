"""
Leaseguard Condition Operators

Comparison operators for step conditions.
"""

from __future__ import annotations

from typing import Any, Callable, Dict

from leaseguard.orchestration.types import ConditionOperator


class OperatorRegistry:
    """
    Registry of comparison operators.

    Ordering comparisons between values that cannot be ordered evaluate
    to False rather than raising.
    """

    def __init__(self):
        self._operators: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
            ConditionOperator.EQUALS: self._equals,
            ConditionOperator.NOT_EQUALS: self._not_equals,
            ConditionOperator.GREATER_THAN: self._greater_than,
            ConditionOperator.LESS_THAN: self._less_than,
            ConditionOperator.CONTAINS: self._contains,
            ConditionOperator.EXISTS: self._exists,
        }

    def register(
        self,
        operator: ConditionOperator,
        func: Callable[[Any, Any], bool],
    ) -> None:
        """Register a custom operator."""
        self._operators[operator] = func

    def evaluate(
        self,
        operator: ConditionOperator,
        left: Any,
        right: Any,
    ) -> bool:
        """Evaluate an operator."""
        func = self._operators.get(operator)
        if not func:
            raise ValueError(f"Unknown operator: {operator}")

        return func(left, right)

    # === Operator Implementations ===

    @staticmethod
    def _equals(left: Any, right: Any) -> bool:
        # No cross-type coercion: "1" != 1 and True != 1
        if isinstance(left, bool) != isinstance(right, bool):
            return False
        return left == right

    @staticmethod
    def _not_equals(left: Any, right: Any) -> bool:
        return not OperatorRegistry._equals(left, right)

    @staticmethod
    def _greater_than(left: Any, right: Any) -> bool:
        if left is None or right is None:
            return False
        try:
            return left > right
        except TypeError:
            return False

    @staticmethod
    def _less_than(left: Any, right: Any) -> bool:
        if left is None or right is None:
            return False
        try:
            return left < right
        except TypeError:
            return False

    @staticmethod
    def _contains(left: Any, right: Any) -> bool:
        if left is None:
            return False
        if isinstance(left, (list, tuple, set, frozenset, dict)):
            return right in left
        return str(right) in str(left)

    @staticmethod
    def _exists(left: Any, right: Any) -> bool:
        return left is not None


_default_registry = OperatorRegistry()


def compare(operator: ConditionOperator, left: Any, right: Any) -> bool:
    """Compare two values using the default operator registry."""
    return _default_registry.evaluate(operator, left, right)
