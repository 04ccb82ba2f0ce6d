"""Execution state: context accessor, repository and audit history."""

from leaseguard.orchestration.execution.context import ExecutionContext, result_key
from leaseguard.orchestration.execution.history import ExecutionHistory
from leaseguard.orchestration.execution.repository import ExecutionRepository

__all__ = [
    "ExecutionContext",
    "ExecutionHistory",
    "ExecutionRepository",
    "result_key",
]
