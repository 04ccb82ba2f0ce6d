"""
Leaseguard Auto-Fix Rollback

Reverses completed auto-fixes when an execution fails. Only auto-fixes
that declare ``rollback_available`` and carry explicit
``rollback_actions`` are reversed; other step types are left alone.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import structlog

from leaseguard.orchestration.collaborators import CertificationService
from leaseguard.orchestration.types import ActionType, StepStatus

if TYPE_CHECKING:
    from leaseguard.orchestration.types import WorkflowExecution

logger = structlog.get_logger(__name__)


class CompensationStatus(str, Enum):
    """Outcome of a rollback."""
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class CompensationResult:
    """Result of rolling back one auto-fix."""
    step_id: str
    auto_fix_id: str
    status: CompensationStatus
    error: Optional[str] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "auto_fix_id": self.auto_fix_id,
            "status": self.status.value,
            "error": self.error,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class RollbackManager:
    """Rolls back reversible auto-fixes of a failed execution, newest first."""

    def __init__(self, certification: CertificationService):
        self.certification = certification

    @staticmethod
    def reversible(result: Any) -> bool:
        return (
            isinstance(result, dict)
            and result.get("action") == ActionType.AUTO_FIX.value
            and bool(result.get("auto_fix_id"))
            and bool(result.get("rollback_available"))
            and bool(result.get("rollback_actions"))
        )

    async def rollback(self, execution: "WorkflowExecution") -> List[CompensationResult]:
        """Roll back every reversible auto-fix. Failures are logged, not raised."""
        results: List[CompensationResult] = []

        for run in reversed(execution.steps):
            if run.status != StepStatus.COMPLETED or not self.reversible(run.result):
                continue

            auto_fix_id = run.result["auto_fix_id"]
            try:
                await self.certification.rollback_auto_fix(auto_fix_id, run.result["rollback_actions"])
            except Exception as e:
                logger.error(
                    "auto_fix_rollback_failed",
                    execution_id=execution.id,
                    step_id=run.step_id,
                    auto_fix_id=auto_fix_id,
                    error=str(e),
                )
                results.append(CompensationResult(
                    step_id=run.step_id,
                    auto_fix_id=auto_fix_id,
                    status=CompensationStatus.FAILED,
                    error=str(e),
                ))
                continue

            logger.info(
                "auto_fix_rolled_back",
                execution_id=execution.id,
                step_id=run.step_id,
                auto_fix_id=auto_fix_id,
            )
            results.append(CompensationResult(
                step_id=run.step_id,
                auto_fix_id=auto_fix_id,
                status=CompensationStatus.COMPLETED,
                completed_at=datetime.now(),
            ))

        return results
