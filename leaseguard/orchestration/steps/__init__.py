"""Step handlers and the step executor."""

from leaseguard.orchestration.steps.action import ExecuteStepHandler
from leaseguard.orchestration.steps.analysis import ClassifyStepHandler, DecideStepHandler
from leaseguard.orchestration.steps.base import BaseStepHandler
from leaseguard.orchestration.steps.detection import DetectStepHandler
from leaseguard.orchestration.steps.executor import StepExecutor
from leaseguard.orchestration.steps.verification import UpdateStepHandler, VerifyStepHandler

__all__ = [
    "BaseStepHandler",
    "ClassifyStepHandler",
    "DecideStepHandler",
    "DetectStepHandler",
    "ExecuteStepHandler",
    "StepExecutor",
    "UpdateStepHandler",
    "VerifyStepHandler",
]
