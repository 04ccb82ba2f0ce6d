"""
Leaseguard Orchestration

Step-based workflow engine for compliance detection, classification,
decision, action, verification and update, with human approval gates.
"""

from leaseguard.orchestration.agents import Agent, AgentRegistry, FunctionAgent
from leaseguard.orchestration.approval.gateway import ApprovalGateway
from leaseguard.orchestration.collaborators import (
    CertificationService,
    CronScheduler,
    DomainUpdater,
    InMemoryCertificationService,
    InMemoryDomainUpdater,
    LogNotifier,
    Notification,
    Notifier,
    WorkflowScheduler,
)
from leaseguard.orchestration.engine import WorkflowEngine
from leaseguard.orchestration.exceptions import (
    AlreadyRespondedError,
    ApprovalRejectedError,
    ApprovalTimeoutError,
    InvalidWorkflowError,
    MissingInputError,
    OrchestrationError,
    StepExecutionError,
    UnknownActionError,
    UnknownStepTypeError,
    WorkflowNotFoundError,
)
from leaseguard.orchestration.steps.executor import StepExecutor
from leaseguard.orchestration.types import (
    Approval,
    Condition,
    ExecutionStatus,
    Flag,
    StepStatus,
    StepType,
    TriggerConfig,
    TriggerType,
    Workflow,
    WorkflowExecution,
    WorkflowStep,
)

__all__ = [
    "Agent",
    "AgentRegistry",
    "AlreadyRespondedError",
    "Approval",
    "ApprovalGateway",
    "ApprovalRejectedError",
    "ApprovalTimeoutError",
    "CertificationService",
    "Condition",
    "CronScheduler",
    "DomainUpdater",
    "ExecutionStatus",
    "Flag",
    "FunctionAgent",
    "InMemoryCertificationService",
    "InMemoryDomainUpdater",
    "InvalidWorkflowError",
    "LogNotifier",
    "MissingInputError",
    "Notification",
    "Notifier",
    "OrchestrationError",
    "StepExecutionError",
    "StepExecutor",
    "StepStatus",
    "StepType",
    "TriggerConfig",
    "TriggerType",
    "UnknownActionError",
    "UnknownStepTypeError",
    "Workflow",
    "WorkflowEngine",
    "WorkflowExecution",
    "WorkflowNotFoundError",
    "WorkflowScheduler",
    "WorkflowStep",
]
