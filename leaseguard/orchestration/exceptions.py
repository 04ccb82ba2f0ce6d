"""
Leaseguard Orchestration Errors

Exception taxonomy for workflow definition, step execution and approvals.
Step-level errors carry the failing step id and whether the engine may
retry them.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class OrchestrationError(Exception):
    """Base class for all orchestration errors."""

    retryable: bool = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class WorkflowNotFoundError(OrchestrationError):
    """Raised when a workflow id does not resolve to a stored workflow."""

    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow not found: {workflow_id}", workflow_id=workflow_id)
        self.workflow_id = workflow_id


class InvalidWorkflowError(OrchestrationError):
    """Raised when a workflow definition fails validation."""


class ExecutionNotFoundError(OrchestrationError):
    """Raised when an execution id does not resolve to a stored execution."""

    def __init__(self, execution_id: str):
        super().__init__(f"Execution not found: {execution_id}", execution_id=execution_id)
        self.execution_id = execution_id


class ConcurrentModificationError(OrchestrationError):
    """Raised when a document revision check fails on write."""

    def __init__(
        self,
        collection: str,
        doc_id: str,
        expected: Optional[int],
        actual: Optional[int],
    ):
        super().__init__(
            f"Revision conflict on {collection}/{doc_id}: "
            f"expected {expected}, found {actual}",
            collection=collection,
            doc_id=doc_id,
            expected=expected,
            actual=actual,
        )
        self.expected = expected
        self.actual = actual


class DocumentNotFoundError(OrchestrationError):
    """Raised when a partial update targets a missing document."""

    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"Document not found: {collection}/{doc_id}", collection=collection, doc_id=doc_id)


class DuplicateResultError(OrchestrationError):
    """Raised when a step result key is written twice in one execution."""

    def __init__(self, step_id: str):
        super().__init__(f"Result already recorded for step: {step_id}", step_id=step_id)
        self.step_id = step_id


# === Step errors ===


class StepExecutionError(OrchestrationError):
    """A step failed while running."""

    retryable = True

    def __init__(
        self,
        message: str,
        step_id: Optional[str] = None,
        retryable: Optional[bool] = None,
        **details: Any,
    ):
        super().__init__(message, step_id=step_id, **details)
        self.step_id = step_id
        if retryable is not None:
            self.retryable = retryable


class StepTimeoutError(StepExecutionError):
    """A step exceeded its configured timeout."""


class VerificationFailedError(StepExecutionError):
    """A verify step required a verified outcome and did not get one."""


class MissingInputError(StepExecutionError):
    """A step found no upstream result to work on."""

    retryable = False


class StepConfigurationError(StepExecutionError):
    """A step definition lacks something its type requires."""

    retryable = False


class AgentNotFoundError(StepExecutionError):
    """The agent named by a detect step is not registered."""

    retryable = False

    def __init__(self, agent_name: str, step_id: Optional[str] = None):
        super().__init__(f"Agent not found: {agent_name}", step_id=step_id, agent=agent_name)
        self.agent_name = agent_name


class UnknownStepTypeError(StepExecutionError):
    """No handler is registered for the step type."""

    retryable = False


class UnknownActionError(StepExecutionError):
    """An execute step received an action it does not know."""

    retryable = False


# === Approval errors ===


class ApprovalError(StepExecutionError):
    """Base class for approval outcomes that fail the owning step."""

    retryable = False


class ApprovalRejectedError(ApprovalError):
    """The approver rejected the request."""

    def __init__(self, approval_id: str, reason: Optional[str] = None, step_id: Optional[str] = None):
        super().__init__(
            f"Approval rejected: {reason or 'no reason given'}",
            step_id=step_id,
            approval_id=approval_id,
            reason=reason,
        )
        self.approval_id = approval_id
        self.reason = reason


class ApprovalTimeoutError(ApprovalError):
    """Nobody responded before the approval deadline."""

    def __init__(self, approval_id: str, step_id: Optional[str] = None):
        super().__init__(f"Approval timeout: {approval_id}", step_id=step_id, approval_id=approval_id)
        self.approval_id = approval_id


class ApprovalNotFoundError(OrchestrationError):
    """Raised when an approval id does not resolve."""

    def __init__(self, approval_id: str):
        super().__init__(f"Approval not found: {approval_id}", approval_id=approval_id)
        self.approval_id = approval_id


class AlreadyRespondedError(OrchestrationError):
    """Raised when responding to an approval that is no longer pending."""

    def __init__(self, approval_id: str, status: str):
        super().__init__(f"Approval already {status}", approval_id=approval_id, status=status)
        self.approval_id = approval_id
        self.status = status
