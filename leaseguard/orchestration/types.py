"""
Leaseguard Orchestration Types

Core dataclasses for workflow definitions, executions, approvals and
typed step results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# === Enums ===


class WorkflowStatus(str, Enum):
    """Status of a workflow definition."""
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class ExecutionStatus(str, Enum):
    """Status of a workflow execution."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self != ExecutionStatus.RUNNING


class StepStatus(str, Enum):
    """Status of a single step within an execution."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepType(str, Enum):
    """Phases a workflow step can perform."""
    DETECT = "detect"
    CLASSIFY = "classify"
    DECIDE = "decide"
    EXECUTE = "execute"
    VERIFY = "verify"
    UPDATE = "update"


class TriggerType(str, Enum):
    """Types of workflow triggers."""
    SCHEDULED = "scheduled"
    EVENT = "event"
    MANUAL = "manual"
    THRESHOLD = "threshold"


class ConditionOperator(str, Enum):
    """Operators usable in step conditions."""
    EQUALS = "="
    NOT_EQUALS = "!="
    GREATER_THAN = ">"
    LESS_THAN = "<"
    CONTAINS = "contains"
    EXISTS = "exists"


class ApprovalStatus(str, Enum):
    """Status of an approval request."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    TIMEOUT = "timeout"


class ApprovalDecision(str, Enum):
    """Decision an approver can submit."""
    APPROVE = "approve"
    REJECT = "reject"


class Severity(str, Enum):
    """Severity of a finding."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value: Any, default: "Severity" = None) -> "Severity":
        """Parse a severity, falling back to ``default`` (medium) for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return default or cls.MEDIUM


class ActionType(str, Enum):
    """Effects an execute step can apply."""
    AUTO_FIX = "autoFix"
    CREATE_TICKET = "createTicket"
    BLOCK_ACCESS = "blockAccess"
    NOTIFY = "notify"
    LOG = "log"


# === Workflow definition ===


@dataclass
class ThresholdConfig:
    """Metric threshold for threshold-triggered workflows."""
    metric: str = ""
    operator: ConditionOperator = ConditionOperator.GREATER_THAN
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"metric": self.metric, "operator": self.operator.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThresholdConfig":
        return cls(
            metric=data.get("metric", ""),
            operator=ConditionOperator(data.get("operator", ">")),
            value=data.get("value"),
        )


@dataclass
class TriggerConfig:
    """How a workflow gets started."""
    type: TriggerType = TriggerType.MANUAL
    schedule: Optional[str] = None  # Cron expression
    event: Optional[str] = None
    threshold: Optional[ThresholdConfig] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "schedule": self.schedule,
            "event": self.event,
            "threshold": self.threshold.to_dict() if self.threshold else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TriggerConfig":
        threshold = data.get("threshold")
        return cls(
            type=TriggerType(data.get("type", "manual")),
            schedule=data.get("schedule"),
            event=data.get("event"),
            threshold=ThresholdConfig.from_dict(threshold) if threshold else None,
        )


@dataclass
class Condition:
    """A gate on a step, checked against the execution context."""
    field: str = ""  # Dotted path into the context
    operator: ConditionOperator = ConditionOperator.EQUALS
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "operator": self.operator.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Condition":
        return cls(
            field=data.get("field", ""),
            operator=ConditionOperator(data.get("operator", "=")),
            value=data.get("value"),
        )


@dataclass
class RetryPolicy:
    """Extra attempts for a failed step."""
    attempts: int = 0  # Retries after the original attempt
    delay_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"attempts": self.attempts, "delay": self.delay_ms}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryPolicy":
        return cls(
            attempts=int(data.get("attempts", 0)),
            delay_ms=int(data.get("delay", data.get("delay_ms", 0))),
        )


@dataclass
class OnSuccess:
    """What happens after a step succeeds."""
    next_step: Optional[str] = None
    notification: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"next_step": self.next_step, "notification": self.notification}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OnSuccess":
        return cls(
            next_step=data.get("next_step"),
            notification=bool(data.get("notification", False)),
        )


@dataclass
class OnFailure:
    """What happens after a step fails."""
    next_step: Optional[str] = None
    notification: bool = False
    retry: Optional[RetryPolicy] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "next_step": self.next_step,
            "notification": self.notification,
            "retry": self.retry.to_dict() if self.retry else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OnFailure":
        retry = data.get("retry")
        return cls(
            next_step=data.get("next_step"),
            notification=bool(data.get("notification", False)),
            retry=RetryPolicy.from_dict(retry) if retry else None,
        )


@dataclass
class WorkflowStep:
    """A single step in a workflow."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    type: StepType = StepType.DETECT
    action: str = ""
    agent: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    conditions: List[Condition] = field(default_factory=list)
    on_success: OnSuccess = field(default_factory=OnSuccess)
    on_failure: OnFailure = field(default_factory=OnFailure)
    human_approval_required: bool = False
    timeout_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "action": self.action,
            "agent": self.agent,
            "parameters": self.parameters,
            "conditions": [c.to_dict() for c in self.conditions],
            "on_success": self.on_success.to_dict(),
            "on_failure": self.on_failure.to_dict(),
            "human_approval_required": self.human_approval_required,
            "timeout": self.timeout_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowStep":
        timeout = data.get("timeout", data.get("timeout_ms"))
        return cls(
            id=data.get("id", str(uuid.uuid4())),
            name=data.get("name", ""),
            type=StepType(data.get("type", "detect")),
            action=data.get("action", ""),
            agent=data.get("agent"),
            parameters=dict(data.get("parameters") or {}),
            conditions=[Condition.from_dict(c) for c in data.get("conditions") or []],
            on_success=OnSuccess.from_dict(data.get("on_success") or {}),
            on_failure=OnFailure.from_dict(data.get("on_failure") or {}),
            human_approval_required=bool(data.get("human_approval_required", False)),
            timeout_ms=int(timeout) if timeout is not None else None,
        )


@dataclass
class Workflow:
    """A reusable definition of ordered steps and a trigger."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    description: str = ""
    trigger: TriggerConfig = field(default_factory=TriggerConfig)
    steps: List[WorkflowStep] = field(default_factory=list)
    status: WorkflowStatus = WorkflowStatus.ACTIVE
    created_at: datetime = field(default_factory=datetime.now)
    last_executed_at: Optional[datetime] = None
    next_execution_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        """Get a step by ID."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def step_index(self, step_id: str) -> int:
        """Position of a step, or -1 if absent."""
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        return -1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "trigger": self.trigger.to_dict(),
            "steps": [s.to_dict() for s in self.steps],
            "status": self.status.value,
            "created_at": _format_dt(self.created_at),
            "last_executed_at": _format_dt(self.last_executed_at),
            "next_execution_at": _format_dt(self.next_execution_at),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Workflow":
        return cls(
            id=data.get("id", str(uuid.uuid4())),
            name=data.get("name", ""),
            description=data.get("description", ""),
            trigger=TriggerConfig.from_dict(data.get("trigger") or {}),
            steps=[WorkflowStep.from_dict(s) for s in data.get("steps") or []],
            status=WorkflowStatus(data.get("status", "active")),
            created_at=_parse_dt(data.get("created_at")) or datetime.now(),
            last_executed_at=_parse_dt(data.get("last_executed_at")),
            next_execution_at=_parse_dt(data.get("next_execution_at")),
            metadata=dict(data.get("metadata") or {}),
        )


# === Findings ===


@dataclass
class Flag:
    """A severity-tagged finding raised by an analysis agent."""
    type: str = ""
    severity: Severity = Severity.MEDIUM
    message: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "message": self.message,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Flag":
        return cls(
            type=data.get("type", ""),
            severity=Severity.parse(data.get("severity")),
            message=data.get("message", ""),
            metadata=dict(data.get("metadata") or {}),
        )


# === Execution ===


@dataclass
class StepRun:
    """Per-step state inside an execution."""
    step_id: str
    status: StepStatus = StepStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Any = None
    error: Optional[str] = None
    attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "status": self.status.value,
            "started_at": _format_dt(self.started_at),
            "completed_at": _format_dt(self.completed_at),
            "result": self.result,
            "error": self.error,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepRun":
        return cls(
            step_id=data["step_id"],
            status=StepStatus(data.get("status", "pending")),
            started_at=_parse_dt(data.get("started_at")),
            completed_at=_parse_dt(data.get("completed_at")),
            result=data.get("result"),
            error=data.get("error"),
            attempts=int(data.get("attempts", 0)),
        )


@dataclass
class WorkflowExecution:
    """One run of a workflow."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str = ""
    status: ExecutionStatus = ExecutionStatus.RUNNING
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    current_step: Optional[str] = None
    steps: List[StepRun] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)
    flags: List[Flag] = field(default_factory=list)
    error: Optional[str] = None
    revision: int = 0

    def get_step_run(self, step_id: str) -> Optional[StepRun]:
        for run in self.steps:
            if run.step_id == step_id:
                return run
        return None

    @property
    def duration_ms(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "status": self.status.value,
            "started_at": _format_dt(self.started_at),
            "completed_at": _format_dt(self.completed_at),
            "current_step": self.current_step,
            "steps": [s.to_dict() for s in self.steps],
            "context": self.context,
            "flags": [f.to_dict() for f in self.flags],
            "error": self.error,
            "revision": self.revision,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowExecution":
        return cls(
            id=data["id"],
            workflow_id=data.get("workflow_id", ""),
            status=ExecutionStatus(data.get("status", "running")),
            started_at=_parse_dt(data.get("started_at")) or datetime.now(),
            completed_at=_parse_dt(data.get("completed_at")),
            current_step=data.get("current_step"),
            steps=[StepRun.from_dict(s) for s in data.get("steps") or []],
            context=dict(data.get("context") or {}),
            flags=[Flag.from_dict(f) for f in data.get("flags") or []],
            error=data.get("error"),
            revision=int(data.get("revision", 0)),
        )


# === Approvals ===


@dataclass
class ApprovalResponse:
    """What an approver submitted."""
    decision: ApprovalDecision
    reason: Optional[str] = None
    modifications: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision": self.decision.value,
            "reason": self.reason,
            "modifications": self.modifications,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalResponse":
        return cls(
            decision=ApprovalDecision(data["decision"]),
            reason=data.get("reason"),
            modifications=data.get("modifications"),
        )


@dataclass
class Approval:
    """A human-in-the-loop gate with a deadline."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    execution_id: str = ""
    step_id: str = ""
    requested_at: datetime = field(default_factory=datetime.now)
    requested_by: str = ""
    description: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    status: ApprovalStatus = ApprovalStatus.PENDING
    timeout_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    responded_by: Optional[str] = None
    response: Optional[ApprovalResponse] = None
    revision: int = 0

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.timeout_at is None:
            return False
        return (now or datetime.now()) >= self.timeout_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "execution_id": self.execution_id,
            "step_id": self.step_id,
            "requested_at": _format_dt(self.requested_at),
            "requested_by": self.requested_by,
            "description": self.description,
            "data": self.data,
            "status": self.status.value,
            "timeout_at": _format_dt(self.timeout_at),
            "responded_at": _format_dt(self.responded_at),
            "responded_by": self.responded_by,
            "response": self.response.to_dict() if self.response else None,
            "revision": self.revision,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Approval":
        response = data.get("response")
        return cls(
            id=data["id"],
            execution_id=data.get("execution_id", ""),
            step_id=data.get("step_id", ""),
            requested_at=_parse_dt(data.get("requested_at")) or datetime.now(),
            requested_by=data.get("requested_by", ""),
            description=data.get("description", ""),
            data=dict(data.get("data") or {}),
            status=ApprovalStatus(data.get("status", "pending")),
            timeout_at=_parse_dt(data.get("timeout_at")),
            responded_at=_parse_dt(data.get("responded_at")),
            responded_by=data.get("responded_by"),
            response=ApprovalResponse.from_dict(response) if response else None,
            revision=int(data.get("revision", 0)),
        )


# === Typed step results ===


@dataclass
class DetectionResult:
    """Output of a detect step. Agent-specific keys are kept in ``extra``."""
    flags: List[Flag] = field(default_factory=list)
    score: Optional[float] = None
    severity: Optional[Severity] = None
    category: Optional[str] = None
    impact: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _KNOWN = ("flags", "score", "severity", "category", "impact")

    def to_dict(self) -> Dict[str, Any]:
        result = dict(self.extra)
        result.update({
            "flags": [f.to_dict() for f in self.flags],
            "score": self.score,
            "severity": self.severity.value if self.severity else None,
            "category": self.category,
            "impact": self.impact,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetectionResult":
        flags = []
        for flag in data.get("flags") or []:
            flags.append(flag if isinstance(flag, Flag) else Flag.from_dict(flag))
        severity = data.get("severity")
        return cls(
            flags=flags,
            score=data.get("score"),
            severity=Severity.parse(severity) if severity else None,
            category=data.get("category"),
            impact=data.get("impact"),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN},
        )


@dataclass
class Classification:
    """Output of a classify step."""
    severity: Severity = Severity.MEDIUM
    category: str = "unknown"
    priority: float = 50
    requires_approval: bool = False
    flags: List[Flag] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "category": self.category,
            "priority": self.priority,
            "requires_approval": self.requires_approval,
            "flags": [f.to_dict() for f in self.flags],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Classification":
        return cls(
            severity=Severity.parse(data.get("severity")),
            category=data.get("category", "unknown"),
            priority=data.get("priority", 50),
            requires_approval=bool(data.get("requires_approval", False)),
            flags=[Flag.from_dict(f) for f in data.get("flags") or []],
        )


@dataclass
class Decision:
    """Output of a decide step."""
    action: str = ActionType.LOG.value
    auto_execute: bool = False
    notification_required: bool = False
    escalation_required: bool = False
    classification: Optional[Classification] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "auto_execute": self.auto_execute,
            "notification_required": self.notification_required,
            "escalation_required": self.escalation_required,
            "classification": self.classification.to_dict() if self.classification else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Decision":
        classification = data.get("classification")
        return cls(
            action=data.get("action", ActionType.LOG.value),
            auto_execute=bool(data.get("auto_execute", False)),
            notification_required=bool(data.get("notification_required", False)),
            escalation_required=bool(data.get("escalation_required", False)),
            classification=Classification.from_dict(classification) if classification else None,
        )


@dataclass
class ActionResult:
    """Output of an execute step."""
    action: str
    success: bool = True
    issue_id: Optional[str] = None
    auto_fix_id: Optional[str] = None
    ticket_id: Optional[str] = None
    priority: Optional[float] = None
    assigned_to: Optional[str] = None
    blocked: bool = False
    resources: List[str] = field(default_factory=list)
    notification_id: Optional[str] = None
    rollback_available: bool = False
    rollback_actions: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "success": self.success,
            "issue_id": self.issue_id,
            "auto_fix_id": self.auto_fix_id,
            "ticket_id": self.ticket_id,
            "priority": self.priority,
            "assigned_to": self.assigned_to,
            "blocked": self.blocked,
            "resources": list(self.resources),
            "notification_id": self.notification_id,
            "rollback_available": self.rollback_available,
            "rollback_actions": list(self.rollback_actions),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionResult":
        return cls(
            action=data["action"],
            success=bool(data.get("success", True)),
            issue_id=data.get("issue_id"),
            auto_fix_id=data.get("auto_fix_id"),
            ticket_id=data.get("ticket_id"),
            priority=data.get("priority"),
            assigned_to=data.get("assigned_to"),
            blocked=bool(data.get("blocked", False)),
            resources=list(data.get("resources") or []),
            notification_id=data.get("notification_id"),
            rollback_available=bool(data.get("rollback_available", False)),
            rollback_actions=list(data.get("rollback_actions") or []),
        )


@dataclass
class Verification:
    """Output of a verify step."""
    verified: bool
    details: Dict[str, Any] = field(default_factory=dict)
    retry_required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verified": self.verified,
            "details": self.details,
            "retry_required": self.retry_required,
        }


@dataclass
class UpdateResult:
    """Output of an update step."""
    updates: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {"updates": list(self.updates), "timestamp": _format_dt(self.timestamp)}


@dataclass
class ApprovalOutcome:
    """Result of an approved human-approval step."""
    approved: bool
    approval_id: str
    approved_by: Optional[str] = None
    response: Optional[ApprovalResponse] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approved": self.approved,
            "approval_id": self.approval_id,
            "approved_by": self.approved_by,
            "response": self.response.to_dict() if self.response else None,
        }
