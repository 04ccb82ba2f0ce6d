"""
Leaseguard Action Collaborators

Interfaces to the services that steps act through: certification,
notifications, domain updates and scheduling. In-memory implementations
are provided for local runs and tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, TYPE_CHECKING
import uuid

from croniter import croniter
import structlog

if TYPE_CHECKING:
    from leaseguard.orchestration.types import Workflow

logger = structlog.get_logger(__name__)


@dataclass
class Notification:
    """An outbound message to people."""
    recipients: List[str]
    subject: str
    body: str = ""
    channels: List[str] = field(default_factory=lambda: ["email"])
    priority: str = "medium"
    template: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipients": self.recipients,
            "subject": self.subject,
            "body": self.body,
            "channels": self.channels,
            "priority": self.priority,
            "template": self.template,
            "metadata": self.metadata,
        }


# === Interfaces ===


class CertificationService(ABC):
    """Compliance issues, auto-fixes and certification scores."""

    @abstractmethod
    async def create_issue(self, issue: Dict[str, Any]) -> Dict[str, Any]:
        """Open an issue (ticket). Returns the stored issue with its ``id``."""

    @abstractmethod
    async def get_issue(self, issue_id: str) -> Optional[Dict[str, Any]]:
        """Read an issue by ID."""

    @abstractmethod
    async def create_auto_fix(self, issue: Dict[str, Any]) -> Dict[str, Any]:
        """
        Generate a remediation for an issue.

        Returns ``{id, issue_id, rollback_available, rollback_actions}``.
        """

    @abstractmethod
    async def rollback_auto_fix(self, auto_fix_id: str, actions: List[Dict[str, Any]]) -> None:
        """Reverse a previously applied auto-fix."""

    @abstractmethod
    async def calculate_scores(self, resource_id: str, metrics: Dict[str, Any]) -> Dict[str, Any]:
        """Recalculate certification scores for a resource."""


class Notifier(ABC):
    """Sends notifications."""

    @abstractmethod
    async def send(self, notification: Notification) -> str:
        """Send a notification. Returns its ID."""


class DomainUpdater(ABC):
    """Writes lease and access state in the business domain."""

    @abstractmethod
    async def update(self, resource_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a partial update to a resource such as a lease."""

    @abstractmethod
    async def block_access(self, resources: List[str], reason: str) -> Dict[str, Any]:
        """Block access to resources."""


class WorkflowScheduler(ABC):
    """Registers scheduled workflows with whatever fires them."""

    @abstractmethod
    def register(self, workflow: "Workflow") -> Optional[datetime]:
        """Register a workflow. Returns its next execution time, if known."""

    def unregister(self, workflow_id: str) -> bool:
        return False


# === Implementations ===


class LogNotifier(Notifier):
    """Notifier that writes notifications to the structured log."""

    def __init__(self):
        self.sent: List[Notification] = []

    async def send(self, notification: Notification) -> str:
        notification_id = str(uuid.uuid4())
        self.sent.append(notification)
        logger.info(
            "notification_sent",
            notification_id=notification_id,
            recipients=notification.recipients,
            channels=notification.channels,
            priority=notification.priority,
            subject=notification.subject,
        )
        return notification_id


class InMemoryCertificationService(CertificationService):
    """
    Certification service keeping issues and auto-fixes in memory.

    Auto-fixes resolve their issue immediately and carry a single
    ``restore`` rollback action targeting the affected resources.
    """

    def __init__(self, resolve_auto_fixes: bool = True):
        self.resolve_auto_fixes = resolve_auto_fixes
        self.issues: Dict[str, Dict[str, Any]] = {}
        self.auto_fixes: Dict[str, Dict[str, Any]] = {}
        self.scores: Dict[str, Dict[str, Any]] = {}
        self.rolled_back: List[str] = []

    async def create_issue(self, issue: Dict[str, Any]) -> Dict[str, Any]:
        stored = dict(issue)
        stored.setdefault("id", str(uuid.uuid4()))
        stored.setdefault("status", "open")
        stored["created_at"] = datetime.now().isoformat()
        self.issues[stored["id"]] = stored
        return dict(stored)

    async def get_issue(self, issue_id: str) -> Optional[Dict[str, Any]]:
        issue = self.issues.get(issue_id)
        return dict(issue) if issue else None

    async def create_auto_fix(self, issue: Dict[str, Any]) -> Dict[str, Any]:
        stored_issue = await self.create_issue(issue)
        if self.resolve_auto_fixes:
            self.issues[stored_issue["id"]]["status"] = "resolved"

        auto_fix = {
            "id": str(uuid.uuid4()),
            "issue_id": stored_issue["id"],
            "status": "applied",
            "rollback_available": True,
            "rollback_actions": [
                {"type": "restore", "target": resource, "parameters": {}}
                for resource in issue.get("affected_resources", [])
            ],
        }
        self.auto_fixes[auto_fix["id"]] = auto_fix
        return dict(auto_fix)

    async def rollback_auto_fix(self, auto_fix_id: str, actions: List[Dict[str, Any]]) -> None:
        auto_fix = self.auto_fixes.get(auto_fix_id)
        if auto_fix is None:
            raise KeyError(f"Auto-fix not found: {auto_fix_id}")
        auto_fix["status"] = "rolled_back"
        issue = self.issues.get(auto_fix["issue_id"])
        if issue:
            issue["status"] = "open"
        self.rolled_back.append(auto_fix_id)

    async def calculate_scores(self, resource_id: str, metrics: Dict[str, Any]) -> Dict[str, Any]:
        scores = {
            "resource_id": resource_id,
            "metrics": dict(metrics),
            "calculated_at": datetime.now().isoformat(),
        }
        self.scores[resource_id] = scores
        return scores


class InMemoryDomainUpdater(DomainUpdater):
    """Domain updater keeping resource state in memory."""

    def __init__(self):
        self.resources: Dict[str, Dict[str, Any]] = {}
        self.blocked: List[str] = []

    async def update(self, resource_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        resource = self.resources.setdefault(resource_id, {"id": resource_id})
        resource.update(changes)
        resource["updated_at"] = datetime.now().isoformat()
        return dict(resource)

    async def block_access(self, resources: List[str], reason: str) -> Dict[str, Any]:
        for resource in resources:
            if resource not in self.blocked:
                self.blocked.append(resource)
        logger.warning("access_blocked", resources=resources, reason=reason)
        return {"blocked": True, "resources": list(resources)}


class CronScheduler(WorkflowScheduler):
    """
    Tracks cron-triggered workflows and when they are next due.

    Firing is left to the caller: poll ``due()`` and run what it returns.
    """

    def __init__(self):
        self._schedules: Dict[str, str] = {}
        self._next_run: Dict[str, datetime] = {}

    @staticmethod
    def validate_cron(expression: str) -> bool:
        return croniter.is_valid(expression)

    @staticmethod
    def next_time(expression: str, after: Optional[datetime] = None) -> datetime:
        return croniter(expression, after or datetime.now()).get_next(datetime)

    def register(self, workflow: "Workflow") -> Optional[datetime]:
        expression = workflow.trigger.schedule
        if not expression:
            logger.warning("schedule_missing", workflow_id=workflow.id)
            return None
        if not self.validate_cron(expression):
            raise ValueError(f"Invalid cron expression: {expression}")

        self._schedules[workflow.id] = expression
        self._next_run[workflow.id] = self.next_time(expression)
        logger.info(
            "workflow_scheduled",
            workflow_id=workflow.id,
            schedule=expression,
            next_execution_at=self._next_run[workflow.id].isoformat(),
        )
        return self._next_run[workflow.id]

    def unregister(self, workflow_id: str) -> bool:
        self._next_run.pop(workflow_id, None)
        return self._schedules.pop(workflow_id, None) is not None

    def next_run(self, workflow_id: str) -> Optional[datetime]:
        return self._next_run.get(workflow_id)

    def due(self, now: Optional[datetime] = None) -> List[str]:
        """Return workflows whose next run has passed and advance them."""
        now = now or datetime.now()
        ready = []
        for workflow_id, next_run in list(self._next_run.items()):
            if next_run <= now:
                ready.append(workflow_id)
                self._next_run[workflow_id] = self.next_time(self._schedules[workflow_id], now)
        return ready
