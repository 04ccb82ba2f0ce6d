"""
Leaseguard Bootstrap

Builds an engine and its collaborators from configuration. The engine
is constructed once at start-up and passed to whatever needs it.
"""

from __future__ import annotations

from typing import Optional

import structlog

from leaseguard.core.config import LeaseguardConfig
from leaseguard.orchestration.agents import AgentRegistry
from leaseguard.orchestration.approval.gateway import ApprovalGateway
from leaseguard.orchestration.collaborators import (
    CertificationService,
    CronScheduler,
    DomainUpdater,
    InMemoryCertificationService,
    InMemoryDomainUpdater,
    LogNotifier,
    Notifier,
    WorkflowScheduler,
)
from leaseguard.orchestration.compensation import RollbackManager
from leaseguard.orchestration.engine import WorkflowEngine
from leaseguard.orchestration.execution.history import ExecutionHistory
from leaseguard.orchestration.execution.repository import ExecutionRepository
from leaseguard.orchestration.steps import (
    ClassifyStepHandler,
    DecideStepHandler,
    DetectStepHandler,
    ExecuteStepHandler,
    StepExecutor,
    UpdateStepHandler,
    VerifyStepHandler,
)
from leaseguard.orchestration.store import (
    DocumentStore,
    MemoryDocumentStore,
    SQLiteDocumentStore,
)
from leaseguard.orchestration.types import StepType

logger = structlog.get_logger(__name__)


def build_store(config: LeaseguardConfig) -> DocumentStore:
    """Create the document store selected in configuration."""
    if config.store.backend == "sqlite":
        return SQLiteDocumentStore(config.store_path())
    if config.store.path is not None:
        return MemoryDocumentStore(config.store.path, auto_persist=config.store.auto_persist)
    return MemoryDocumentStore()


def build_engine(
    config: Optional[LeaseguardConfig] = None,
    store: Optional[DocumentStore] = None,
    agents: Optional[AgentRegistry] = None,
    certification: Optional[CertificationService] = None,
    notifier: Optional[Notifier] = None,
    domain: Optional[DomainUpdater] = None,
    scheduler: Optional[WorkflowScheduler] = None,
) -> WorkflowEngine:
    """
    Wire a WorkflowEngine.

    Collaborators not supplied fall back to the in-memory and log-based
    implementations.
    """
    config = config or LeaseguardConfig()
    orchestration = config.orchestration

    store = store or build_store(config)
    if agents is None:
        agents = AgentRegistry()
    certification = certification or InMemoryCertificationService()
    notifier = notifier or LogNotifier()
    domain = domain or InMemoryDomainUpdater()
    scheduler = scheduler or CronScheduler()

    repository = ExecutionRepository(store)
    history = ExecutionHistory(store)
    gateway = ApprovalGateway(store, notifier, orchestration)

    executor = StepExecutor(
        repository,
        gateway,
        handlers={
            StepType.DETECT: DetectStepHandler(agents),
            StepType.CLASSIFY: ClassifyStepHandler(),
            StepType.DECIDE: DecideStepHandler(),
            StepType.EXECUTE: ExecuteStepHandler(certification, notifier, domain, orchestration),
            StepType.VERIFY: VerifyStepHandler(certification),
            StepType.UPDATE: UpdateStepHandler(certification, domain, history),
        },
    )

    engine = WorkflowEngine(
        store=store,
        executor=executor,
        approval_gateway=gateway,
        notifier=notifier,
        history=history,
        rollback=RollbackManager(certification),
        scheduler=scheduler,
        config=orchestration,
    )

    logger.debug(
        "engine_built",
        store=type(store).__name__,
        agents=agents.names(),
    )
    return engine
