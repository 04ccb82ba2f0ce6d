"""
Tests for the Leaseguard approval gateway.
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from leaseguard.core.config import OrchestrationConfig
from leaseguard.orchestration.approval.gateway import ApprovalGateway
from leaseguard.orchestration.collaborators import LogNotifier
from leaseguard.orchestration.exceptions import (
    AlreadyRespondedError,
    ApprovalNotFoundError,
    ApprovalRejectedError,
    ApprovalTimeoutError,
)
from leaseguard.orchestration.store import APPROVALS, MemoryDocumentStore, SQLiteDocumentStore
from leaseguard.orchestration.types import (
    ApprovalStatus,
    StepType,
    WorkflowExecution,
    WorkflowStep,
)


def gate_step(timeout_ms=None):
    return WorkflowStep(
        id="execute-response",
        name="Execute Response",
        type=StepType.EXECUTE,
        human_approval_required=True,
        timeout_ms=timeout_ms,
    )


async def make_gateway():
    store = MemoryDocumentStore()
    await store.initialize()
    notifier = LogNotifier()
    config = OrchestrationConfig(approver_recipients=["officer@example.com"])
    return ApprovalGateway(store, notifier, config), store, notifier


async def wait_for_pending(gateway, count=1):
    for _ in range(200):
        pending = await gateway.get_pending()
        if len(pending) >= count:
            return pending
        await asyncio.sleep(0.01)
    raise AssertionError("approval was never requested")


class TestApprovalGateway:
    """Tests for approval requests and responses."""

    @pytest.mark.asyncio
    async def test_create_approval(self):
        """Test a new approval is pending with a fixed deadline."""
        gateway, store, _ = await make_gateway()
        execution = WorkflowExecution(workflow_id="wf-1", context={"leaseId": "L-9"})

        before = datetime.now()
        approval = await gateway.create_approval(gate_step(timeout_ms=60_000), execution)

        assert approval.status == ApprovalStatus.PENDING
        assert approval.requested_by == "orchestration_system"
        assert approval.description == "Approval required for: Execute Response"
        assert approval.data["context"] == {"leaseId": "L-9"}
        assert before + timedelta(seconds=59) < approval.timeout_at
        assert approval.timeout_at <= datetime.now() + timedelta(seconds=60)
        assert (await store.get(APPROVALS, approval.id))["status"] == "pending"

    @pytest.mark.asyncio
    async def test_default_timeout_is_one_hour(self):
        """Test steps without a timeout use the configured default."""
        gateway, _, _ = await make_gateway()
        approval = await gateway.create_approval(gate_step(), WorkflowExecution(workflow_id="wf-1"))

        assert approval.timeout_at - approval.requested_at == timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_approve_wakes_waiter(self):
        """Test an approval response resolves the waiting step."""
        gateway, _, notifier = await make_gateway()
        execution = WorkflowExecution(workflow_id="wf-1")

        waiter = asyncio.create_task(gateway.request_approval(gate_step(timeout_ms=5_000), execution))
        pending = await wait_for_pending(gateway)

        await gateway.respond(
            pending[0].id,
            "approve",
            "officer@example.com",
            reason="Confirmed with lessee",
            modifications={"scope": "parcel-7"},
        )
        outcome = await asyncio.wait_for(waiter, timeout=1)

        assert outcome["approved"] is True
        assert outcome["approved_by"] == "officer@example.com"
        assert outcome["response"]["modifications"] == {"scope": "parcel-7"}

        assert len(notifier.sent) == 1
        assert notifier.sent[0].recipients == ["officer@example.com"]
        assert notifier.sent[0].template == "approval-required"

    @pytest.mark.asyncio
    async def test_reject(self):
        """Test a rejection fails the step with the reason."""
        gateway, _, _ = await make_gateway()

        waiter = asyncio.create_task(
            gateway.request_approval(gate_step(timeout_ms=5_000), WorkflowExecution(workflow_id="wf-1"))
        )
        pending = await wait_for_pending(gateway)
        await gateway.respond(pending[0].id, "reject", "officer@example.com", reason="Too broad")

        with pytest.raises(ApprovalRejectedError) as exc_info:
            await asyncio.wait_for(waiter, timeout=1)

        assert exc_info.value.reason == "Too broad"
        assert exc_info.value.step_id == "execute-response"

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test an unanswered approval times out near its deadline."""
        gateway, store, _ = await make_gateway()
        loop = asyncio.get_running_loop()

        started = loop.time()
        with pytest.raises(ApprovalTimeoutError):
            await gateway.request_approval(gate_step(timeout_ms=200), WorkflowExecution(workflow_id="wf-1"))
        elapsed = loop.time() - started

        assert 0.15 <= elapsed < 1.0

        docs = await store.query(APPROVALS)
        assert len(docs) == 1
        assert docs[0]["status"] == "timeout"

    @pytest.mark.asyncio
    async def test_response_after_timeout_is_rejected(self):
        """Test a timed-out approval cannot be answered."""
        gateway, store, _ = await make_gateway()

        with pytest.raises(ApprovalTimeoutError):
            await gateway.request_approval(gate_step(timeout_ms=50), WorkflowExecution(workflow_id="wf-1"))

        approval_id = (await store.query(APPROVALS))[0]["id"]
        with pytest.raises(AlreadyRespondedError) as exc_info:
            await gateway.respond(approval_id, "approve", "late@example.com")

        assert exc_info.value.status == "timeout"

    @pytest.mark.asyncio
    async def test_second_response_is_rejected(self):
        """Test only the first response wins."""
        gateway, _, _ = await make_gateway()
        approval = await gateway.create_approval(gate_step(), WorkflowExecution(workflow_id="wf-1"))

        first = await gateway.respond(approval.id, "approve", "a@example.com")
        assert first.status == ApprovalStatus.APPROVED
        assert first.responded_by == "a@example.com"

        with pytest.raises(AlreadyRespondedError):
            await gateway.respond(approval.id, "reject", "b@example.com")

        stored = await gateway.get(approval.id)
        assert stored.status == ApprovalStatus.APPROVED

    @pytest.mark.asyncio
    async def test_invalid_responses(self):
        """Test unknown approvals and decisions."""
        gateway, _, _ = await make_gateway()
        approval = await gateway.create_approval(gate_step(), WorkflowExecution(workflow_id="wf-1"))

        with pytest.raises(ApprovalNotFoundError):
            await gateway.respond("missing", "approve", "a@example.com")

        with pytest.raises(ValueError):
            await gateway.respond(approval.id, "maybe", "a@example.com")

    @pytest.mark.asyncio
    async def test_get_pending(self):
        """Test pending lists exclude answered and expired approvals."""
        gateway, _, _ = await make_gateway()
        execution = WorkflowExecution(workflow_id="wf-1")

        open_approval = await gateway.create_approval(gate_step(timeout_ms=60_000), execution)
        answered = await gateway.create_approval(gate_step(timeout_ms=60_000), execution)
        expired = await gateway.create_approval(gate_step(timeout_ms=1), execution)
        await gateway.respond(answered.id, "approve", "a@example.com")

        pending = await gateway.get_pending(now=datetime.now() + timedelta(seconds=1))

        assert [a.id for a in pending] == [open_approval.id]
        assert expired.id not in [a.id for a in pending]


class TestApprovalAcrossStores:
    """Tests for waiters and responders on separate connections."""

    @pytest.mark.asyncio
    async def test_response_from_another_store_wakes_waiter(self, tmp_path):
        """Test a response written by another process is picked up by polling."""
        path = tmp_path / "leaseguard.db"
        waiting_store = SQLiteDocumentStore(path)
        responding_store = SQLiteDocumentStore(path)
        await waiting_store.initialize()
        await responding_store.initialize()

        config = OrchestrationConfig(approval_poll_interval_ms=50)
        waiting = ApprovalGateway(waiting_store, LogNotifier(), config)
        responding = ApprovalGateway(responding_store, LogNotifier(), config)

        loop = asyncio.get_running_loop()
        waiter = asyncio.create_task(
            waiting.request_approval(gate_step(timeout_ms=5_000), WorkflowExecution(workflow_id="wf-1"))
        )
        pending = await wait_for_pending(responding)

        responded_at = loop.time()
        await responding.respond(pending[0].id, "approve", "officer@example.com")
        outcome = await asyncio.wait_for(waiter, timeout=2)

        assert outcome["approved"] is True
        assert loop.time() - responded_at < 1.0

        await waiting_store.close()
        await responding_store.close()

    @pytest.mark.asyncio
    async def test_cancelled_waiter_closes_approval(self):
        """Test an abandoned approval can no longer be answered."""
        gateway, _, _ = await make_gateway()

        waiter = asyncio.create_task(
            gateway.request_approval(gate_step(timeout_ms=60_000), WorkflowExecution(workflow_id="wf-1"))
        )
        pending = await wait_for_pending(gateway)
        waiter.cancel()

        with pytest.raises(asyncio.CancelledError):
            await waiter

        assert (await gateway.get(pending[0].id)).status == ApprovalStatus.TIMEOUT
        with pytest.raises(AlreadyRespondedError):
            await gateway.respond(pending[0].id, "approve", "late@example.com")
