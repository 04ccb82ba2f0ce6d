"""
Tests for Leaseguard orchestration building blocks: types, conditions,
classification and decision rules, execution context, scheduling and
configuration.
"""

from datetime import datetime, timedelta

import pytest

from leaseguard.core.config import LeaseguardConfig
from leaseguard.orchestration.collaborators import CronScheduler
from leaseguard.orchestration.conditions.evaluator import ConditionEvaluator, get_nested
from leaseguard.orchestration.conditions.operators import compare
from leaseguard.orchestration.engine import WorkflowEngine
from leaseguard.orchestration.exceptions import DuplicateResultError
from leaseguard.orchestration.execution.context import (
    CLASSIFICATION,
    DETECTION,
    ExecutionContext,
)
from leaseguard.orchestration.rules.classification import (
    calculate_priority,
    classify,
    classify_severity,
    determine_category,
    requires_approval,
)
from leaseguard.orchestration.rules.decision import decide, determine_action
from leaseguard.orchestration.templates import get_default_workflows
from leaseguard.orchestration.types import (
    Classification,
    Condition,
    ConditionOperator,
    DetectionResult,
    Flag,
    OnFailure,
    RetryPolicy,
    Severity,
    StepType,
    TriggerConfig,
    TriggerType,
    Workflow,
    WorkflowExecution,
    WorkflowStep,
)


def detection(*severities, **kwargs):
    flags = [{"type": "encroachment", "severity": s, "message": "m"} for s in severities]
    return DetectionResult.from_dict({"flags": flags, **kwargs})


# === Type Tests ===


class TestTypes:
    """Tests for orchestration type definitions."""

    def test_workflow_round_trip(self):
        """Test workflow serialization keeps retry and timeout in ms."""
        workflow = Workflow(
            name="Lease audit",
            trigger=TriggerConfig(type=TriggerType.SCHEDULED, schedule="0 9 * * *"),
            steps=[
                WorkflowStep(
                    id="scan",
                    name="Scan",
                    type=StepType.DETECT,
                    agent="security",
                    timeout_ms=2500,
                    conditions=[Condition(field="leaseId", operator=ConditionOperator.EXISTS)],
                    on_failure=OnFailure(retry=RetryPolicy(attempts=2, delay_ms=100)),
                ),
            ],
        )

        data = workflow.to_dict()
        assert data["steps"][0]["on_failure"]["retry"] == {"attempts": 2, "delay": 100}
        assert data["steps"][0]["timeout"] == 2500
        assert data["steps"][0]["conditions"][0]["operator"] == "exists"

        restored = Workflow.from_dict(data)
        assert restored == workflow

    def test_detection_result_keeps_agent_fields(self):
        """Test agent-specific keys survive typed parsing."""
        result = DetectionResult.from_dict({
            "flags": [{"type": "access_change", "severity": "HIGH"}],
            "threatsFound": 3,
        })

        assert result.flags[0].severity == Severity.HIGH
        assert result.extra == {"threatsFound": 3}
        assert result.to_dict()["threatsFound"] == 3

    def test_unknown_flag_severity_defaults_to_medium(self):
        """Test unparseable severities fall back to medium."""
        assert Flag.from_dict({"type": "x", "severity": "catastrophic"}).severity == Severity.MEDIUM

    def test_execution_round_trip(self):
        """Test execution serialization."""
        execution = WorkflowExecution(workflow_id="wf-1", context={"leaseId": "L-1"})
        execution.flags.append(Flag(type="encroachment", severity=Severity.LOW))

        restored = WorkflowExecution.from_dict(execution.to_dict())
        assert restored == execution


# === Condition Tests ===


class TestConditions:
    """Tests for condition operators and evaluation."""

    def test_equality_is_strict(self):
        """Test equality does not coerce across types."""
        assert compare(ConditionOperator.EQUALS, "high", "high")
        assert not compare(ConditionOperator.EQUALS, "1", 1)
        assert not compare(ConditionOperator.EQUALS, True, 1)
        assert compare(ConditionOperator.NOT_EQUALS, "1", 1)

    def test_ordering(self):
        """Test ordering operators and missing values."""
        assert compare(ConditionOperator.GREATER_THAN, 3, 0)
        assert not compare(ConditionOperator.GREATER_THAN, 0, 0)
        assert compare(ConditionOperator.LESS_THAN, 1.5, 2)
        assert not compare(ConditionOperator.GREATER_THAN, None, 0)
        assert not compare(ConditionOperator.LESS_THAN, "a", 1)

    def test_contains(self):
        """Test substring and membership checks."""
        assert compare(ConditionOperator.CONTAINS, "unauthorized access", "access")
        assert compare(ConditionOperator.CONTAINS, ["lease-1", "lease-2"], "lease-2")
        assert compare(ConditionOperator.CONTAINS, "score 42", 42)
        assert not compare(ConditionOperator.CONTAINS, None, "x")

    def test_exists(self):
        """Test existence ignores the comparison value."""
        assert compare(ConditionOperator.EXISTS, 0, None)
        assert compare(ConditionOperator.EXISTS, False, "anything")
        assert not compare(ConditionOperator.EXISTS, None, None)

    def test_nested_lookup(self):
        """Test dotted paths through step results and lists."""
        context = {
            "detect-threats_result": {
                "threatsFound": 2,
                "flags": [{"type": "security"}],
            },
        }

        assert get_nested(context, "detect-threats_result.threatsFound") == 2
        assert get_nested(context, "detect-threats_result.flags.0.type") == "security"
        assert get_nested(context, "detect-threats_result.flags.3.type") is None
        assert get_nested(context, "missing.path", "fallback") == "fallback"

    def test_all_conditions_must_hold(self):
        """Test conditions combine with AND and empty lists hold."""
        evaluator = ConditionEvaluator()
        context = {"scan_result": {"threatsFound": 2, "scope": "all_leases"}}

        passing = Condition("scan_result.threatsFound", ConditionOperator.GREATER_THAN, 0)
        failing = Condition("scan_result.scope", ConditionOperator.EQUALS, "one_lease")

        assert evaluator.evaluate_all([], context)
        assert evaluator.evaluate_all([passing], context)
        assert not evaluator.evaluate_all([passing, failing], context)


# === Rule Tests ===


class TestClassificationRules:
    """Tests for classification rules."""

    @pytest.mark.parametrize(
        "severities, expected",
        [
            (("critical",), Severity.CRITICAL),
            (("high", "high", "high"), Severity.CRITICAL),
            (("high", "high"), Severity.HIGH),
            (("high",), Severity.HIGH),
            (("low", "low"), Severity.MEDIUM),
            ((), Severity.MEDIUM),
        ],
    )
    def test_severity_from_flags(self, severities, expected):
        """Test severity derived from flag severities."""
        assert classify_severity(detection(*severities)) == expected

    def test_explicit_severity_wins(self):
        """Test an explicit detection severity overrides flags."""
        assert classify_severity(detection("critical", severity="low")) == Severity.LOW

    def test_category(self):
        """Test category fallbacks."""
        assert determine_category(detection("high", category="security")) == "security"
        assert determine_category(detection("high")) == "encroachment"
        assert determine_category(detection()) == "unknown"

    def test_priority(self):
        """Test priority scoring and cap."""
        assert calculate_priority(Severity.LOW) == 25
        assert calculate_priority(Severity.MEDIUM, "widespread") == 75
        assert calculate_priority(Severity.HIGH, "widespread") == 100
        assert calculate_priority(Severity.CRITICAL, "local") == 100

    def test_requires_approval(self):
        """Test approval is required for critical or sensitive flags."""
        assert requires_approval(Severity.CRITICAL, [])
        assert requires_approval(Severity.LOW, [Flag(type="data_deletion")])
        assert not requires_approval(Severity.HIGH, [Flag(type="encroachment")])

    def test_classify(self):
        """Test the full classification."""
        result = classify(detection("critical", impact="widespread"))

        assert result.severity == Severity.CRITICAL
        assert result.category == "encroachment"
        assert result.priority == 100
        assert result.requires_approval is True
        assert len(result.flags) == 1


class TestDecisionRules:
    """Tests for decision rules."""

    @pytest.mark.parametrize(
        "severity, category, expected",
        [
            (Severity.CRITICAL, "security", "blockAccess"),
            (Severity.CRITICAL, "encroachment", "createTicket"),
            (Severity.HIGH, "security", "autoFix"),
            (Severity.MEDIUM, "security", "notify"),
            (Severity.LOW, "security", "log"),
        ],
    )
    def test_default_table(self, severity, category, expected):
        """Test the severity based action table."""
        classification = Classification(severity=severity, category=category)
        assert determine_action(classification) == expected

    def test_first_matching_rule_wins(self):
        """Test custom rules are matched in order by equality."""
        classification = Classification(severity=Severity.HIGH, category="lease_expiration")
        rules = [
            {"conditions": {"severity": "high", "category": "security"}, "action": "blockAccess"},
            {"conditions": {"category": "lease_expiration"}, "action": "createTicket"},
            {"conditions": {"severity": "high"}, "action": "notify"},
        ]

        assert determine_action(classification, rules) == "createTicket"

    def test_decision_flags(self):
        """Test derived decision flags."""
        critical = decide(Classification(severity=Severity.CRITICAL, requires_approval=True))
        assert critical.auto_execute is False
        assert critical.notification_required is True
        assert critical.escalation_required is True

        medium = decide(Classification(severity=Severity.MEDIUM))
        assert medium.auto_execute is True
        assert medium.notification_required is False
        assert medium.escalation_required is False

        sensitive = decide(Classification(severity=Severity.MEDIUM, requires_approval=True))
        assert sensitive.auto_execute is False


# === Context Tests ===


class TestExecutionContext:
    """Tests for the execution context accessor."""

    def test_results_are_write_once(self):
        """Test a step result cannot be recorded twice."""
        context = ExecutionContext(WorkflowExecution(workflow_id="wf"))

        context.set_result("scan", {"flags": []})
        assert context.get_result("scan") == {"flags": []}
        assert context.get_result("other") is None

        with pytest.raises(DuplicateResultError):
            context.set_result("scan", {"flags": []})

    def test_latest_keys_are_overwritten(self):
        """Test named latest keys hold the most recent value."""
        execution = WorkflowExecution(workflow_id="wf")
        context = ExecutionContext(execution)

        context.set_latest(DETECTION, {"n": 1})
        context.set_latest(DETECTION, {"n": 2})

        assert context.latest(DETECTION) == {"n": 2}
        assert execution.context["detectionResult"] == {"n": 2}

        with pytest.raises(KeyError):
            context.set_latest("detectoinResult", {})

    def test_source_prefers_named_step(self):
        """Test an explicit source step wins over the latest key."""
        context = ExecutionContext(WorkflowExecution(workflow_id="wf"))
        context.set_latest(CLASSIFICATION, {"from": "latest"})
        context.set_result("classify-a", {"from": "step"})

        assert context.source(CLASSIFICATION, "classify-a") == {"from": "step"}
        assert context.source(CLASSIFICATION) == {"from": "latest"}
        assert context.source(CLASSIFICATION, "missing") is None


# === Scheduler Tests ===


class TestCronScheduler:
    """Tests for cron schedule registration."""

    def test_register_and_due(self):
        """Test next run computation and advancing."""
        scheduler = CronScheduler()
        workflow = Workflow(
            name="Every 15",
            trigger=TriggerConfig(type=TriggerType.SCHEDULED, schedule="*/15 * * * *"),
        )

        next_run = scheduler.register(workflow)
        assert next_run > datetime.now()
        assert next_run.minute % 15 == 0

        assert scheduler.due(next_run - timedelta(seconds=1)) == []
        assert scheduler.due(next_run) == [workflow.id]
        assert scheduler.next_run(workflow.id) > next_run

        assert scheduler.unregister(workflow.id) is True
        assert scheduler.due(next_run + timedelta(days=1)) == []

    def test_invalid_expression(self):
        """Test invalid cron expressions are rejected."""
        workflow = Workflow(
            name="Broken",
            trigger=TriggerConfig(type=TriggerType.SCHEDULED, schedule="not a cron"),
        )
        with pytest.raises(ValueError):
            CronScheduler().register(workflow)


# === Template Tests ===


class TestTemplates:
    """Tests for built-in workflows."""

    def test_default_workflows_are_valid(self):
        """Test all built-in workflows pass validation."""
        workflows = get_default_workflows()

        assert len(workflows) == 3
        for workflow in workflows:
            assert WorkflowEngine.validate_workflow(workflow) == []
            assert workflow.trigger.type == TriggerType.SCHEDULED
            assert CronScheduler.validate_cron(workflow.trigger.schedule)


# === Config Tests ===


class TestConfig:
    """Tests for configuration loading."""

    def test_defaults(self):
        """Test default orchestration settings."""
        config = LeaseguardConfig()

        assert config.orchestration.default_approval_timeout_ms == 3_600_000
        assert config.orchestration.execution_list_limit == 100
        assert config.store.backend == "memory"

    def test_environment_overrides(self, monkeypatch):
        """Test nested settings from environment variables."""
        monkeypatch.setenv("LEASEGUARD_ORCHESTRATION__DEFAULT_APPROVAL_TIMEOUT_MS", "5000")
        monkeypatch.setenv("LEASEGUARD_STORE__BACKEND", "sqlite")
        monkeypatch.setenv("LEASEGUARD_DATA_DIR", "/tmp/leaseguard")

        config = LeaseguardConfig()

        assert config.orchestration.default_approval_timeout_ms == 5000
        assert config.store.backend == "sqlite"
        assert str(config.store_path()).endswith("leaseguard.db")

    def test_file_round_trip(self, tmp_path):
        """Test saving and loading a JSON config file."""
        config = LeaseguardConfig()
        config.orchestration.admin_recipients = ["compliance@example.com"]

        path = tmp_path / "config.json"
        config.to_file(path)
        loaded = LeaseguardConfig.from_file(path)

        assert loaded.orchestration.admin_recipients == ["compliance@example.com"]
