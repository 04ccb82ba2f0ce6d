"""
Leaseguard Built-in Workflows

Default compliance workflows installed by ``create_default_workflows``.
"""

from __future__ import annotations

from typing import List

from leaseguard.orchestration.types import (
    Condition,
    ConditionOperator,
    OnFailure,
    OnSuccess,
    RetryPolicy,
    StepType,
    TriggerConfig,
    TriggerType,
    Workflow,
    WorkflowStep,
)


def get_default_workflows() -> List[Workflow]:
    """Get all built-in workflows."""
    return [
        security_threat_response_workflow(),
        lease_expiration_workflow(),
        certification_monitoring_workflow(),
    ]


def _exists(field: str) -> Condition:
    return Condition(field=field, operator=ConditionOperator.EXISTS)


def security_threat_response_workflow() -> Workflow:
    """Detect threats, classify them and respond after approval."""
    steps = [
        WorkflowStep(
            id="detect-threats",
            name="Detect Security Threats",
            type=StepType.DETECT,
            agent="security",
            action="detectAnomalies",
            parameters={"scope": "all_leases", "threshold": 0.8},
        ),
        WorkflowStep(
            id="classify-threats",
            name="Classify Detected Threats",
            type=StepType.CLASSIFY,
            action="classifyThreat",
            parameters={"source_step": "detect-threats"},
            conditions=[
                Condition(
                    field="detect-threats_result.threatsFound",
                    operator=ConditionOperator.GREATER_THAN,
                    value=0,
                ),
            ],
        ),
        WorkflowStep(
            id="decide-response",
            name="Decide Response Action",
            type=StepType.DECIDE,
            action="determineResponse",
            parameters={"source_step": "classify-threats"},
            conditions=[_exists("classify-threats_result")],
        ),
        WorkflowStep(
            id="approve-response",
            name="Approve Response",
            type=StepType.EXECUTE,
            action="approveResponse",
            human_approval_required=True,
            timeout_ms=1_800_000,  # 30 minutes
            conditions=[_exists("decide-response_result")],
            on_failure=OnFailure(notification=True),
        ),
        WorkflowStep(
            id="execute-response",
            name="Execute Response",
            type=StepType.EXECUTE,
            action="executeResponse",
            parameters={"source_step": "decide-response"},
            conditions=[
                Condition(
                    field="approve-response_result.approved",
                    operator=ConditionOperator.EQUALS,
                    value=True,
                ),
            ],
            on_success=OnSuccess(notification=True),
            on_failure=OnFailure(
                notification=True,
                retry=RetryPolicy(attempts=2, delay_ms=60_000),
            ),
        ),
        WorkflowStep(
            id="verify-response",
            name="Verify Response Effectiveness",
            type=StepType.VERIFY,
            action="verifyResponse",
            parameters={"source_step": "execute-response"},
            conditions=[_exists("execute-response_result")],
        ),
        WorkflowStep(
            id="update-systems",
            name="Update Systems",
            type=StepType.UPDATE,
            action="updateSystems",
        ),
    ]

    return Workflow(
        name="Security Threat Detection and Response",
        description="Detect security threats, classify them, and execute appropriate responses",
        trigger=TriggerConfig(type=TriggerType.SCHEDULED, schedule="*/15 * * * *"),
        steps=steps,
        metadata={"template": "security_threat_response"},
    )


def lease_expiration_workflow() -> Workflow:
    """Find upcoming lease expirations and open renewal work."""
    steps = [
        WorkflowStep(
            id="check-expirations",
            name="Check Upcoming Expirations",
            type=StepType.DETECT,
            agent="optimization",
            action="detectExpirations",
            parameters={"daysAhead": 90},
        ),
        WorkflowStep(
            id="classify-expirations",
            name="Classify Expiring Leases",
            type=StepType.CLASSIFY,
            action="analyzeLeaseValue",
            parameters={"source_step": "check-expirations"},
            conditions=[_exists("check-expirations_result.flags.0")],
        ),
        WorkflowStep(
            id="decide-renewal",
            name="Decide Renewal Action",
            type=StepType.DECIDE,
            action="determineRenewalAction",
            parameters={
                "source_step": "classify-expirations",
                "rules": [
                    {
                        "conditions": {"category": "lease_expiration", "severity": "high"},
                        "action": "createTicket",
                    },
                ],
            },
            conditions=[_exists("classify-expirations_result")],
        ),
        WorkflowStep(
            id="act-on-renewal",
            name="Act on Renewal",
            type=StepType.EXECUTE,
            action="renewalAction",
            parameters={"source_step": "decide-renewal"},
            conditions=[_exists("decide-renewal_result")],
        ),
        WorkflowStep(
            id="notify-stakeholders",
            name="Notify Stakeholders",
            type=StepType.UPDATE,
            action="notifyStakeholders",
            on_success=OnSuccess(notification=True),
        ),
    ]

    return Workflow(
        name="Lease Expiration Management",
        description="Monitor lease expirations and execute renewal workflows",
        trigger=TriggerConfig(type=TriggerType.SCHEDULED, schedule="0 9 * * *"),
        steps=steps,
        metadata={"template": "lease_expiration"},
    )


def certification_monitoring_workflow() -> Workflow:
    """Recalculate certification scores and remediate shortfalls."""
    steps = [
        WorkflowStep(
            id="calculate-scores",
            name="Calculate Certification Scores",
            type=StepType.DETECT,
            agent="certification",
            action="calculateCertificationScores",
            parameters={
                "metrics": ["security", "integrity", "accuracy"],
                "thresholds": {"security": 85, "integrity": 85, "accuracy": 90},
            },
        ),
        WorkflowStep(
            id="check-thresholds",
            name="Check Score Thresholds",
            type=StepType.CLASSIFY,
            action="checkThresholds",
            parameters={"source_step": "calculate-scores"},
            conditions=[_exists("calculate-scores_result.flags.0")],
        ),
        WorkflowStep(
            id="decide-remediation",
            name="Decide Remediation",
            type=StepType.DECIDE,
            action="determineRemediation",
            parameters={"source_step": "check-thresholds"},
            conditions=[_exists("check-thresholds_result")],
        ),
        WorkflowStep(
            id="apply-remediation",
            name="Apply Remediation",
            type=StepType.EXECUTE,
            action="applyRemediation",
            parameters={"source_step": "decide-remediation"},
            conditions=[
                Condition(
                    field="decide-remediation_result.auto_execute",
                    operator=ConditionOperator.EQUALS,
                    value=True,
                ),
            ],
        ),
        WorkflowStep(
            id="verify-remediation",
            name="Verify Remediation",
            type=StepType.VERIFY,
            action="verifyRemediation",
            parameters={"source_step": "apply-remediation"},
            conditions=[_exists("apply-remediation_result")],
        ),
        WorkflowStep(
            id="update-scores",
            name="Update Certification Scores",
            type=StepType.UPDATE,
            action="updateCertificationScores",
        ),
    ]

    return Workflow(
        name="Certification Monitoring",
        description="Monitor and maintain certification scores",
        trigger=TriggerConfig(type=TriggerType.SCHEDULED, schedule="0 */6 * * *"),
        steps=steps,
        metadata={"template": "certification_monitoring"},
    )
