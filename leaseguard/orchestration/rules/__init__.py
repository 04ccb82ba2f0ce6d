"""Classification and decision rules."""

from leaseguard.orchestration.rules.classification import (
    APPROVAL_SENSITIVE_FLAG_TYPES,
    SEVERITY_SCORES,
    calculate_priority,
    classify,
    classify_severity,
    determine_category,
    requires_approval,
)
from leaseguard.orchestration.rules.decision import decide, default_action, determine_action

__all__ = [
    "APPROVAL_SENSITIVE_FLAG_TYPES",
    "SEVERITY_SCORES",
    "calculate_priority",
    "classify",
    "classify_severity",
    "decide",
    "default_action",
    "determine_action",
    "determine_category",
    "requires_approval",
]
