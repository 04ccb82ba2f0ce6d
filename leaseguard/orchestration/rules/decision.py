"""
Leaseguard Decision Rules

Pure functions choosing a response action for a classification.
Custom rules are ``{"conditions": {field: value}, "action": name}``
mappings matched by equality against the classification fields.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from leaseguard.orchestration.types import (
    ActionType,
    Classification,
    Decision,
    Severity,
)


def _matches(rule: Dict[str, Any], fields: Dict[str, Any]) -> bool:
    conditions = rule.get("conditions") or {}
    return all(fields.get(key) == value for key, value in conditions.items())


def default_action(classification: Classification) -> str:
    severity = classification.severity
    if severity == Severity.CRITICAL and classification.category == "security":
        return ActionType.BLOCK_ACCESS.value
    if severity == Severity.CRITICAL:
        return ActionType.CREATE_TICKET.value
    if severity == Severity.HIGH:
        return ActionType.AUTO_FIX.value
    if severity == Severity.MEDIUM:
        return ActionType.NOTIFY.value
    return ActionType.LOG.value


def determine_action(
    classification: Classification,
    rules: Optional[List[Dict[str, Any]]] = None,
) -> str:
    """First matching custom rule wins, else the severity table."""
    if rules:
        fields = classification.to_dict()
        for rule in rules:
            if _matches(rule, fields) and rule.get("action"):
                return rule["action"]
    return default_action(classification)


def decide(
    classification: Classification,
    rules: Optional[List[Dict[str, Any]]] = None,
) -> Decision:
    severity = classification.severity
    return Decision(
        action=determine_action(classification, rules),
        auto_execute=not classification.requires_approval and severity != Severity.CRITICAL,
        notification_required=severity in (Severity.HIGH, Severity.CRITICAL),
        escalation_required=severity == Severity.CRITICAL,
        classification=classification,
    )
