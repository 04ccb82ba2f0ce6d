"""
Leaseguard Classification Rules

Pure functions turning a detection result into a classification.
"""

from __future__ import annotations

from typing import Iterable, List

from leaseguard.orchestration.types import (
    Classification,
    DetectionResult,
    Flag,
    Severity,
)

SEVERITY_SCORES = {
    Severity.CRITICAL: 100,
    Severity.HIGH: 75,
    Severity.MEDIUM: 50,
    Severity.LOW: 25,
}

WIDESPREAD_MULTIPLIER = 1.5
MAX_PRIORITY = 100

APPROVAL_SENSITIVE_FLAG_TYPES = frozenset({
    "data_deletion",
    "system_modification",
    "access_change",
})


def classify_severity(detection: DetectionResult) -> Severity:
    """
    Severity of a detection.

    An explicit severity on the detection wins. Otherwise one critical
    flag or more than two high flags make it critical, any high flag
    makes it high, and everything else is medium.
    """
    if detection.severity is not None:
        return detection.severity

    critical = sum(1 for f in detection.flags if f.severity == Severity.CRITICAL)
    high = sum(1 for f in detection.flags if f.severity == Severity.HIGH)

    if critical > 0:
        return Severity.CRITICAL
    if high > 2:
        return Severity.CRITICAL
    if high > 0:
        return Severity.HIGH
    return Severity.MEDIUM


def determine_category(detection: DetectionResult) -> str:
    if detection.category:
        return detection.category
    if detection.flags and detection.flags[0].type:
        return detection.flags[0].type
    return "unknown"


def calculate_priority(severity: Severity, impact: str = None) -> float:
    score = SEVERITY_SCORES[severity]
    if impact == "widespread":
        score = score * WIDESPREAD_MULTIPLIER
    return min(MAX_PRIORITY, score)


def requires_approval(severity: Severity, flags: Iterable[Flag]) -> bool:
    if severity == Severity.CRITICAL:
        return True
    return any(f.type in APPROVAL_SENSITIVE_FLAG_TYPES for f in flags)


def classify(detection: DetectionResult) -> Classification:
    """Build the full classification for a detection."""
    severity = classify_severity(detection)
    flags: List[Flag] = list(detection.flags)
    return Classification(
        severity=severity,
        category=determine_category(detection),
        priority=calculate_priority(severity, detection.impact),
        requires_approval=requires_approval(severity, flags),
        flags=flags,
    )
