"""
Diagnosis Layer - Threshold-based fault classification.

This module provides:
    - diagnose: Snapshot -> DiagnosisResult (faults, severity, recommendations)
    - check_unusual_conditions: Snapshot -> list of near-emergency conditions
    - ThresholdRule / Severity / Direction: rule table vocabulary
    - OPERATING_THRESHOLDS / CRITICAL_THRESHOLDS: the two rule tables
    - PARAMETER_DEFAULTS: values assumed for unreported core parameters

Severity:
    - Below min: HIGH if value < 0.9 * min, else MEDIUM
    - Above max: HIGH if value > 1.2 * max, else MEDIUM
    - Overall severity is the worst fault, LOW when there are none
"""

from .rules import (
    CRITICAL_THRESHOLDS,
    GENERIC_RECOMMENDATIONS,
    OPERATING_THRESHOLDS,
    PARAMETER_DEFAULTS,
    RECOMMENDATION_RULES,
    Direction,
    RecommendationRule,
    Severity,
    ThresholdRule,
)
from .engine import (
    DiagnosisResult,
    Fault,
    check_unusual_conditions,
    diagnose,
    generate_recommendations,
)

__all__ = [
    # Engine
    "diagnose",
    "check_unusual_conditions",
    "generate_recommendations",
    "DiagnosisResult",
    "Fault",
    # Rules
    "ThresholdRule",
    "RecommendationRule",
    "Severity",
    "Direction",
    "OPERATING_THRESHOLDS",
    "CRITICAL_THRESHOLDS",
    "PARAMETER_DEFAULTS",
    "RECOMMENDATION_RULES",
    "GENERIC_RECOMMENDATIONS",
]
