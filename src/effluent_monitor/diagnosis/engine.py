"""
Fault diagnosis for effluent parameter snapshots.

Two pure functions evaluated independently each cycle:
    diagnose()                 - operating thresholds -> faults, severity, recommendations
    check_unusual_conditions() - critical thresholds  -> human-readable condition list

Both are deterministic and side-effect free.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from effluent_monitor.ingestion.models import ParameterSnapshot

from .rules import (
    CRITICAL_THRESHOLDS,
    DEFAULT_IMPACT,
    GENERIC_RECOMMENDATIONS,
    OPERATING_THRESHOLDS,
    PARAMETER_IMPACTS,
    RECOMMENDATION_RULES,
    Direction,
    RecommendationRule,
    Severity,
    ThresholdRule,
)

Readings = Union[ParameterSnapshot, Mapping[str, Optional[float]]]

# Severity escalation factors relative to the violated bound
LOW_ESCALATION = 0.9
HIGH_ESCALATION = 1.2


@dataclass(frozen=True)
class Fault:
    """A single parameter value outside its operating range."""

    parameter: str
    value: float
    violated_threshold: float
    direction: Direction
    severity: Severity
    description: str
    impact: str


@dataclass(frozen=True)
class DiagnosisResult:
    """Outcome of one diagnosis call."""

    has_fault: bool
    faults: List[Fault] = field(default_factory=list)
    severity: Severity = Severity.LOW
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly form for the audit log."""
        data = asdict(self)
        data["severity"] = self.severity.value
        for fault in data["faults"]:
            fault["direction"] = fault["direction"].value
            fault["severity"] = fault["severity"].value
        return data


def _items(readings: Readings) -> Iterable[tuple]:
    if isinstance(readings, ParameterSnapshot):
        return readings.parameters.items()
    return readings.items()


def _format_value(value: float) -> str:
    return f"{value:g}"


def diagnose(
    readings: Readings,
    thresholds: Mapping[str, ThresholdRule] = OPERATING_THRESHOLDS,
    recommendation_rules: Iterable[RecommendationRule] = RECOMMENDATION_RULES,
) -> DiagnosisResult:
    """
    Diagnose faults in a parameter snapshot.

    Args:
        readings: ParameterSnapshot or mapping of canonical name -> value
        thresholds: Operating threshold table
        recommendation_rules: Ordered recommendation table

    Returns:
        DiagnosisResult. Unknown parameters and None values are skipped.
    """
    faults: List[Fault] = []

    for parameter, value in _items(readings):
        if value is None:
            continue

        rule = thresholds.get(parameter)
        if rule is None:
            continue

        if rule.min is not None and value < rule.min:
            faults.append(Fault(
                parameter=parameter,
                value=value,
                violated_threshold=rule.min,
                direction=Direction.LOW,
                severity=Severity.HIGH if value < rule.min * LOW_ESCALATION else Severity.MEDIUM,
                description=f"{parameter} is below minimum threshold ({_format_value(rule.min)})",
                impact=PARAMETER_IMPACTS.get((parameter, Direction.LOW), DEFAULT_IMPACT),
            ))

        if rule.max is not None and value > rule.max:
            faults.append(Fault(
                parameter=parameter,
                value=value,
                violated_threshold=rule.max,
                direction=Direction.HIGH,
                severity=Severity.HIGH if value > rule.max * HIGH_ESCALATION else Severity.MEDIUM,
                description=f"{parameter} exceeds maximum threshold ({_format_value(rule.max)})",
                impact=PARAMETER_IMPACTS.get((parameter, Direction.HIGH), DEFAULT_IMPACT),
            ))

    severity = Severity.LOW
    for fault in faults:
        if fault.severity.rank > severity.rank:
            severity = fault.severity

    return DiagnosisResult(
        has_fault=bool(faults),
        faults=faults,
        severity=severity,
        recommendations=generate_recommendations(faults, recommendation_rules),
    )


def generate_recommendations(
    faults: List[Fault],
    recommendation_rules: Iterable[RecommendationRule] = RECOMMENDATION_RULES,
) -> List[str]:
    """Recommendations for a fault list, generic advice if nothing specific matches."""
    if not faults:
        return []

    recommendations: List[str] = []
    for rule in recommendation_rules:
        if any(rule.matches(f.parameter, f.direction) for f in faults):
            for text in rule.recommendations:
                if text not in recommendations:
                    recommendations.append(text)

    if not recommendations:
        recommendations.extend(GENERIC_RECOMMENDATIONS)

    return recommendations


def check_unusual_conditions(
    readings: Readings,
    thresholds: Mapping[str, ThresholdRule] = CRITICAL_THRESHOLDS,
) -> List[str]:
    """
    Describe every value outside the critical limits.

    Returns:
        e.g. ["pH (10.1) above critical maximum"]; empty when all is well
    """
    conditions: List[str] = []

    for parameter, value in _items(readings):
        if value is None:
            continue

        rule = thresholds.get(parameter)
        if rule is None:
            continue

        if rule.min is not None and value < rule.min:
            conditions.append(f"{parameter} ({_format_value(value)}) below critical minimum")

        if rule.max is not None and value > rule.max:
            conditions.append(f"{parameter} ({_format_value(value)}) above critical maximum")

    return conditions
