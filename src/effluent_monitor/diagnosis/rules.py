"""
Threshold and recommendation tables for effluent parameters.

Two independent tables:
    OPERATING_THRESHOLDS - normal operating range, drives fault diagnosis
    CRITICAL_THRESHOLDS  - near-emergency limits, drives "unusual condition" alerts

All tables are keyed by canonical parameter names (see
effluent_monitor.ingestion.models.canonical_parameter_name). A parameter
missing from a table is never evaluated by it.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple


class Severity(str, Enum):
    """Ordinal fault severity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2}


class Direction(str, Enum):
    """Which side of the range a value fell out of."""
    LOW = "low"
    HIGH = "high"


@dataclass(frozen=True)
class ThresholdRule:
    """
    Allowed range for one parameter.

    The optimal band is descriptive only; it never affects severity.
    """
    min: Optional[float] = None
    max: Optional[float] = None
    optimal_min: Optional[float] = None
    optimal_max: Optional[float] = None


OPERATING_THRESHOLDS: Dict[str, ThresholdRule] = {
    "pH": ThresholdRule(min=6.5, max=8.5, optimal_min=7.0, optimal_max=8.0),
    "temperature": ThresholdRule(min=30, max=80, optimal_min=40, optimal_max=60),
    "TSS": ThresholdRule(max=200, optimal_max=150),
    "COD": ThresholdRule(max=500, optimal_max=350),
    "BOD": ThresholdRule(max=150, optimal_max=100),
    "hardness": ThresholdRule(max=300, optimal_max=200),
}

CRITICAL_THRESHOLDS: Dict[str, ThresholdRule] = {
    "pH": ThresholdRule(min=5.5, max=9.5),
    "temperature": ThresholdRule(min=25, max=70),
    "TSS": ThresholdRule(max=250),
    "COD": ThresholdRule(max=600),
    "BOD": ThresholdRule(max=180),
    "hardness": ThresholdRule(max=350),
}

# Values assumed for core parameters a device did not report
PARAMETER_DEFAULTS: Dict[str, float] = {
    "pH": 7.0,
    "temperature": 45.0,
    "TSS": 150.0,
    "COD": 350.0,
    "BOD": 120.0,
    "hardness": 200.0,
}

PARAMETER_IMPACTS: Dict[Tuple[str, Direction], str] = {
    ("pH", Direction.LOW): "Low pH can damage equipment and affect chemical reactions",
    ("pH", Direction.HIGH): "High pH can reduce dye fixation and increase chemical consumption",
    ("temperature", Direction.LOW): "Low temperature reduces reaction rates and dye absorption",
    ("temperature", Direction.HIGH): "High temperature increases energy costs and may damage fabric",
    ("TSS", Direction.HIGH): "High TSS can clog equipment and reduce dye penetration",
    ("COD", Direction.HIGH): "High COD indicates excessive organic matter, affecting treatment efficiency",
    ("BOD", Direction.HIGH): "High BOD indicates high organic pollution, requiring more treatment chemicals",
    ("hardness", Direction.HIGH): "High water hardness reduces chemical effectiveness and increases scaling",
}

DEFAULT_IMPACT = "May affect process efficiency"


@dataclass(frozen=True)
class RecommendationRule:
    """Recommendations emitted when any fault matches (parameter, direction)."""
    parameters: FrozenSet[str]
    direction: Optional[Direction]
    recommendations: Tuple[str, ...]

    def matches(self, parameter: str, direction: Direction) -> bool:
        if parameter not in self.parameters:
            return False
        return self.direction is None or self.direction == direction


# Order matters: recommendations are emitted in table order
RECOMMENDATION_RULES: List[RecommendationRule] = [
    RecommendationRule(
        frozenset({"pH"}), Direction.LOW,
        ("Add caustic soda or sodium carbonate to increase pH",),
    ),
    RecommendationRule(
        frozenset({"pH"}), Direction.HIGH,
        ("Add acetic acid or formic acid to decrease pH",),
    ),
    RecommendationRule(
        frozenset({"temperature"}), Direction.LOW,
        ("Increase heating to optimal temperature range",),
    ),
    RecommendationRule(
        frozenset({"temperature"}), Direction.HIGH,
        ("Reduce temperature to prevent fabric damage and save energy",),
    ),
    RecommendationRule(
        frozenset({"TSS"}), None,
        (
            "Improve pre-treatment filtration to reduce suspended solids",
            "Consider using a flocculant to reduce TSS",
        ),
    ),
    RecommendationRule(
        frozenset({"COD", "BOD"}), None,
        (
            "Increase aeration in the treatment process",
            "Consider additional biological treatment steps",
        ),
    ),
    RecommendationRule(
        frozenset({"hardness"}), None,
        (
            "Use water softening treatment before processing",
            "Add sequestering agents to counter hardness effects",
        ),
    ),
]

GENERIC_RECOMMENDATIONS: Tuple[str, ...] = (
    "Review process parameters and adjust according to standard operating procedures",
    "Perform maintenance check on monitoring equipment to ensure accurate readings",
)
