"""Split the code-search space into sub-queries small enough to enumerate.

The search API stops at 1000 results per query (10 pages of 100), so a single
``filename:openapi.json`` query silently truncates. Each filename pattern is
crossed with a set of star-count gates; popularity is roughly log-distributed,
so every (pattern, gate) pair stays under the cap.
"""

from typing import Iterable, List, Optional, Sequence

from .errors import FatalConfigurationError
from .models import PopularityGate, SubQuery

DEFAULT_GATES: List[PopularityGate] = [
    PopularityGate(1000, None, "1000+"),
    PopularityGate(100, 999, "100-999"),
    PopularityGate(10, 99, "10-99"),
    PopularityGate(1, 9, "1-9"),
    PopularityGate(0, 0, "0"),
]


def validate_gates(gates: Sequence[PopularityGate]) -> List[PopularityGate]:
    """Return the gates ordered highest first, or raise if they leave a gap."""
    if not gates:
        raise FatalConfigurationError("At least one popularity gate is required")

    ordered = sorted(gates, key=lambda g: g.min_score, reverse=True)
    if ordered[0].max_score is not None:
        raise FatalConfigurationError("Highest popularity gate must be unbounded")
    if ordered[-1].min_score != 0:
        raise FatalConfigurationError("Lowest popularity gate must start at 0")

    for upper, lower in zip(ordered, ordered[1:]):
        if lower.max_score is None or lower.max_score < lower.min_score:
            raise FatalConfigurationError(f"Malformed popularity gate: {lower}")
        if lower.max_score + 1 != upper.min_score:
            raise FatalConfigurationError(
                f"Popularity gates {lower.label or lower} and {upper.label or upper} "
                f"overlap or leave a gap"
            )
    return ordered


def gates_for(min_score: int, gates: Optional[Sequence[PopularityGate]] = None) -> List[PopularityGate]:
    """Drop gates lying entirely below ``min_score``."""
    ordered = validate_gates(gates or DEFAULT_GATES)
    return [g for g in ordered if g.max_score is None or g.max_score >= min_score]


def build_query(pattern: str, gate: PopularityGate) -> str:
    return f"filename:{pattern} {gate.qualifier()}"


def partition(patterns: Iterable[str], min_score: int = 0,
              gates: Optional[Sequence[PopularityGate]] = None) -> List[SubQuery]:
    selected = gates_for(min_score, gates)
    return [
        SubQuery(pattern=pattern, gate=gate, query=build_query(pattern, gate))
        for pattern in patterns
        for gate in selected
    ]
