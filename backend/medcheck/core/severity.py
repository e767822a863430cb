"""
MedCheck Backend - Interaction Severity
=======================================

What:  The five-level severity scale the AI assigns to a pair of medications,
       and the reduction of many pair labels into one overall status.
Who:   InteractionService after every fresh interaction check; the interaction
       response schema when validating AI output.

Ordering:
    none < low < moderate < high < critical

    aggregate([])                    → none
    aggregate([low, high, moderate]) → high
"""

from enum import Enum
from typing import Iterable, Union


class Severity(str, Enum):
    NONE = "none"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RANK[self]

    # str already compares alphabetically; order by rank instead
    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_RANK = {severity: index for index, severity in enumerate(Severity)}


class InteractionStatus(str, Enum):
    """Coarse status stored on a cached interaction check."""

    SAFE = "safe"
    WARNING = "warning"
    CRITICAL = "critical"


def parse_severity(label: Union[str, Severity]) -> Severity:
    """
    Normalise a severity label.

    Accepts any casing and surrounding whitespace. Raises ValueError for a
    label outside the scale.
    """
    if isinstance(label, Severity):
        return label
    try:
        return Severity(str(label).strip().lower())
    except ValueError:
        raise ValueError(
            f"Unknown severity '{label}'. Expected one of: "
            f"{', '.join(s.value for s in Severity)}"
        )


def aggregate_severity(labels: Iterable[Union[str, Severity]]) -> Severity:
    """Maximum severity present under the fixed order; `none` for no labels."""
    return max((parse_severity(label) for label in labels), default=Severity.NONE)


def interaction_status(safe: bool, severity: Severity) -> InteractionStatus:
    """
    Collapse the AI's safe flag and the aggregate severity into the
    stored status.

    A set is only `safe` when the AI says so and nothing above `low` was
    reported; a critical pair always wins.
    """
    if severity == Severity.CRITICAL:
        return InteractionStatus.CRITICAL
    if safe and severity <= Severity.LOW:
        return InteractionStatus.SAFE
    return InteractionStatus.WARNING
