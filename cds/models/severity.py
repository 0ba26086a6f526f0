"""Severity scales shared by the interaction resolver and the alert engine.

Interaction findings and clinical alerts are graded on two separate scales.
They are kept as distinct enumerations: an interaction can be
``contraindicated`` while an alert tops out at ``critical``.
"""

from enum import StrEnum


class InteractionSeverity(StrEnum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"
    CONTRAINDICATED = "contraindicated"

    @property
    def rank(self) -> int:
        return _INTERACTION_RANKS[self]


class AlertSeverity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _ALERT_RANKS[self]


_INTERACTION_RANKS = {
    InteractionSeverity.MILD: 1,
    InteractionSeverity.MODERATE: 2,
    InteractionSeverity.SEVERE: 3,
    InteractionSeverity.CONTRAINDICATED: 4,
}

_ALERT_RANKS = {
    AlertSeverity.INFO: 1,
    AlertSeverity.WARNING: 2,
    AlertSeverity.CRITICAL: 3,
}
