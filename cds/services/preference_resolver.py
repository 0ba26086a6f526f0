"""Per-user alert suppression and presentation overrides.

Everything here is a pure function of an alert definition, a preference
snapshot and the current time, so results do not depend on the order in
which alerts are evaluated.
"""

from datetime import UTC, datetime

from cds.models.alert import ClinicalAlertDefinition, FormattedAlert
from cds.models.preference import (
    AlertPreference,
    CategoryPreference,
    GlobalAlertStatus,
    PreferenceStatus,
    UserAlertPreference,
)
from cds.models.severity import AlertSeverity


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def find_alert_preference(preferences: UserAlertPreference | None, alert_id: str) -> AlertPreference | None:
    if preferences is None:
        return None
    for pref in preferences.alert_preferences:
        if pref.alert_id == alert_id:
            return pref
    return None


def find_category_preference(preferences: UserAlertPreference | None, category: str) -> CategoryPreference | None:
    if preferences is None:
        return None
    for pref in preferences.category_preferences:
        if pref.category == category:
            return pref
    return None


def is_suppressed(
    alert: ClinicalAlertDefinition,
    preferences: UserAlertPreference | None,
    now: datetime | None = None,
) -> bool:
    """Decide whether a user's preferences hide an alert.

    Precedence, first match wins:

    1. alert-level ``disabled``
    2. alert-level ``muted`` with ``mute_until`` still in the future
       (an expired or open-ended mute does not suppress)
    3. category-level ``disabled``
    4. category-level ``muted`` (categories have no expiry)

    System-defined critical alerts are documented as non-disableable, but
    that guarantee is only checked after steps 1-4, so an explicit
    alert-level disable still hides them.
    """
    if preferences is None:
        return False
    now = as_utc(now or datetime.now(UTC))

    alert_pref = find_alert_preference(preferences, alert.id)
    if alert_pref is not None:
        if alert_pref.status == PreferenceStatus.DISABLED:
            return True
        if (
            alert_pref.status == PreferenceStatus.MUTED
            and alert_pref.mute_until is not None
            and as_utc(alert_pref.mute_until) > now
        ):
            return True

    category_pref = find_category_preference(preferences, alert.category)
    if category_pref is not None and category_pref.status in (PreferenceStatus.DISABLED, PreferenceStatus.MUTED):
        return True

    # TODO: enforce "cannot be disabled" for system-defined critical alerts ahead of step 1
    return False


def apply_global_mode(
    alerts: list[ClinicalAlertDefinition],
    preferences: UserAlertPreference | None,
) -> list[ClinicalAlertDefinition] | None:
    """Filter the active alert set by the user's global switch.

    Returns ``None`` when alerts are globally disabled, meaning the engine
    should return nothing at all.
    """
    if preferences is None:
        return alerts
    if preferences.global_alert_status == GlobalAlertStatus.DISABLED:
        return None
    if preferences.global_alert_status == GlobalAlertStatus.CRITICAL_ONLY:
        return [a for a in alerts if a.severity == AlertSeverity.CRITICAL]
    return alerts


def format_alert(alert: ClinicalAlertDefinition, preferences: UserAlertPreference | None) -> FormattedAlert:
    formatted = FormattedAlert(
        id=alert.id,
        title=alert.title,
        description=alert.description,
        severity=alert.severity,
        category=alert.category,
        source=alert.source,
        auto_dismiss=alert.auto_dismiss,
        dismiss_timeout=alert.dismiss_timeout,
        recommended_action=alert.recommended_action,
    )
    pref = find_alert_preference(preferences, alert.id)
    if pref is None:
        return formatted

    if pref.custom_severity:
        formatted.severity = pref.custom_severity
    if pref.custom_text:
        if pref.custom_text.title:
            formatted.title = pref.custom_text.title
        if pref.custom_text.description:
            formatted.description = pref.custom_text.description
    return formatted
