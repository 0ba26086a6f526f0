import asyncio
import logging
from datetime import UTC, datetime

from cds.errors import NotFoundError
from cds.models.alert import ClinicalAlertDefinition, FormattedAlert
from cds.models.clinical import ContextOverrides, EvaluationContext
from cds.models.preference import UserAlertPreference
from cds.services.alert_catalog import get_active_alerts
from cds.services.clinical_data import get_patient
from cds.services.condition_evaluators import evaluate_alert
from cds.services.context_builder import build_context
from cds.services.preference_resolver import apply_global_mode, format_alert, is_suppressed
from cds.services.preference_store import get_user_preferences

logger = logging.getLogger(__name__)


async def load_preferences_or_none(user_id: str) -> UserAlertPreference | None:
    """Load a preference snapshot; an unavailable store leaves alerts visible."""
    try:
        return await get_user_preferences(user_id)
    except Exception as exc:
        logger.error("Error loading alert preferences for user %s: %s", user_id, exc)
        return None


def select_alerts(
    alerts: list[ClinicalAlertDefinition],
    context: EvaluationContext,
    preferences: UserAlertPreference | None,
    now: datetime,
) -> list[FormattedAlert]:
    """Apply global mode, per-alert suppression and trigger evaluation, then format."""
    candidates = apply_global_mode(alerts, preferences)
    if candidates is None:
        return []

    applicable = [
        alert for alert in candidates
        if not is_suppressed(alert, preferences, now) and evaluate_alert(alert, context)
    ]
    return [format_alert(alert, preferences) for alert in applicable]


async def get_patient_alerts(
    patient_id: str,
    user_id: str,
    overrides: ContextOverrides | None = None,
    now: datetime | None = None,
) -> list[FormattedAlert]:
    """Return the clinical alerts that apply to a patient for a given clinician.

    The context build, preference load and active-definition load run
    concurrently and are all joined before any alert is evaluated.
    """
    now = now or datetime.now(UTC)
    patient = await get_patient(patient_id)
    if patient is None:
        raise NotFoundError("Patient not found", code="PATIENT_NOT_FOUND", detail={"patient_id": patient_id})

    try:
        context, preferences, alerts = await asyncio.gather(
            build_context(patient, overrides, now),
            load_preferences_or_none(user_id),
            get_active_alerts(),
        )
        result = select_alerts(alerts, context, preferences, now)
    except Exception as exc:
        logger.error("Error getting patient alerts for %s: %s", patient_id, exc)
        raise

    logger.info(
        "Patient %s: %d of %d active alerts apply for user %s",
        patient_id, len(result), len(alerts), user_id,
    )
    return result
