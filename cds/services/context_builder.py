import asyncio
import logging
from datetime import UTC, date, datetime, timedelta

from cds.config import LAB_RESULT_WINDOW_DAYS
from cds.models.clinical import (
    ContextOverrides,
    Diagnosis,
    EvaluationContext,
    LabResult,
    Medication,
    Patient,
    PatientSnapshot,
)
from cds.services.clinical_data import (
    get_active_diagnoses,
    get_medications,
    get_recent_lab_results,
)

logger = logging.getLogger(__name__)


def calculate_age(date_of_birth: date | None, today: date) -> int | None:
    """Whole years since birth, counting the birthday itself as passed."""
    if date_of_birth is None:
        return None
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


async def _diagnoses(patient: Patient, overrides: ContextOverrides) -> list[Diagnosis]:
    if overrides.diagnoses is not None:
        return overrides.diagnoses
    return await get_active_diagnoses(patient.id)


async def _medications(patient: Patient, overrides: ContextOverrides) -> list[Medication]:
    if overrides.medications is not None:
        return overrides.medications
    if overrides.medication_ids is not None:
        return await get_medications(overrides.medication_ids)
    return await get_medications(patient.active_medications)


async def _lab_results(patient: Patient, overrides: ContextOverrides, now: datetime) -> list[LabResult]:
    if overrides.lab_results is not None:
        return overrides.lab_results
    return await get_recent_lab_results(patient.id, since=now - timedelta(days=LAB_RESULT_WINDOW_DAYS))


async def build_context(
    patient: Patient,
    overrides: ContextOverrides | None = None,
    now: datetime | None = None,
) -> EvaluationContext:
    """Assemble the evaluation snapshot for one patient.

    Diagnoses, medications and recent labs are fetched concurrently and
    joined before the snapshot is built. Any of them supplied by the caller
    replaces the live lookup entirely; the two are never merged.
    """
    overrides = overrides or ContextOverrides()
    now = now or datetime.now(UTC)

    diagnoses, medications, lab_results = await asyncio.gather(
        _diagnoses(patient, overrides),
        _medications(patient, overrides),
        _lab_results(patient, overrides, now),
    )
    logger.debug(
        "Context for patient %s: %d diagnoses, %d medications, %d labs",
        patient.id, len(diagnoses), len(medications), len(lab_results),
    )

    return EvaluationContext(
        patient=PatientSnapshot(
            id=patient.id,
            age=calculate_age(patient.date_of_birth, now.date()),
            gender=patient.gender,
            demographics=patient.demographics,
        ),
        diagnoses=diagnoses,
        medications=medications,
        lab_results=lab_results,
        current_date=now,
        appointment=overrides.appointment,
        current_medication_ids=overrides.current_medication_ids,
        extra=overrides.extra,
    )
