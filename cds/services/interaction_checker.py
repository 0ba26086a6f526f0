"""Prescribing-time safety check: drug-drug, drug-allergy and clinical alerts in one call."""

import asyncio
import logging
from typing import Awaitable, TypeVar

from cds.errors import CDSError, InteractionCheckError, NotFoundError
from cds.models.clinical import ContextOverrides, Medication
from cds.models.interaction import AllergyFinding, CombinedInteractionResult, DrugInteractionFinding
from cds.services.alert_engine import get_patient_alerts
from cds.services.clinical_data import get_active_medication_allergies, get_medications
from cds.services.interaction_resolver import resolve_allergy_interactions, resolve_drug_interactions

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _run_phase(phase: str, work: Awaitable[T]) -> T:
    try:
        return await work
    except CDSError:
        raise
    except Exception as exc:
        logger.error("Interaction check failed during %s: %s", phase, exc)
        raise InteractionCheckError(phase, exc) from exc


async def _drug_phase(medications: list[Medication]) -> list[DrugInteractionFinding]:
    return resolve_drug_interactions(medications)


async def _allergy_phase(patient_id: str, medications: list[Medication]) -> list[AllergyFinding]:
    allergies = await get_active_medication_allergies(patient_id)
    if not allergies:
        return []
    return resolve_allergy_interactions(allergies, medications)


async def check_all_interactions(
    patient_id: str,
    medication_ids: list[str],
    user_id: str | None = None,
) -> CombinedInteractionResult:
    """Run every interaction check for a candidate medication list.

    Drug and allergy checks always run. Clinical alerts are only evaluated
    when a user is given, since alert suppression is per user. Any failing
    phase aborts the whole call: a partial safety check is never returned.
    """
    ids = list(dict.fromkeys(medication_ids))
    medications = await _run_phase("medication lookup", get_medications(ids))
    found = {m.id for m in medications}
    missing = [mid for mid in ids if mid not in found]
    if missing:
        raise NotFoundError(
            f"Medication(s) not found: {', '.join(missing)}",
            code="MEDICATION_NOT_FOUND",
            detail={"medication_ids": missing},
        )

    phases = [
        asyncio.create_task(_run_phase("drug interactions", _drug_phase(medications))),
        asyncio.create_task(_run_phase("allergy interactions", _allergy_phase(patient_id, medications))),
    ]
    try:
        drug_interactions, allergy_interactions = await asyncio.gather(*phases)
    except Exception:
        for task in phases:
            task.cancel()
        await asyncio.gather(*phases, return_exceptions=True)
        raise

    clinical_alerts = []
    if user_id:
        clinical_alerts = await _run_phase(
            "clinical alerts",
            get_patient_alerts(
                patient_id,
                user_id,
                ContextOverrides(medications=medications, current_medication_ids=ids),
            ),
        )

    return CombinedInteractionResult(
        drug_interactions=drug_interactions,
        allergy_interactions=allergy_interactions,
        clinical_alerts=clinical_alerts,
    )
