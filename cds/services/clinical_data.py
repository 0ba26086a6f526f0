"""Read-only lookups over patient clinical data.

These are the collaborators the engines consume: patient records, active
diagnoses, medication reference data, recent lab results and medication
allergies. All of them return pydantic models so callers never see raw rows.
"""

import json
import logging
from datetime import UTC, date, datetime

from cds.database import get_db
from cds.models.clinical import Allergy, Diagnosis, Interaction, LabResult, Medication, Patient

logger = logging.getLogger(__name__)


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


def _load_json(raw, default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Failed to parse stored JSON value: %.60s", raw)
        return default


def _row_to_patient(row) -> Patient:
    dob = row["date_of_birth"]
    return Patient(
        id=row["id"],
        date_of_birth=date.fromisoformat(dob[:10]) if dob else None,
        gender=row["gender"],
        demographics=_load_json(row["demographics"], {}),
        active_medications=_load_json(row["active_medications"], []),
    )


def _row_to_medication(row) -> Medication:
    return Medication(
        id=row["id"],
        name=row["name"],
        generic_name=row["generic_name"],
        classification=row["classification"],
        interactions=[Interaction.model_validate(i) for i in _load_json(row["interactions"], [])],
    )


async def get_patient(patient_id: str) -> Patient | None:
    db = await get_db()
    row = await db.fetch_one("SELECT * FROM patients WHERE id = ?", (patient_id,))
    if not row:
        return None
    return _row_to_patient(row)


async def get_active_diagnoses(patient_id: str) -> list[Diagnosis]:
    db = await get_db()
    rows = await db.fetch_all(
        "SELECT code, status, is_active FROM diagnoses WHERE patient_id = ? AND is_active = 1 ORDER BY id",
        (patient_id,),
    )
    return [Diagnosis(code=row["code"], status=row["status"], is_active=bool(row["is_active"])) for row in rows]


async def get_medications(medication_ids: list[str]) -> list[Medication]:
    """Fetch medications by id, returned in the order the ids were given.

    Unknown ids are left out; callers that need every id resolved compare
    lengths themselves.
    """
    if not medication_ids:
        return []
    db = await get_db()
    rows = await db.fetch_all(
        f"SELECT * FROM medications WHERE id IN ({_placeholders(len(medication_ids))})",
        tuple(medication_ids),
    )
    by_id = {row["id"]: _row_to_medication(row) for row in rows}
    return [by_id[mid] for mid in medication_ids if mid in by_id]


async def get_recent_lab_results(patient_id: str, since: datetime) -> list[LabResult]:
    """Lab results dated at or after ``since``. Naive datetimes are taken as UTC."""
    # Stored dates are UTC ISO text, so the bound must be too for the text comparison
    since = since.replace(tzinfo=UTC) if since.tzinfo is None else since.astimezone(UTC)
    db = await get_db()
    rows = await db.fetch_all(
        "SELECT test_code, value, unit, result_date FROM lab_results "
        "WHERE patient_id = ? AND result_date >= ? ORDER BY result_date DESC",
        (patient_id, since.isoformat()),
    )
    return [
        LabResult(
            test_code=row["test_code"],
            value=row["value"] or "",
            unit=row["unit"],
            result_date=datetime.fromisoformat(row["result_date"]),
        )
        for row in rows
    ]


async def get_active_medication_allergies(patient_id: str) -> list[Allergy]:
    db = await get_db()
    rows = await db.fetch_all(
        "SELECT * FROM allergies WHERE patient_id = ? AND allergen_type = 'medication' AND is_active = 1",
        (patient_id,),
    )
    return [
        Allergy(
            id=row["id"],
            patient_id=row["patient_id"],
            allergen=row["allergen"] or "",
            allergen_type=row["allergen_type"],
            medication_id=row["medication_id"],
            allergen_class=row["allergen_class"],
            reaction=row["reaction"] or "",
            is_active=bool(row["is_active"]),
        )
        for row in rows
    ]
