from fastapi import APIRouter, Header, Query

from cds.config import ALERT_PAGE_SIZE_DEFAULT, ALERT_PAGE_SIZE_MAX
from cds.models.alert import (
    AlertCategory,
    AlertCreate,
    AlertPage,
    AlertUpdate,
    ClinicalAlertDefinition,
    FormattedAlert,
)
from cds.models.clinical import PatientAlertsRequest
from cds.models.preference import PreferenceUpdate, UserAlertPreference
from cds.models.severity import AlertSeverity
from cds.services import alert_catalog
from cds.services.alert_engine import get_patient_alerts
from cds.services.preference_store import get_user_preferences, update_user_preferences

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


@router.post("/patient/{patient_id}", response_model=list[FormattedAlert])
async def patient_alerts(
    patient_id: str,
    body: PatientAlertsRequest | None = None,
    x_user_id: str = Header(..., description="Clinician requesting the alerts"),
):
    """Evaluate the active alert catalog against a patient for one clinician.

    Any list supplied in the body (diagnoses, medication ids, lab results)
    replaces the patient's stored data for this evaluation; an appointment
    enables appointment-type triggers.
    """
    overrides = body.to_overrides() if body else None
    return await get_patient_alerts(patient_id, x_user_id, overrides)


@router.get("/preferences", response_model=UserAlertPreference)
async def read_preferences(x_user_id: str = Header(...)):
    return await get_user_preferences(x_user_id)


@router.patch("/preferences", response_model=UserAlertPreference)
async def patch_preferences(body: PreferenceUpdate, x_user_id: str = Header(...)):
    return await update_user_preferences(x_user_id, body)


@router.post("/seed")
async def seed_alerts():
    """Insert the starter system alerts if the catalog has none."""
    count = await alert_catalog.seed_system_alerts()
    return {"seeded": count, "message": f"{count} sample alerts seeded successfully"}


@router.get("", response_model=AlertPage)
async def list_alerts(
    page: int = Query(1, ge=1),
    limit: int = Query(ALERT_PAGE_SIZE_DEFAULT, ge=1, le=ALERT_PAGE_SIZE_MAX),
    category: AlertCategory | None = None,
    severity: AlertSeverity | None = None,
    is_active: bool | None = None,
    search: str | None = None,
):
    return await alert_catalog.list_alerts(
        page=page,
        limit=limit,
        category=category,
        severity=severity,
        is_active=is_active,
        search=search,
    )


@router.get("/{alert_id}", response_model=ClinicalAlertDefinition)
async def get_alert(alert_id: str):
    return await alert_catalog.get_alert(alert_id)


@router.post("", response_model=ClinicalAlertDefinition, status_code=201)
async def create_alert(body: AlertCreate):
    return await alert_catalog.create_alert(body)


@router.patch("/{alert_id}", response_model=ClinicalAlertDefinition)
async def update_alert(alert_id: str, body: AlertUpdate):
    return await alert_catalog.update_alert(alert_id, body)


@router.delete("/{alert_id}")
async def delete_alert(alert_id: str):
    await alert_catalog.delete_alert(alert_id)
    return {"deleted": True, "id": alert_id}
