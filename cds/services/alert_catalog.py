"""Clinical alert catalog: CRUD over alert definitions plus the starter seed.

System-defined alerts are protected: they cannot be deleted, reclassified
into another category, or demoted to user-defined.
"""

import json
import logging
import math
import uuid
from datetime import UTC, datetime

from pydantic import TypeAdapter

from cds.config import ALERT_PAGE_SIZE_DEFAULT, ALERT_PAGE_SIZE_MAX
from cds.database import get_db
from cds.errors import ForbiddenError, NotFoundError
from cds.models.alert import (
    AlertCreate,
    AlertPage,
    AlertUpdate,
    ClinicalAlertDefinition,
    Pagination,
    TriggerCondition,
)
from cds.services.preference_store import remove_alert_from_preferences

logger = logging.getLogger(__name__)

_conditions = TypeAdapter(list[TriggerCondition])

_COLUMNS = (
    "id, title, description, category, severity, trigger_conditions, source, evidence_level, "
    "recommended_action, auto_dismiss, dismiss_timeout, is_system_defined, is_active, "
    "expiration_date, applicable_departments, customization_options, created_at, updated_at"
)

# Fields an update may explicitly clear with null
_CLEARABLE = {"recommended_action", "expiration_date"}


def _json_or_none(raw):
    return json.loads(raw) if raw else None


def _row_to_alert(row) -> ClinicalAlertDefinition:
    return ClinicalAlertDefinition(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        category=row["category"],
        severity=row["severity"],
        trigger_conditions=_conditions.validate_json(row["trigger_conditions"] or "[]"),
        source=_json_or_none(row["source"]),
        evidence_level=row["evidence_level"],
        recommended_action=_json_or_none(row["recommended_action"]),
        auto_dismiss=bool(row["auto_dismiss"]),
        dismiss_timeout=row["dismiss_timeout"] or 0,
        is_system_defined=bool(row["is_system_defined"]),
        is_active=bool(row["is_active"]),
        expiration_date=row["expiration_date"],
        applicable_departments=json.loads(row["applicable_departments"] or "[]"),
        customization_options=json.loads(row["customization_options"] or "{}"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _alert_params(alert: ClinicalAlertDefinition) -> tuple:
    data = alert.model_dump(mode="json")
    return (
        alert.id,
        alert.title,
        alert.description,
        data["category"],
        data["severity"],
        json.dumps(data["trigger_conditions"]),
        json.dumps(data["source"]) if alert.source else None,
        alert.evidence_level,
        json.dumps(data["recommended_action"]) if alert.recommended_action else None,
        int(alert.auto_dismiss),
        alert.dismiss_timeout,
        int(alert.is_system_defined),
        int(alert.is_active),
        data["expiration_date"],
        json.dumps(alert.applicable_departments),
        json.dumps(data["customization_options"]),
        alert.created_at,
        alert.updated_at,
    )


def _new_definition(data: AlertCreate) -> ClinicalAlertDefinition:
    now = datetime.now(UTC).isoformat()
    return ClinicalAlertDefinition.model_validate({
        **data.model_dump(mode="json"),
        "id": str(uuid.uuid4()),
        "created_at": now,
        "updated_at": now,
    })


async def _insert(alerts: list[ClinicalAlertDefinition]) -> None:
    db = await get_db()
    await db.executemany(
        f"INSERT INTO clinical_alerts ({_COLUMNS}) VALUES ({', '.join('?' for _ in range(18))})",
        [_alert_params(a) for a in alerts],
    )
    await db.commit()


async def get_active_alerts() -> list[ClinicalAlertDefinition]:
    db = await get_db()
    rows = await db.fetch_all(
        f"SELECT {_COLUMNS} FROM clinical_alerts WHERE is_active = 1 ORDER BY created_at, id"
    )
    return [_row_to_alert(row) for row in rows]


async def list_alerts(
    page: int = 1,
    limit: int = ALERT_PAGE_SIZE_DEFAULT,
    category: str | None = None,
    severity: str | None = None,
    is_active: bool | None = None,
    search: str | None = None,
) -> AlertPage:
    """Paginated catalog listing, newest first."""
    page = max(page, 1)
    limit = min(max(limit, 1), ALERT_PAGE_SIZE_MAX)

    clauses: list[str] = []
    params: list = []
    if category:
        clauses.append("category = ?")
        params.append(category)
    if severity:
        clauses.append("severity = ?")
        params.append(severity)
    if is_active is not None:
        clauses.append("is_active = ?")
        params.append(int(is_active))
    if search:
        clauses.append("(LOWER(title) LIKE ? OR LOWER(description) LIKE ?)")
        needle = f"%{search.lower()}%"
        params.extend([needle, needle])
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""

    db = await get_db()
    count_row = await db.fetch_one(f"SELECT COUNT(*) AS total FROM clinical_alerts{where}", tuple(params))
    total = count_row["total"] if count_row else 0
    rows = await db.fetch_all(
        f"SELECT {_COLUMNS} FROM clinical_alerts{where} ORDER BY created_at DESC, id LIMIT ? OFFSET ?",
        (*params, limit, (page - 1) * limit),
    )
    return AlertPage(
        alerts=[_row_to_alert(row) for row in rows],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )


async def get_alert(alert_id: str) -> ClinicalAlertDefinition:
    db = await get_db()
    row = await db.fetch_one(f"SELECT {_COLUMNS} FROM clinical_alerts WHERE id = ?", (alert_id,))
    if not row:
        raise NotFoundError(f"Alert {alert_id} not found", code="ALERT_NOT_FOUND", detail={"alert_id": alert_id})
    return _row_to_alert(row)


async def create_alert(data: AlertCreate) -> ClinicalAlertDefinition:
    alert = _new_definition(data)
    try:
        await _insert([alert])
    except Exception as exc:
        logger.error("Error creating alert %r: %s", data.title, exc)
        raise
    logger.info("Created clinical alert %s (%s)", alert.id, alert.category)
    return alert


async def update_alert(alert_id: str, data: AlertUpdate) -> ClinicalAlertDefinition:
    existing = await get_alert(alert_id)
    changes = {
        key: value
        for key, value in data.model_dump(mode="json", exclude_unset=True).items()
        if value is not None or key in _CLEARABLE
    }

    if existing.is_system_defined:
        for protected in ("category", "is_system_defined"):
            if protected in changes and changes[protected] != getattr(existing, protected):
                raise ForbiddenError(
                    f"Cannot change {protected} of system-defined alert {alert_id}",
                    code="SYSTEM_ALERT_PROTECTED",
                    detail={"alert_id": alert_id, "field": protected},
                )

    updated = ClinicalAlertDefinition.model_validate({
        **existing.model_dump(mode="json"),
        **changes,
        "updated_at": datetime.now(UTC).isoformat(),
    })
    params = _alert_params(updated)
    db = await get_db()
    try:
        await db.execute(
            """UPDATE clinical_alerts SET
                title = ?, description = ?, category = ?, severity = ?, trigger_conditions = ?,
                source = ?, evidence_level = ?, recommended_action = ?, auto_dismiss = ?,
                dismiss_timeout = ?, is_system_defined = ?, is_active = ?, expiration_date = ?,
                applicable_departments = ?, customization_options = ?, updated_at = ?
               WHERE id = ?""",
            (*params[1:16], updated.updated_at, alert_id),
        )
        await db.commit()
    except Exception as exc:
        logger.error("Error updating alert %s: %s", alert_id, exc)
        raise
    return updated


async def delete_alert(alert_id: str) -> None:
    """Delete a user-defined alert and drop it from every user's preferences."""
    alert = await get_alert(alert_id)
    if alert.is_system_defined:
        raise ForbiddenError(
            "Cannot delete system-defined alerts",
            code="SYSTEM_ALERT_PROTECTED",
            detail={"alert_id": alert_id},
        )

    # Preference cascade and row delete commit together
    db = await get_db()
    try:
        await remove_alert_from_preferences(alert_id, commit=False)
        await db.execute("DELETE FROM clinical_alerts WHERE id = ?", (alert_id,))
        await db.commit()
    except Exception as exc:
        await db.rollback()
        logger.error("Error deleting alert %s: %s", alert_id, exc)
        raise
    logger.info("Deleted clinical alert %s", alert_id)


SYSTEM_ALERTS: list[dict] = [
    {
        "title": "Recommend flu vaccine for diabetic patients",
        "description": (
            "Annual influenza vaccination is recommended for all patients with diabetes "
            "to reduce risk of complications from influenza."
        ),
        "category": "preventive-care",
        "severity": "warning",
        "trigger_conditions": [
            {"type": "diagnosis", "codes": ["E11", "E10", "250"]},
            {"type": "seasonal", "codes": ["season=fall"]},
        ],
        "source": {
            "name": "American Diabetes Association",
            "url": "https://www.diabetes.org/",
            "last_updated": "2023-01-15T00:00:00Z",
        },
        "evidence_level": "I",
        "recommended_action": {"text": "Administer seasonal influenza vaccine", "action_type": "vaccination"},
    },
    {
        "title": "Potential drug interaction detected",
        "description": "Concurrent use of warfarin and NSAIDs may increase risk of bleeding.",
        "category": "drug-interaction",
        "severity": "critical",
        "trigger_conditions": [
            {"type": "medication", "codes": ["warfarin"]},
            {"type": "medication", "codes": ["ibuprofen", "naproxen", "diclofenac", "celecoxib"]},
        ],
        "source": {"name": "FDA Drug Interactions", "url": "https://www.fda.gov/", "last_updated": "2023-02-10T00:00:00Z"},
        "evidence_level": "II",
        "recommended_action": {
            "text": "Consider alternative pain management or adjust dosing with increased monitoring for bleeding.",
            "action_type": "other",
        },
    },
    {
        "title": "HbA1c test recommended",
        "description": "Hemoglobin A1c testing is recommended every 3-6 months for patients with diabetes.",
        "category": "best-practice",
        "severity": "info",
        "trigger_conditions": [{"type": "diagnosis", "codes": ["E11", "E10"]}],
        "source": {
            "name": "American Diabetes Association",
            "url": "https://www.diabetes.org/",
            "last_updated": "2023-03-22T00:00:00Z",
        },
        "evidence_level": "I",
        "recommended_action": {"text": "Order HbA1c test if not done in the past 3 months", "action_type": "order-test"},
    },
    {
        "title": "Elevated potassium level",
        "description": "Patient has hyperkalemia. Consider immediate intervention.",
        "category": "lab-alert",
        "severity": "critical",
        "trigger_conditions": [
            {"type": "lab-result", "codes": ["K+", "potassium"], "value_range": {"min": 5.5, "unit": "mmol/L"}},
        ],
        "source": {
            "name": "Clinical Guidelines",
            "url": "https://www.clinicalguidelines.gov/",
            "last_updated": "2023-01-05T00:00:00Z",
        },
        "evidence_level": "I",
        "recommended_action": {
            "text": "Assess patient immediately and consider treatment to lower potassium levels",
            "action_type": "other",
        },
    },
    {
        "title": "Colonoscopy screening recommendation",
        "description": "Colonoscopy screening is recommended for adults aged 45-75 years.",
        "category": "preventive-care",
        "severity": "info",
        "trigger_conditions": [{"type": "patient-demographic", "codes": ["age>45", "age<76"]}],
        "source": {
            "name": "US Preventive Services Task Force",
            "url": "https://www.uspreventiveservicestaskforce.org/",
            "last_updated": "2023-05-18T00:00:00Z",
        },
        "evidence_level": "I",
        "recommended_action": {
            "text": "Discuss colonoscopy screening options if not done in the past 10 years",
            "action_type": "order-test",
        },
    },
]


async def seed_system_alerts() -> int:
    """Insert the starter system alerts unless any system-defined alert already exists.

    Returns the number of alerts inserted (0 when skipped).
    """
    db = await get_db()
    result = await db.fetch_one("SELECT COUNT(*) AS count FROM clinical_alerts WHERE is_system_defined = 1")
    if result and result["count"] > 0:
        return 0

    alerts = [
        _new_definition(AlertCreate.model_validate({**data, "is_system_defined": True, "is_active": True}))
        for data in SYSTEM_ALERTS
    ]
    await _insert(alerts)
    logger.info("Seeded %d system-defined clinical alerts", len(alerts))
    return len(alerts)
