import json
import logging
from datetime import UTC, datetime

from pydantic import TypeAdapter

from cds.database import get_db
from cds.errors import InvalidRequestError
from cds.models.alert import AlertCategory
from cds.models.preference import (
    AlertPreference,
    CategoryPreference,
    GlobalAlertStatus,
    PreferenceStatus,
    PreferenceUpdate,
    UserAlertPreference,
)

logger = logging.getLogger(__name__)

_category_list = TypeAdapter(list[CategoryPreference])
_alert_list = TypeAdapter(list[AlertPreference])


def _row_to_preferences(row) -> UserAlertPreference:
    return UserAlertPreference(
        user_id=row["user_id"],
        global_alert_status=row["global_alert_status"],
        category_preferences=_category_list.validate_json(row["category_preferences"] or "[]"),
        alert_preferences=_alert_list.validate_json(row["alert_preferences"] or "[]"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _dump(items: list) -> str:
    return json.dumps([item.model_dump(mode="json", exclude_none=True) for item in items])


def default_preferences(user_id: str) -> UserAlertPreference:
    """All categories enabled, no per-alert overrides."""
    now = datetime.now(UTC).isoformat()
    return UserAlertPreference(
        user_id=user_id,
        global_alert_status=GlobalAlertStatus.ENABLED,
        category_preferences=[
            CategoryPreference(category=category, status=PreferenceStatus.ENABLED)
            for category in AlertCategory
        ],
        alert_preferences=[],
        created_at=now,
        updated_at=now,
    )


async def _save(prefs: UserAlertPreference, commit: bool = True) -> None:
    db = await get_db()
    await db.execute(
        """UPDATE user_alert_preferences
           SET global_alert_status = ?, category_preferences = ?, alert_preferences = ?, updated_at = ?
           WHERE user_id = ?""",
        (
            str(prefs.global_alert_status),
            _dump(prefs.category_preferences),
            _dump(prefs.alert_preferences),
            prefs.updated_at,
            prefs.user_id,
        ),
    )
    if commit:
        await db.commit()


async def create_default_preferences(user_id: str) -> UserAlertPreference:
    prefs = default_preferences(user_id)
    db = await get_db()
    await db.execute(
        """INSERT INTO user_alert_preferences (
            user_id, global_alert_status, category_preferences, alert_preferences, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT (user_id) DO NOTHING""",
        (
            user_id,
            str(prefs.global_alert_status),
            _dump(prefs.category_preferences),
            _dump(prefs.alert_preferences),
            prefs.created_at,
            prefs.updated_at,
        ),
    )
    await db.commit()
    logger.info("Created default alert preferences for user %s", user_id)
    # A concurrent first access may have inserted first; the stored row wins.
    row = await db.fetch_one("SELECT * FROM user_alert_preferences WHERE user_id = ?", (user_id,))
    return _row_to_preferences(row) if row else prefs


async def get_user_preferences(user_id: str) -> UserAlertPreference:
    """Return the stored preferences for a user, creating defaults on first access."""
    db = await get_db()
    row = await db.fetch_one("SELECT * FROM user_alert_preferences WHERE user_id = ?", (user_id,))
    if row:
        return _row_to_preferences(row)
    return await create_default_preferences(user_id)


def apply_preference_update(prefs: UserAlertPreference, update: PreferenceUpdate) -> UserAlertPreference:
    """Merge a partial update into a preference snapshot, returning a new snapshot.

    Category entries are upserted by category and alert entries by alert id.
    For an existing alert entry only the fields present in the update change.
    """
    categories = list(prefs.category_preferences)
    for cat_update in update.category_preferences or []:
        idx = next((i for i, p in enumerate(categories) if p.category == cat_update.category), None)
        if idx is None:
            categories.append(CategoryPreference(**cat_update.model_dump()))
            continue
        changes = {"status": cat_update.status}
        if cat_update.reason_for_muting:
            changes["reason_for_muting"] = cat_update.reason_for_muting
        categories[idx] = categories[idx].model_copy(update=changes)

    alerts = list(prefs.alert_preferences)
    for alert_update in update.alert_preferences or []:
        fields = alert_update.model_dump(exclude_unset=True)
        idx = next((i for i, p in enumerate(alerts) if p.alert_id == alert_update.alert_id), None)
        if idx is None:
            alerts.append(AlertPreference(**fields))
        else:
            alerts[idx] = AlertPreference(**{**alerts[idx].model_dump(), **fields})

    changes = {
        "category_preferences": categories,
        "alert_preferences": alerts,
        "updated_at": datetime.now(UTC).isoformat(),
    }
    if update.global_alert_status:
        changes["global_alert_status"] = update.global_alert_status
    return prefs.model_copy(update=changes)


async def update_user_preferences(user_id: str, update: PreferenceUpdate) -> UserAlertPreference:
    if not update.model_fields_set:
        raise InvalidRequestError("Preference update must contain at least one field", code="EMPTY_UPDATE")
    try:
        prefs = await get_user_preferences(user_id)
        updated = apply_preference_update(prefs, update)
        await _save(updated)
    except Exception as exc:
        logger.error("Error updating alert preferences for user %s: %s", user_id, exc)
        raise
    return updated


async def remove_alert_from_preferences(alert_id: str, commit: bool = True) -> int:
    """Drop every user's preference entry for a deleted alert. Returns users touched.

    With ``commit=False`` the rewrites stay in the caller's open transaction.
    """
    db = await get_db()
    rows = await db.fetch_all(
        "SELECT * FROM user_alert_preferences WHERE alert_preferences LIKE ?",
        (f'%"{alert_id}"%',),
    )
    touched = 0
    for row in rows:
        prefs = _row_to_preferences(row)
        remaining = [p for p in prefs.alert_preferences if p.alert_id != alert_id]
        if len(remaining) == len(prefs.alert_preferences):
            continue
        await _save(prefs.model_copy(update={
            "alert_preferences": remaining,
            "updated_at": datetime.now(UTC).isoformat(),
        }), commit=commit)
        touched += 1
    if touched:
        logger.info("Removed alert %s from %d user preference sets", alert_id, touched)
    return touched
