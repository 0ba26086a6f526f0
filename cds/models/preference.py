from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from cds.models.alert import AlertCategory
from cds.models.severity import AlertSeverity


class GlobalAlertStatus(StrEnum):
    ENABLED = "enabled"
    CRITICAL_ONLY = "critical-only"
    DISABLED = "disabled"


class PreferenceStatus(StrEnum):
    ENABLED = "enabled"
    MUTED = "muted"
    DISABLED = "disabled"


class CustomText(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str | None = None
    description: str | None = None


class CategoryPreference(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: AlertCategory
    status: PreferenceStatus = PreferenceStatus.ENABLED
    reason_for_muting: str | None = None


class AlertPreference(BaseModel):
    model_config = ConfigDict(frozen=True)

    alert_id: str
    status: PreferenceStatus = PreferenceStatus.ENABLED
    custom_severity: AlertSeverity | None = None
    custom_text: CustomText | None = None
    mute_until: datetime | None = None
    reason_for_muting: str | None = None


class UserAlertPreference(BaseModel):
    """Stored preferences for one clinician. Treated as a read-only snapshot."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    global_alert_status: GlobalAlertStatus = GlobalAlertStatus.ENABLED
    category_preferences: list[CategoryPreference] = []
    alert_preferences: list[AlertPreference] = []
    created_at: str | None = None
    updated_at: str | None = None


class CategoryPreferenceUpdate(BaseModel):
    category: AlertCategory
    status: PreferenceStatus
    reason_for_muting: str | None = None


class AlertPreferenceUpdate(BaseModel):
    alert_id: str = Field(..., min_length=1)
    status: PreferenceStatus
    custom_severity: AlertSeverity | None = None
    custom_text: CustomText | None = None
    mute_until: datetime | None = None
    reason_for_muting: str | None = None


class PreferenceUpdate(BaseModel):
    global_alert_status: GlobalAlertStatus | None = None
    category_preferences: list[CategoryPreferenceUpdate] | None = None
    alert_preferences: list[AlertPreferenceUpdate] | None = None
