from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field

from cds.models.severity import AlertSeverity


class AlertCategory(StrEnum):
    DRUG_INTERACTION = "drug-interaction"
    PREVENTIVE_CARE = "preventive-care"
    DIAGNOSIS_ALERT = "diagnosis-alert"
    LAB_ALERT = "lab-alert"
    BEST_PRACTICE = "best-practice"
    ADMINISTRATIVE = "administrative"


class TriggerType(StrEnum):
    DIAGNOSIS = "diagnosis"
    MEDICATION = "medication"
    LAB_RESULT = "lab-result"
    PATIENT_DEMOGRAPHIC = "patient-demographic"
    SEASONAL = "seasonal"
    APPOINTMENT_TYPE = "appointment-type"
    CUSTOM = "custom"


EvidenceLevel = Literal["I", "II", "III", "IV", "V", "expert-opinion", "not-applicable"]
ActionType = Literal[
    "order-test", "prescribe-medication", "referral", "vaccination", "follow-up", "education", "other"
]


class ValueRange(BaseModel):
    min: float | None = None
    max: float | None = None
    unit: str | None = None


class TriggerCondition(BaseModel):
    # Kept as a plain string on stored definitions so unknown types evaluate to false
    type: str
    codes: list[str] = []
    value_range: ValueRange | None = None
    additional_criteria: dict[str, Any] | None = None


class TriggerConditionIn(TriggerCondition):
    type: TriggerType
    codes: list[str]


class AlertSource(BaseModel):
    name: str
    url: str | None = None
    last_updated: datetime | None = None


class RecommendedAction(BaseModel):
    text: str | None = None
    action_type: ActionType | None = None
    action_details: dict[str, Any] | None = None


class CustomizationOptions(BaseModel):
    can_mute: bool = True
    can_adjust_severity: bool = False
    can_customize_text: bool = False


class ClinicalAlertDefinition(BaseModel):
    id: str
    title: str
    description: str
    category: AlertCategory
    severity: AlertSeverity = AlertSeverity.INFO
    trigger_conditions: list[TriggerCondition] = []
    source: AlertSource | None = None
    evidence_level: EvidenceLevel = "not-applicable"
    recommended_action: RecommendedAction | None = None
    auto_dismiss: bool = False
    dismiss_timeout: int = 0
    is_system_defined: bool = False
    is_active: bool = True
    expiration_date: datetime | None = None
    applicable_departments: list[str] = []
    customization_options: CustomizationOptions = CustomizationOptions()
    created_at: str | None = None
    updated_at: str | None = None


class AlertCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: AlertCategory
    severity: AlertSeverity
    trigger_conditions: list[TriggerConditionIn] = Field(..., min_length=1)
    source: AlertSource
    evidence_level: EvidenceLevel = "not-applicable"
    recommended_action: RecommendedAction | None = None
    auto_dismiss: bool = False
    dismiss_timeout: int = Field(0, ge=0)
    is_system_defined: bool = False
    is_active: bool = True
    expiration_date: datetime | None = None
    applicable_departments: list[str] = []
    customization_options: CustomizationOptions = CustomizationOptions()


class AlertUpdate(BaseModel):
    title: str | None = Field(None, min_length=1)
    description: str | None = Field(None, min_length=1)
    category: AlertCategory | None = None
    severity: AlertSeverity | None = None
    trigger_conditions: list[TriggerConditionIn] | None = None
    source: AlertSource | None = None
    evidence_level: EvidenceLevel | None = None
    recommended_action: RecommendedAction | None = None
    auto_dismiss: bool | None = None
    dismiss_timeout: int | None = Field(None, ge=0)
    is_system_defined: bool | None = None
    is_active: bool | None = None
    expiration_date: datetime | None = None
    applicable_departments: list[str] | None = None
    customization_options: CustomizationOptions | None = None


class FormattedAlert(BaseModel):
    """Alert as shown to a clinician, after per-user overrides."""
    id: str
    title: str
    description: str
    severity: AlertSeverity
    category: AlertCategory
    source: AlertSource | None = None
    auto_dismiss: bool = False
    dismiss_timeout: int = 0
    recommended_action: RecommendedAction | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class AlertPage(BaseModel):
    alerts: list[ClinicalAlertDefinition] = []
    pagination: Pagination
