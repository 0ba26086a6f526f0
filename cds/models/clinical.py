from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from cds.models.severity import InteractionSeverity


class Interaction(BaseModel):
    """One-directional interaction entry declared on a medication."""
    interacts_with_id: str
    severity: InteractionSeverity
    description: str = ""


class Medication(BaseModel):
    id: str
    name: str = ""
    generic_name: str = ""
    classification: str | None = None
    interactions: list[Interaction] = []


class Allergy(BaseModel):
    id: str
    patient_id: str
    allergen: str = ""
    allergen_type: str = "medication"
    medication_id: str | None = None
    allergen_class: str | None = None
    reaction: str = ""
    is_active: bool = True


class Diagnosis(BaseModel):
    code: str
    status: str = "active"
    is_active: bool = True


class LabResult(BaseModel):
    test_code: str
    value: str = ""
    unit: str | None = None
    result_date: datetime | None = None


class Patient(BaseModel):
    id: str
    date_of_birth: date | None = None
    gender: str | None = None
    demographics: dict[str, Any] = {}
    active_medications: list[str] = []


class AppointmentInfo(BaseModel):
    type: str


class PatientSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    age: int | None = None
    gender: str | None = None
    demographics: dict[str, Any] = {}


class EvaluationContext(BaseModel):
    """Immutable per-call snapshot that trigger conditions are tested against."""
    model_config = ConfigDict(frozen=True)

    patient: PatientSnapshot
    diagnoses: list[Diagnosis] = []
    medications: list[Medication] = []
    lab_results: list[LabResult] = []
    current_date: datetime
    appointment: AppointmentInfo | None = None
    current_medication_ids: list[str] = []
    extra: dict[str, Any] = {}


class ContextOverrides(BaseModel):
    """Caller-supplied context. Any list given here replaces the live lookup."""
    diagnoses: list[Diagnosis] | None = None
    medications: list[Medication] | None = None
    medication_ids: list[str] | None = None
    lab_results: list[LabResult] | None = None
    appointment: AppointmentInfo | None = None
    current_medication_ids: list[str] = []
    extra: dict[str, Any] = {}


class PatientAlertsRequest(BaseModel):
    """Body of the patient-alerts route. Medications are given as ids."""
    medications: list[str] | None = Field(None, description="Medication ids replacing the active list")
    diagnoses: list[Diagnosis] | None = None
    lab_results: list[LabResult] | None = None
    appointment: AppointmentInfo | None = None

    def to_overrides(self) -> ContextOverrides:
        return ContextOverrides(
            diagnoses=self.diagnoses,
            medication_ids=self.medications,
            lab_results=self.lab_results,
            appointment=self.appointment,
        )
