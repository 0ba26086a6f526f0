from pydantic import BaseModel, Field

from cds.models.alert import FormattedAlert
from cds.models.severity import InteractionSeverity


class DrugInteractionFinding(BaseModel):
    medication_ids: list[str]
    severity: InteractionSeverity
    description: str = ""


class AllergyFinding(BaseModel):
    allergy_id: str
    medication_id: str
    severity: InteractionSeverity
    description: str = ""


class InteractionCheckRequest(BaseModel):
    patient_id: str = Field(..., min_length=1)
    medication_ids: list[str] = Field(..., min_length=1)


class CombinedInteractionResult(BaseModel):
    drug_interactions: list[DrugInteractionFinding] = []
    allergy_interactions: list[AllergyFinding] = []
    clinical_alerts: list[FormattedAlert] = []
