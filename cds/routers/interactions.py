from fastapi import APIRouter, Header

from cds.models.interaction import CombinedInteractionResult, InteractionCheckRequest
from cds.services.interaction_checker import check_all_interactions

router = APIRouter(prefix="/api/interactions", tags=["interactions"])


@router.post("/check", response_model=CombinedInteractionResult)
async def check_interactions(body: InteractionCheckRequest, x_user_id: str | None = Header(None)):
    """Check a candidate medication list for drug, allergy and alert conflicts.

    Clinical alerts are only included when the request identifies a
    clinician via ``X-User-Id``.
    """
    return await check_all_interactions(body.patient_id, body.medication_ids, x_user_id)
