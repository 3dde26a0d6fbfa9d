"""
Router for awarded credentials (stickers, badges, plaques)
"""
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Query

from ...core.engine import GradingEngine
from ...models.credential import Credential, CredentialType
from ..deps import get_grading_engine
from ..schemas.common import APIResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/students", tags=["Credentials"])


@router.get(
    "/{student_id}/credentials",
    response_model=APIResponse[List[Credential]],
    summary="Credentials awarded to a student",
)
def list_credentials(
    student_id: str,
    credential_type: Optional[CredentialType] = Query(None),
    engine: GradingEngine = Depends(get_grading_engine),
):
    return APIResponse(data=engine.credentials.list_credentials(student_id, credential_type=credential_type))


@router.post(
    "/{student_id}/credentials/evaluate/{component_skill_id}",
    response_model=APIResponse[List[Credential]],
    summary="Re-run credential evaluation for one skill",
    description="Returns only credentials issued or upgraded by this run.",
)
def evaluate_credentials(
    student_id: str,
    component_skill_id: str,
    engine: GradingEngine = Depends(get_grading_engine),
):
    issued = engine.credentials.evaluate(student_id, component_skill_id)
    return APIResponse(message=f"{len(issued)} credential(s) issued", data=issued)
