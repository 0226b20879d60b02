"""Endpoints about the authenticated rater."""

from fastapi import APIRouter, Depends

from api.dependencies import get_store, require_rater
from api.schemas.common import ApiResponse
from api.schemas.statistics import AssignmentView
from api.services import assignments as assignment_service
from api.services.store import EvaluationStore

router = APIRouter(prefix="/raters", tags=["raters"])


@router.get(
    "/me/assignment",
    response_model=ApiResponse[AssignmentView],
    summary="Get My Assigned University",
    description=(
        "The university the rater is currently evaluating. Empty until the first "
        "evaluation is saved and again after the last one is deleted."
    ),
)
async def get_my_assignment(
    rater_id: str = Depends(require_rater),
    store: EvaluationStore = Depends(get_store),
):
    view = (await assignment_service.get_assignment_summary(store, rater_id)).unwrap()
    message = "Assigned university retrieved" if view.organization else "No university assigned"
    return ApiResponse.create(view, message)
