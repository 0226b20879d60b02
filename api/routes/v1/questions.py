"""Question endpoints."""

from fastapi import APIRouter, Depends, Path

from api.dependencies import get_store
from api.schemas.catalog import QuestionDetail
from api.schemas.common import ApiResponse
from api.services import catalog as catalog_service
from api.services.store import EvaluationStore

router = APIRouter(prefix="/questions", tags=["questions"])


@router.get(
    "/{question_id}",
    response_model=ApiResponse[QuestionDetail],
    summary="Get Question",
    description="A question with its rating scale and dimension.",
)
async def get_question(
    question_id: int = Path(..., description="Question ID"),
    store: EvaluationStore = Depends(get_store),
):
    question = (await catalog_service.get_question(store, question_id)).unwrap()
    return ApiResponse.create(question, "Question retrieved")
