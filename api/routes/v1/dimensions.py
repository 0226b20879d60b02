"""Evaluation dimension endpoints."""

from fastapi import APIRouter, Depends, Path

from api.dependencies import get_store
from api.schemas.catalog import DimensionSummary, QuestionResponse
from api.schemas.common import ApiResponse
from api.services import catalog as catalog_service
from api.services.store import EvaluationStore

router = APIRouter(prefix="/dimensions", tags=["dimensions"])


@router.get(
    "",
    response_model=ApiResponse[list[DimensionSummary]],
    summary="List Dimensions",
    description="The evaluation dimensions: Governance, Social and Environmental.",
)
async def list_dimensions(store: EvaluationStore = Depends(get_store)):
    dimensions = (await catalog_service.list_dimensions(store)).unwrap()
    return ApiResponse.create(dimensions, f"Found {len(dimensions)} dimensions")


@router.get(
    "/{dimension_id}",
    response_model=ApiResponse[DimensionSummary],
    summary="Get Dimension",
)
async def get_dimension(
    dimension_id: int = Path(..., description="Dimension ID"),
    store: EvaluationStore = Depends(get_store),
):
    dimension = (await catalog_service.get_dimension(store, dimension_id)).unwrap()
    return ApiResponse.create(dimension, "Dimension retrieved")


@router.get(
    "/{dimension_id}/questions",
    response_model=ApiResponse[list[QuestionResponse]],
    summary="List Dimension Questions",
    description="Questions of a dimension in questionnaire order.",
)
async def list_dimension_questions(
    dimension_id: int = Path(..., description="Dimension ID"),
    store: EvaluationStore = Depends(get_store),
):
    questions = (await catalog_service.list_questions(store, dimension_id)).unwrap()
    return ApiResponse.create(questions, f"Found {len(questions)} questions")
