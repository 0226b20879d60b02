"""
Evaluation lifecycle and statistics endpoints.

Every endpoint acts on behalf of the authenticated rater. The static
``/averages`` and ``/ranking`` paths are declared before ``/{evaluation_id}``.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status

from api.dependencies import get_store, require_rater
from api.schemas.common import ApiResponse
from api.schemas.evaluations import (
    DeletedEvaluation,
    EvaluationDetail,
    EvaluationSummary,
    EvaluationUpsertRequest,
)
from api.schemas.statistics import DimensionAverage, RankingEntry
from api.services import evaluations as evaluation_service
from api.services import statistics as statistics_service
from api.services.store import UNSET, EvaluationStore

router = APIRouter(prefix="/evaluations", tags=["evaluations"])


@router.get(
    "",
    response_model=ApiResponse[list[EvaluationSummary]],
    summary="List My Evaluations",
    description="List the evaluations of the authenticated rater, newest first.",
)
async def list_my_evaluations(
    rater_id: str = Depends(require_rater),
    store: EvaluationStore = Depends(get_store),
):
    evaluations = (await evaluation_service.list_my_evaluations(store, rater_id)).unwrap()
    return ApiResponse.create(evaluations, f"Found {len(evaluations)} evaluations")


@router.get(
    "/averages",
    response_model=ApiResponse[list[DimensionAverage]],
    summary="Global Dimension Averages",
    description="Average score of each dimension across all universities.",
    dependencies=[Depends(require_rater)],
)
async def get_global_averages(
    submitted_only: Optional[bool] = Query(
        None, description="Only count submitted evaluations (server default when omitted)"
    ),
    store: EvaluationStore = Depends(get_store),
):
    averages = (
        await statistics_service.global_dimension_averages(store, submitted_only=submitted_only)
    ).unwrap()
    return ApiResponse.create(averages, "Global averages computed")


@router.get(
    "/ranking",
    response_model=ApiResponse[list[RankingEntry]],
    summary="University Ranking",
    description="Top universities by mean score, optionally for a single dimension.",
    dependencies=[Depends(require_rater)],
)
async def get_university_ranking(
    dimension: Optional[int] = Query(None, description="Dimension ID to rank by"),
    submitted_only: Optional[bool] = Query(None, description="Only count submitted evaluations"),
    store: EvaluationStore = Depends(get_store),
):
    ranking = (
        await statistics_service.university_ranking(
            store, dimension_id=dimension, submitted_only=submitted_only
        )
    ).unwrap()
    return ApiResponse.create(ranking, f"Ranking of {len(ranking)} universities")


@router.get(
    "/{evaluation_id}",
    response_model=ApiResponse[EvaluationDetail],
    summary="Get Evaluation",
    description="Get one of the rater's evaluations with its responses.",
)
async def get_evaluation(
    evaluation_id: int = Path(..., description="Evaluation ID"),
    rater_id: str = Depends(require_rater),
    store: EvaluationStore = Depends(get_store),
):
    evaluation = (
        await evaluation_service.get_evaluation(store, rater_id, evaluation_id)
    ).unwrap()
    return ApiResponse.create(evaluation, "Evaluation retrieved")


@router.post(
    "",
    response_model=ApiResponse[EvaluationDetail],
    status_code=status.HTTP_201_CREATED,
    summary="Create or Update Evaluation",
    description=(
        "Create a draft evaluation for a university and dimension, or replace the "
        "responses of the existing draft. Returns 201 when created and 200 when updated."
    ),
)
async def create_or_update_evaluation(
    request: EvaluationUpsertRequest,
    response: Response,
    rater_id: str = Depends(require_rater),
    store: EvaluationStore = Depends(get_store),
):
    outcome = (
        await evaluation_service.create_or_update_evaluation(
            store,
            rater_id=rater_id,
            organization_id=request.organization_id,
            dimension_id=request.dimension_id,
            responses=request.responses,
            comments=request.comments if "comments" in request.model_fields_set else UNSET,
        )
    ).unwrap()

    if not outcome.created:
        response.status_code = status.HTTP_200_OK
    message = "Evaluation created" if outcome.created else "Evaluation updated"
    return ApiResponse.create(outcome.evaluation, message)


@router.post(
    "/{evaluation_id}/submit",
    response_model=ApiResponse[EvaluationSummary],
    summary="Submit Evaluation",
    description="Finalize a draft evaluation. Submitted evaluations cannot be edited or deleted.",
)
async def submit_evaluation(
    evaluation_id: int = Path(..., description="Evaluation ID"),
    rater_id: str = Depends(require_rater),
    store: EvaluationStore = Depends(get_store),
):
    evaluation = (
        await evaluation_service.submit_evaluation(store, rater_id, evaluation_id)
    ).unwrap()
    return ApiResponse.create(evaluation, "Evaluation submitted")


@router.delete(
    "/{evaluation_id}",
    response_model=ApiResponse[DeletedEvaluation],
    summary="Delete Evaluation",
    description="Delete a draft evaluation and its responses.",
)
async def delete_evaluation(
    evaluation_id: int = Path(..., description="Evaluation ID"),
    rater_id: str = Depends(require_rater),
    store: EvaluationStore = Depends(get_store),
):
    deleted_id = (
        await evaluation_service.delete_evaluation(store, rater_id, evaluation_id)
    ).unwrap()
    return ApiResponse.create(DeletedEvaluation(id=deleted_id), "Evaluation deleted")
