"""University catalog and scorecard endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from api.dependencies import get_store, require_rater
from api.schemas.catalog import OrganizationSummary
from api.schemas.common import ApiResponse
from api.schemas.statistics import OrganizationScorecard
from api.services import catalog as catalog_service
from api.services import statistics as statistics_service
from api.services.store import EvaluationStore

router = APIRouter(prefix="/universities", tags=["universities"])


@router.get(
    "",
    response_model=ApiResponse[list[OrganizationSummary]],
    summary="List Universities",
    dependencies=[Depends(require_rater)],
)
async def list_universities(store: EvaluationStore = Depends(get_store)):
    """List every university that can be evaluated."""
    universities = (await catalog_service.list_organizations(store)).unwrap()
    return ApiResponse.create(universities, f"Found {len(universities)} universities")


@router.get(
    "/search",
    response_model=ApiResponse[list[OrganizationSummary]],
    summary="Search Universities",
    description="Case-insensitive search on university name and city.",
    dependencies=[Depends(require_rater)],
)
async def search_universities(
    q: str = Query(..., description="Text contained in the name or city"),
    limit: int = Query(20, ge=1, le=100, description="Maximum number of results"),
    store: EvaluationStore = Depends(get_store),
):
    universities = (await catalog_service.search_organizations(store, q, limit=limit)).unwrap()
    return ApiResponse.create(universities, f"Found {len(universities)} universities")


@router.get(
    "/scores",
    response_model=ApiResponse[list[OrganizationScorecard]],
    summary="List Universities With Scores",
    description="Every university with its average score and evaluation count per dimension.",
)
async def list_universities_with_scores(
    submitted_only: Optional[bool] = Query(None, description="Only count submitted evaluations"),
    store: EvaluationStore = Depends(get_store),
):
    scorecards = (
        await statistics_service.organizations_with_scores(store, submitted_only=submitted_only)
    ).unwrap()
    return ApiResponse.create(scorecards, f"Scores of {len(scorecards)} universities")


@router.get(
    "/{university_id}/scores",
    response_model=ApiResponse[OrganizationScorecard],
    summary="Get University Scores",
    description="Average score and evaluation count of one university per dimension.",
)
async def get_university_scores(
    university_id: int = Path(..., description="University ID"),
    submitted_only: Optional[bool] = Query(None, description="Only count submitted evaluations"),
    store: EvaluationStore = Depends(get_store),
):
    scorecard = (
        await statistics_service.organization_scorecard(
            store, university_id, submitted_only=submitted_only
        )
    ).unwrap()
    return ApiResponse.create(scorecard, "University scores retrieved")


@router.get(
    "/{university_id}",
    response_model=ApiResponse[OrganizationSummary],
    summary="Get University",
    dependencies=[Depends(require_rater)],
)
async def get_university(
    university_id: int = Path(..., description="University ID"),
    store: EvaluationStore = Depends(get_store),
):
    university = (await catalog_service.get_organization(store, university_id)).unwrap()
    return ApiResponse.create(university, "University retrieved")
