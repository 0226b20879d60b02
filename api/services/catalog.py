"""
Reference catalog reads: universities, dimensions and their questions.

The catalog is read-only to the service layer; rows are loaded by
``database.seed`` or migrations.
"""

import logging
from typing import Optional

from api.schemas.catalog import (
    DimensionSummary,
    OrganizationSummary,
    QuestionDetail,
    QuestionResponse,
)
from api.services.store import (
    DimensionRecord,
    EvaluationStore,
    OrganizationRecord,
    QuestionRecord,
    guard_store_errors,
)
from core.exceptions import ServiceError, ServiceResult

logger = logging.getLogger(__name__)


def organization_summary(record: Optional[OrganizationRecord]) -> Optional[OrganizationSummary]:
    if record is None:
        return None
    return OrganizationSummary.model_validate(record)


def dimension_summary(record: Optional[DimensionRecord]) -> Optional[DimensionSummary]:
    if record is None:
        return None
    return DimensionSummary.model_validate(record)


def question_response(record: QuestionRecord) -> QuestionResponse:
    return QuestionResponse.model_validate(record)


@guard_store_errors
async def list_organizations(store: EvaluationStore) -> ServiceResult[list[OrganizationSummary]]:
    """List every university ordered by id."""
    async with store.transaction() as session:
        records = await session.list_organizations()
    return ServiceResult.ok([organization_summary(r) for r in records])


@guard_store_errors
async def get_organization(
    store: EvaluationStore, organization_id: int
) -> ServiceResult[OrganizationSummary]:
    async with store.transaction() as session:
        record = await session.get_organization(organization_id)
    if record is None:
        return ServiceResult.fail(
            ServiceError.not_found(f"University {organization_id} not found")
        )
    return ServiceResult.ok(organization_summary(record))


@guard_store_errors
async def list_dimensions(store: EvaluationStore) -> ServiceResult[list[DimensionSummary]]:
    """List the evaluation dimensions ordered by id."""
    async with store.transaction() as session:
        records = await session.list_dimensions()
    return ServiceResult.ok([dimension_summary(r) for r in records])


@guard_store_errors
async def get_dimension(
    store: EvaluationStore, dimension_id: int
) -> ServiceResult[DimensionSummary]:
    async with store.transaction() as session:
        record = await session.get_dimension(dimension_id)
    if record is None:
        return ServiceResult.fail(ServiceError.not_found(f"Dimension {dimension_id} not found"))
    return ServiceResult.ok(dimension_summary(record))


@guard_store_errors
async def list_questions(
    store: EvaluationStore, dimension_id: int
) -> ServiceResult[list[QuestionResponse]]:
    """
    List the questionnaire of a dimension.

    Args:
        store: Evaluation store
        dimension_id: Dimension whose questions are listed

    Returns:
        Questions ordered by ``order_index``, or NOT_FOUND for an unknown dimension
    """
    async with store.transaction() as session:
        dimension = await session.get_dimension(dimension_id)
        if dimension is None:
            return ServiceResult.fail(
                ServiceError.not_found(f"Dimension {dimension_id} not found")
            )
        records = await session.list_questions(dimension_id)
    return ServiceResult.ok([question_response(r) for r in records])


@guard_store_errors
async def get_question(store: EvaluationStore, question_id: int) -> ServiceResult[QuestionDetail]:
    """Get one question together with its dimension."""
    async with store.transaction() as session:
        question = (await session.get_questions([question_id])).get(question_id)
        if question is None:
            return ServiceResult.fail(ServiceError.not_found(f"Question {question_id} not found"))
        dimension = await session.get_dimension(question.dimension_id)

    return ServiceResult.ok(
        QuestionDetail(
            **question_response(question).model_dump(),
            dimension=dimension_summary(dimension),
        )
    )


@guard_store_errors
async def search_organizations(
    store: EvaluationStore, query: str, limit: int = 20
) -> ServiceResult[list[OrganizationSummary]]:
    """
    Find universities whose name or city contains ``query`` (case-insensitive).

    Args:
        store: Evaluation store
        query: Search text; surrounding whitespace is ignored
        limit: Maximum number of matches

    Returns:
        Matches ordered by name, or VALIDATION_ERROR for a blank query
    """
    needle = query.strip()
    if not needle:
        return ServiceResult.fail(ServiceError.validation("Search query is required", field="q"))

    async with store.transaction() as session:
        matches = await session.search_organizations(needle, limit)

    logger.debug(f"University search '{needle}' returned {len(matches)} rows")
    return ServiceResult.ok([organization_summary(r) for r in matches])
