"""
Evaluation lifecycle service functions.

An evaluation covers one (rater, university, dimension) triple and moves
through ``absent -> draft -> submitted``. Drafts can be edited (all responses
are replaced) or deleted; submitted evaluations are frozen.

Every multi-write transition runs in a single store transaction. Business
rule violations come back as failed ``ServiceResult`` values and leave the
store untouched.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from api.schemas.evaluations import (
    EvaluationDetail,
    EvaluationSummary,
    QuestionSnapshot,
    ResponseDetail,
    UpsertOutcome,
)
from api.services import assignments
from api.services.catalog import dimension_summary, organization_summary
from api.services.store import (
    UNSET,
    DimensionRecord,
    EvaluationRecord,
    EvaluationStore,
    OrganizationRecord,
    ResponseRecord,
    StoreSession,
    guard_store_errors,
)
from api.services.validation import validate_submission
from core.exceptions import ErrorCode, ServiceError, ServiceResult, UniqueViolation
from database.models.evaluations import EvaluationStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _not_found(evaluation_id: int) -> ServiceError:
    return ServiceError.not_found(f"Evaluation {evaluation_id} not found")


def _summary(
    evaluation: EvaluationRecord,
    organization: Optional[OrganizationRecord],
    dimension: Optional[DimensionRecord],
) -> EvaluationSummary:
    return EvaluationSummary(
        id=evaluation.id,
        rater_id=evaluation.rater_id,
        organization_id=evaluation.organization_id,
        dimension_id=evaluation.dimension_id,
        status=evaluation.status,
        comments=evaluation.comments,
        submitted_at=evaluation.submitted_at,
        created_at=evaluation.created_at,
        updated_at=evaluation.updated_at,
        organization=organization_summary(organization),
        dimension=dimension_summary(dimension),
    )


async def _load_detail(session: StoreSession, evaluation: EvaluationRecord) -> EvaluationDetail:
    """Read an evaluation back with its catalog context and ordered responses."""
    organization = await session.get_organization(evaluation.organization_id)
    dimension = await session.get_dimension(evaluation.dimension_id)
    responses = await session.list_responses(evaluation.id)
    questions = await session.get_questions(r.question_id for r in responses)

    details = []
    for response in responses:
        question = questions.get(response.question_id)
        details.append(
            ResponseDetail(
                question_id=response.question_id,
                score=response.score,
                question=QuestionSnapshot(
                    text=question.text,
                    order_index=question.order_index,
                    scale_labels=question.scale_labels,
                )
                if question
                else None,
            )
        )
    details.sort(
        key=lambda d: (d.question.order_index if d.question else 0, d.question_id)
    )

    summary = _summary(evaluation, organization, dimension)
    return EvaluationDetail(**summary.model_dump(), responses=details)


@guard_store_errors
async def list_my_evaluations(
    store: EvaluationStore, rater_id: str
) -> ServiceResult[list[EvaluationSummary]]:
    """
    List the rater's evaluations, newest first, without their responses.

    Args:
        store: Evaluation store
        rater_id: Verified rater identifier

    Returns:
        Evaluation summaries with university and dimension
    """
    async with store.transaction() as session:
        evaluations = await session.list_evaluations(rater_id)
        organizations: dict[int, Optional[OrganizationRecord]] = {}
        dimensions: dict[int, Optional[DimensionRecord]] = {}
        for evaluation in evaluations:
            if evaluation.organization_id not in organizations:
                organizations[evaluation.organization_id] = await session.get_organization(
                    evaluation.organization_id
                )
            if evaluation.dimension_id not in dimensions:
                dimensions[evaluation.dimension_id] = await session.get_dimension(
                    evaluation.dimension_id
                )

    return ServiceResult.ok(
        [
            _summary(
                e,
                organizations[e.organization_id],
                dimensions[e.dimension_id],
            )
            for e in evaluations
        ]
    )


@guard_store_errors
async def get_evaluation(
    store: EvaluationStore, rater_id: str, evaluation_id: int
) -> ServiceResult[EvaluationDetail]:
    """Get one of the rater's evaluations with its responses."""
    async with store.transaction() as session:
        evaluation = await session.get_evaluation(evaluation_id, rater_id)
        if evaluation is None:
            return ServiceResult.fail(_not_found(evaluation_id))
        detail = await _load_detail(session, evaluation)
    return ServiceResult.ok(detail)


@guard_store_errors
async def create_or_update_evaluation(
    store: EvaluationStore,
    rater_id: str,
    organization_id: Optional[int],
    dimension_id: Optional[int],
    responses: Optional[Sequence[Any]],
    comments: Any = UNSET,
) -> ServiceResult[UpsertOutcome]:
    """
    Create a draft evaluation or replace the responses of an existing draft.

    Args:
        store: Evaluation store
        rater_id: Verified rater identifier
        organization_id: University being evaluated
        dimension_id: Dimension being evaluated
        responses: Items with ``question_id`` and ``score``; duplicates of a
            question are collapsed, the last one wins
        comments: Overall comments. On edit a value (None included) replaces
            the stored one and ``UNSET`` keeps it

    Returns:
        The stored evaluation and whether it was created, or one of
        VALIDATION_ERROR, ORGANIZATION_MISMATCH, ALREADY_SUBMITTED,
        ALREADY_EXISTS
    """
    now = _utcnow()
    try:
        async with store.transaction() as session:
            validated = await validate_submission(
                session, organization_id, dimension_id, responses
            )
            if not validated.success:
                session.rollback()
                return ServiceResult.fail(validated.error)
            submission = validated.value

            bound = await assignments.bind_organization(
                session, rater_id, submission.organization.id
            )
            if not bound.success:
                session.rollback()
                return ServiceResult.fail(bound.error)

            existing = await session.find_evaluation(
                rater_id, submission.organization.id, submission.dimension.id
            )
            if existing is not None and existing.status == EvaluationStatus.SUBMITTED:
                session.rollback()
                return ServiceResult.fail(
                    ServiceError(
                        ErrorCode.ALREADY_SUBMITTED,
                        f"Evaluation {existing.id} was already submitted and can no longer be edited",
                    )
                )

            if existing is None:
                evaluation = await session.insert_evaluation(
                    rater_id,
                    submission.organization.id,
                    submission.dimension.id,
                    None if comments is UNSET else comments,
                    now,
                )
                created = True
            else:
                evaluation = await session.update_evaluation(
                    existing.id, updated_at=now, comments=comments
                )
                created = False

            await session.replace_responses(
                evaluation.id,
                [
                    ResponseRecord(
                        evaluation_id=evaluation.id,
                        question_id=answer.question_id,
                        score=answer.score,
                    )
                    for answer in submission.answers
                ],
            )
            detail = await _load_detail(session, evaluation)
    except UniqueViolation:
        logger.warning(
            f"Concurrent create for rater {rater_id}, university {organization_id}, "
            f"dimension {dimension_id}"
        )
        return ServiceResult.fail(
            ServiceError(
                ErrorCode.ALREADY_EXISTS,
                "An evaluation for this university and dimension already exists",
            )
        )

    logger.info(
        f"{'Created' if created else 'Updated'} evaluation {detail.id} "
        f"for rater {rater_id} ({len(detail.responses)} responses)"
    )
    return ServiceResult.ok(UpsertOutcome(evaluation=detail, created=created))


@guard_store_errors
async def submit_evaluation(
    store: EvaluationStore, rater_id: str, evaluation_id: int
) -> ServiceResult[EvaluationSummary]:
    """
    Finalize a draft. There is no way back to draft afterwards.

    Returns:
        The submitted evaluation, or NOT_FOUND, ALREADY_SUBMITTED,
        EMPTY_EVALUATION
    """
    now = _utcnow()
    async with store.transaction() as session:
        evaluation = await session.get_evaluation(evaluation_id, rater_id)
        if evaluation is None:
            return ServiceResult.fail(_not_found(evaluation_id))
        if evaluation.status == EvaluationStatus.SUBMITTED:
            return ServiceResult.fail(
                ServiceError(
                    ErrorCode.ALREADY_SUBMITTED,
                    f"Evaluation {evaluation_id} was already submitted",
                )
            )
        if await session.count_responses(evaluation_id) == 0:
            return ServiceResult.fail(
                ServiceError(
                    ErrorCode.EMPTY_EVALUATION,
                    f"Evaluation {evaluation_id} has no responses and cannot be submitted",
                )
            )

        evaluation = await session.update_evaluation(
            evaluation_id,
            updated_at=now,
            status=EvaluationStatus.SUBMITTED,
            submitted_at=now,
        )
        organization = await session.get_organization(evaluation.organization_id)
        dimension = await session.get_dimension(evaluation.dimension_id)

    logger.info(f"Evaluation {evaluation_id} submitted by rater {rater_id}")
    return ServiceResult.ok(_summary(evaluation, organization, dimension))


@guard_store_errors
async def delete_evaluation(
    store: EvaluationStore, rater_id: str, evaluation_id: int
) -> ServiceResult[int]:
    """
    Delete a draft together with its responses.

    The rater's assignment is reconciled afterwards in a separate, best-effort
    transaction.

    Returns:
        The deleted evaluation id, or NOT_FOUND, CANNOT_DELETE_SUBMITTED
    """
    async with store.transaction() as session:
        evaluation = await session.get_evaluation(evaluation_id, rater_id)
        if evaluation is None:
            return ServiceResult.fail(_not_found(evaluation_id))
        if evaluation.status == EvaluationStatus.SUBMITTED:
            return ServiceResult.fail(
                ServiceError(
                    ErrorCode.CANNOT_DELETE_SUBMITTED,
                    f"Evaluation {evaluation_id} was submitted and cannot be deleted",
                )
            )
        await session.delete_evaluation(evaluation_id)

    logger.info(f"Evaluation {evaluation_id} deleted by rater {rater_id}")
    await assignments.reconcile_assignment(store, rater_id)
    return ServiceResult.ok(evaluation_id)
