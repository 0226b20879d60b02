"""
Validation of create-or-update requests.

Runs before any write. Structural rules (presence, score range) are checked
first, then the identifiers are resolved against the reference catalog.
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from api.services.store import DimensionRecord, OrganizationRecord, StoreSession
from core.exceptions import ServiceError, ServiceResult

MIN_SCORE = 1
MAX_SCORE = 5


@dataclass(frozen=True)
class ScoredAnswer:
    """A response that passed validation."""

    question_id: int
    score: int


@dataclass(frozen=True)
class ValidatedSubmission:
    """Everything create-or-update needs once the request is known to be valid."""

    organization: OrganizationRecord
    dimension: DimensionRecord
    answers: list[ScoredAnswer]


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def coerce_score(raw: Any) -> Optional[int]:
    """
    Return ``raw`` as an int when it is an integral number, else None.

    Integral floats such as ``4.0`` are accepted; booleans are not.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    return None


def deduplicate_answers(answers: Sequence[ScoredAnswer]) -> list[ScoredAnswer]:
    """Keep one answer per question; the last one in input order wins."""
    by_question: dict[int, ScoredAnswer] = {}
    for answer in answers:
        by_question[answer.question_id] = answer
    return list(by_question.values())


def check_structure(
    organization_id: Optional[int],
    dimension_id: Optional[int],
    responses: Optional[Sequence[Any]],
) -> ServiceResult[list[ScoredAnswer]]:
    """
    Check the shape of a request without touching the store.

    Args:
        organization_id: University being evaluated
        dimension_id: Dimension being evaluated
        responses: Items exposing ``question_id`` and ``score`` (models or dicts)

    Returns:
        Deduplicated answers, or a ``VALIDATION_ERROR`` naming the broken rule
    """
    if organization_id is None:
        return ServiceResult.fail(
            ServiceError.validation("organization_id is required", field="organization_id")
        )
    if dimension_id is None:
        return ServiceResult.fail(
            ServiceError.validation("dimension_id is required", field="dimension_id")
        )
    if not responses:
        return ServiceResult.fail(
            ServiceError.validation("At least one response is required", field="responses")
        )

    answers: list[ScoredAnswer] = []
    for position, item in enumerate(responses):
        question_id = _field(item, "question_id")
        if question_id is None:
            return ServiceResult.fail(
                ServiceError.validation(
                    f"Response {position} is missing question_id",
                    field=f"responses[{position}].question_id",
                )
            )
        raw_score = _field(item, "score")
        if raw_score is None:
            return ServiceResult.fail(
                ServiceError.validation(
                    f"Response {position} is missing score",
                    field=f"responses[{position}].score",
                )
            )
        score = coerce_score(raw_score)
        if score is None:
            return ServiceResult.fail(
                ServiceError.validation(
                    f"Score for question {question_id} must be an integer",
                    field=f"responses[{position}].score",
                )
            )
        if not MIN_SCORE <= score <= MAX_SCORE:
            return ServiceResult.fail(
                ServiceError.validation(
                    f"Score for question {question_id} must be between "
                    f"{MIN_SCORE} and {MAX_SCORE}",
                    field=f"responses[{position}].score",
                )
            )
        answers.append(ScoredAnswer(question_id=int(question_id), score=score))

    return ServiceResult.ok(deduplicate_answers(answers))


async def validate_submission(
    session: StoreSession,
    organization_id: Optional[int],
    dimension_id: Optional[int],
    responses: Optional[Sequence[Any]],
) -> ServiceResult[ValidatedSubmission]:
    """
    Full validation of a create-or-update request. Reads only.

    On top of ``check_structure``, the university and dimension must exist and
    every answered question must belong to the dimension.
    """
    structural = check_structure(organization_id, dimension_id, responses)
    if not structural.success:
        return ServiceResult.fail(structural.error)
    answers = structural.value

    organization = await session.get_organization(organization_id)
    if organization is None:
        return ServiceResult.fail(
            ServiceError.validation(
                f"University {organization_id} does not exist", field="organization_id"
            )
        )
    dimension = await session.get_dimension(dimension_id)
    if dimension is None:
        return ServiceResult.fail(
            ServiceError.validation(
                f"Dimension {dimension_id} does not exist", field="dimension_id"
            )
        )

    questions = await session.get_questions(a.question_id for a in answers)
    for answer in answers:
        question = questions.get(answer.question_id)
        if question is None:
            return ServiceResult.fail(
                ServiceError.validation(
                    f"Question {answer.question_id} does not exist", field="responses"
                )
            )
        if question.dimension_id != dimension.id:
            return ServiceResult.fail(
                ServiceError.validation(
                    f"Question {answer.question_id} does not belong to dimension "
                    f"{dimension.id}",
                    field="responses",
                )
            )

    return ServiceResult.ok(
        ValidatedSubmission(organization=organization, dimension=dimension, answers=answers)
    )
