"""
Tests for create-or-update request validation.

Tests:
- Structural rules (presence, non-empty, score type and range)
- Deduplication by question, last answer wins
- Catalog checks (university, dimension, question membership)
"""

import pytest

from api.schemas.evaluations import ResponseInput
from api.services.validation import (
    ScoredAnswer,
    check_structure,
    coerce_score,
    deduplicate_answers,
    validate_submission,
)
from core.exceptions import ErrorCode


class TestCoerceScore:
    """Score coercion."""

    @pytest.mark.parametrize("raw,expected", [
        (1, 1),
        (5, 5),
        (4.0, 4),
        (0, 0),
        (3.5, None),
        ("3", None),
        (True, None),
        (None, None),
    ])
    def test_coerce(self, raw, expected):
        assert coerce_score(raw) == expected


class TestCheckStructure:
    """Structural validation, no store access."""

    def test_valid_request(self):
        result = check_structure(1, 1, [{"question_id": 1, "score": 4}])

        assert result.success
        assert result.value == [ScoredAnswer(question_id=1, score=4)]

    def test_accepts_response_models(self):
        result = check_structure(1, 1, [ResponseInput(question_id=2, score=5.0)])

        assert result.success
        assert result.value == [ScoredAnswer(question_id=2, score=5)]

    @pytest.mark.parametrize("organization_id,dimension_id,field", [
        (None, 1, "organization_id"),
        (1, None, "dimension_id"),
    ])
    def test_missing_identifiers(self, organization_id, dimension_id, field):
        result = check_structure(organization_id, dimension_id, [{"question_id": 1, "score": 3}])

        assert not result.success
        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert result.error.field == field

    @pytest.mark.parametrize("responses", [None, []])
    def test_empty_responses(self, responses):
        result = check_structure(1, 1, responses)

        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert result.error.field == "responses"

    def test_missing_question_id(self):
        result = check_structure(1, 1, [{"question_id": 1, "score": 3}, {"score": 3}])

        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert result.error.field == "responses[1].question_id"

    def test_missing_score(self):
        result = check_structure(1, 1, [{"question_id": 1}])

        assert result.error.field == "responses[0].score"

    @pytest.mark.parametrize("score", [0, 6, -1, 100])
    def test_score_out_of_range(self, score):
        result = check_structure(1, 1, [{"question_id": 1, "score": score}])

        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert "between 1 and 5" in result.error.message

    @pytest.mark.parametrize("score", [2.5, "4", True])
    def test_score_not_integer(self, score):
        result = check_structure(1, 1, [{"question_id": 1, "score": score}])

        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert "integer" in result.error.message

    def test_one_bad_response_rejects_all(self):
        result = check_structure(1, 1, [
            {"question_id": 1, "score": 5},
            {"question_id": 2, "score": 9},
            {"question_id": 3, "score": 4},
        ])

        assert not result.success
        assert result.value is None


class TestDeduplicateAnswers:
    """Last answer per question wins."""

    def test_last_in_input_order_wins(self):
        deduplicated = deduplicate_answers([
            ScoredAnswer(1, 2),
            ScoredAnswer(2, 3),
            ScoredAnswer(1, 5),
        ])

        assert deduplicated == [ScoredAnswer(1, 5), ScoredAnswer(2, 3)]

    def test_structure_check_deduplicates(self):
        result = check_structure(1, 1, [
            {"question_id": 1, "score": 1},
            {"question_id": 1, "score": 4},
        ])

        assert result.value == [ScoredAnswer(1, 4)]


class TestValidateSubmission:
    """Catalog-aware validation."""

    @pytest.mark.asyncio
    async def test_valid_submission(self, store, answers):
        async with store.transaction() as session:
            result = await validate_submission(session, 1, 1, answers(1, 5, 4, 3))

        assert result.success
        assert result.value.organization.id == 1
        assert result.value.dimension.code == "governance"
        assert [a.score for a in result.value.answers] == [5, 4, 3]

    @pytest.mark.asyncio
    async def test_unknown_university(self, store, answers):
        async with store.transaction() as session:
            result = await validate_submission(session, 99, 1, answers(1, 5))

        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert result.error.field == "organization_id"

    @pytest.mark.asyncio
    async def test_unknown_dimension(self, store, answers):
        async with store.transaction() as session:
            result = await validate_submission(session, 1, 42, answers(1, 5))

        assert result.error.field == "dimension_id"

    @pytest.mark.asyncio
    async def test_unknown_question(self, store):
        async with store.transaction() as session:
            result = await validate_submission(session, 1, 1, [{"question_id": 999, "score": 3}])

        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert "999" in result.error.message

    @pytest.mark.asyncio
    async def test_question_of_another_dimension(self, store, answers):
        async with store.transaction() as session:
            result = await validate_submission(session, 1, 1, answers(2, 4))

        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert "does not belong" in result.error.message

    @pytest.mark.asyncio
    async def test_structure_checked_before_catalog(self, store):
        async with store.transaction() as session:
            result = await validate_submission(session, 99, 1, [{"question_id": 1, "score": 0}])

        assert "between 1 and 5" in result.error.message
