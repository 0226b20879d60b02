"""Evaluation lifecycle schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from api.schemas.catalog import DimensionSummary, OrganizationSummary
from database.models.evaluations import EvaluationStatus


class ResponseInput(BaseModel):
    """
    One answered question. Field presence and score range are checked by the
    evaluation service so the caller gets the specific rule that failed.
    """

    question_id: Optional[int] = Field(None, description="Question being answered")
    # Checked by coerce_score, which rejects booleans and strings
    score: Any = Field(None, description="Score given (1-5)")


class EvaluationUpsertRequest(BaseModel):
    """Request body for creating or editing a draft evaluation."""

    organization_id: Optional[int] = Field(
        None,
        validation_alias=AliasChoices("organization_id", "university_id"),
        description="University being evaluated",
    )
    dimension_id: Optional[int] = Field(None, description="Dimension being evaluated")
    responses: Optional[list[ResponseInput]] = Field(
        None, description="Scores for the questions of the dimension"
    )
    comments: Optional[str] = Field(
        None, max_length=5000, description="Optional overall comments"
    )

    @field_validator("comments", mode="before")
    @classmethod
    def strip_comments(cls, v):
        """Treat blank comments as absent."""
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class QuestionSnapshot(BaseModel):
    """Question fields shown next to a stored response."""

    text: str
    order_index: int
    scale_labels: dict[int, str] = Field(default_factory=dict)


class ResponseDetail(BaseModel):
    """A stored response joined with its question."""

    question_id: int
    score: int = Field(ge=1, le=5)
    question: Optional[QuestionSnapshot] = None


class EvaluationSummary(BaseModel):
    """Evaluation without its responses."""

    id: int
    rater_id: str
    organization_id: int
    dimension_id: int
    status: EvaluationStatus
    comments: Optional[str] = None
    submitted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    organization: Optional[OrganizationSummary] = None
    dimension: Optional[DimensionSummary] = None


class EvaluationDetail(EvaluationSummary):
    """Evaluation with every response, ordered like the questionnaire."""

    responses: list[ResponseDetail] = Field(default_factory=list)


class UpsertOutcome(BaseModel):
    """Result of create-or-update: the stored evaluation and whether it is new."""

    evaluation: EvaluationDetail
    created: bool


class DeletedEvaluation(BaseModel):
    """Identifier of a deleted draft."""

    id: int = Field(description="ID of the deleted evaluation")
