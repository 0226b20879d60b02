"""Rater evaluations of a university on one dimension, and their responses."""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database.engine import Base, BigIntId


# ==================== Enums ===================== #
class EvaluationStatus(str, PyEnum):
    """
    Lifecycle state of an evaluation. ``submitted`` is terminal.
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"


class Evaluation(Base):
    """
    One rater's scoring pass over the questions of one dimension for the
    university they are assigned to.
    """

    __tablename__: str = "evaluations"
    id: Mapped[int] = mapped_column(
        BigIntId, primary_key=True, nullable=False, autoincrement=True
    )
    rater_id: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="Subject id from the identity provider"
    )
    organization_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("universities.id"), nullable=False
    )
    dimension_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("dimensions.id"), nullable=False
    )
    status: Mapped[EvaluationStatus] = mapped_column(
        SQLEnum(EvaluationStatus, native_enum=False, length=20,
                values_callable=lambda enum: [member.value for member in enum]),
        nullable=False,
        default=EvaluationStatus.DRAFT,
    )
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    responses: Mapped[list["EvaluationResponse"]] = relationship(
        back_populates="evaluation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint(
            "rater_id",
            "organization_id",
            "dimension_id",
            name="uq_evaluations_rater_organization_dimension",
        ),
        Index("idx_evaluations_rater_created", "rater_id", "created_at"),
        Index("idx_evaluations_organization_dimension", "organization_id", "dimension_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Evaluation(id={self.id}, rater_id='{self.rater_id}', "
            f"status='{self.status}')>"
        )


class EvaluationResponse(Base):
    """
    The score given to one question inside an evaluation.
    """

    __tablename__: str = "evaluation_responses"
    id: Mapped[int] = mapped_column(
        BigIntId, primary_key=True, nullable=False, autoincrement=True
    )
    evaluation_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("evaluations.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("questions.id"), nullable=False
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False)

    evaluation: Mapped["Evaluation"] = relationship(back_populates="responses")

    __table_args__ = (
        UniqueConstraint(
            "evaluation_id", "question_id", name="uq_evaluation_responses_question"
        ),
        CheckConstraint("score BETWEEN 1 AND 5", name="ck_evaluation_responses_score"),
        Index("idx_evaluation_responses_evaluation", "evaluation_id"),
    )
