"""Evaluation dimensions and their rated questions."""

from sqlalchemy import ForeignKey, Integer, JSON, String, Text, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database.engine import Base, BigIntId


class Dimension(Base):
    """
    One of the fixed evaluation axes: Governance, Social, Environmental.
    """

    __tablename__: str = "dimensions"
    id: Mapped[int] = mapped_column(
        BigIntId, primary_key=True, nullable=False, autoincrement=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    questions: Mapped[list["Question"]] = relationship(
        back_populates="dimension",
        order_by="Question.order_index",
    )

    def __repr__(self) -> str:
        return f"<Dimension(id={self.id}, code='{self.code}')>"


class Question(Base):
    """
    A single rated item of a dimension. ``scale_labels`` maps each score of the
    1-5 scale to a human readable description.
    """

    __tablename__: str = "questions"
    id: Mapped[int] = mapped_column(
        BigIntId, primary_key=True, nullable=False, autoincrement=True
    )
    dimension_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("dimensions.id"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scale_labels: Mapped[dict] = mapped_column(
        JSON, nullable=False, default=dict, comment="Score (1-5) to description"
    )

    dimension: Mapped["Dimension"] = relationship(back_populates="questions")

    __table_args__ = (
        UniqueConstraint("dimension_id", "order_index", name="uq_questions_dimension_order"),
        Index("idx_questions_dimension", "dimension_id"),
    )

    def __repr__(self) -> str:
        return f"<Question(id={self.id}, dimension_id={self.dimension_id})>"
