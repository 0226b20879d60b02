"""The single university a rater is currently allowed to evaluate."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from database.engine import Base, BigIntId


class RaterAssignment(Base):
    """
    One row per rater. ``assigned_organization_id`` is a projection of the
    rater's evaluation history: set on the first evaluation, cleared once the
    rater has no evaluations left.
    """

    __tablename__: str = "rater_assignments"
    rater_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    assigned_organization_id: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("universities.id"), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
