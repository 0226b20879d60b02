"""University (evaluated organization) reference model."""

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from database.engine import Base, BigIntId


class Organization(Base):
    """
    A university that raters evaluate. Reference data, never mutated by the
    evaluation engine.
    """

    __tablename__: str = "universities"
    id: Mapped[int] = mapped_column(
        BigIntId, primary_key=True, nullable=False, autoincrement=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    region: Mapped[str | None] = mapped_column(
        String(120), nullable=True, comment="Department / state of the university"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name='{self.name}')>"
