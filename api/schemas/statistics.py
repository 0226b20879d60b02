"""Aggregate statistics schemas."""

from typing import Optional
from pydantic import BaseModel, Field

from api.schemas.catalog import OrganizationSummary


class DimensionAverage(BaseModel):
    """Mean score of one dimension and how many evaluations contributed."""

    dimension_id: int
    dimension_name: str
    dimension_code: str
    average_score: Optional[float] = Field(
        None, description="Mean score rounded to 2 decimals, null without data"
    )
    total_evaluations: int = Field(0, ge=0, description="Distinct contributing evaluations")


class RankingEntry(BaseModel):
    """A university's position in the top-N ranking."""

    rank: int = Field(ge=1)
    organization_id: int
    organization_name: str
    city: Optional[str] = None
    region: Optional[str] = None
    average_score: float
    total_evaluations: int = Field(ge=0)
    dimension_name: Optional[str] = Field(
        None, description="Only present when the ranking is filtered by dimension"
    )


class OrganizationScorecard(BaseModel):
    """Per-dimension averages of one university; every dimension is listed."""

    organization: OrganizationSummary
    dimensions: list[DimensionAverage]


class AssignmentView(BaseModel):
    """The university a rater is currently bound to, if any."""

    rater_id: str
    organization: Optional[OrganizationSummary] = None
