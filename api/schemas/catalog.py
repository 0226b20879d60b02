"""Reference catalog schemas: universities, dimensions and questions."""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class OrganizationSummary(BaseModel):
    """University summary embedded in evaluations and rankings."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(description="University identifier")
    name: str = Field(description="University name")
    city: Optional[str] = Field(None, description="City")
    region: Optional[str] = Field(None, description="Department / state")


class DimensionSummary(BaseModel):
    """Dimension summary embedded in evaluations."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str = Field(description="Display name, e.g. Governance")
    code: str = Field(description="Stable code, e.g. governance")


class QuestionResponse(BaseModel):
    """A question of a dimension with its rating scale."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    dimension_id: int
    text: str
    order_index: int
    scale_labels: dict[int, str] = Field(
        default_factory=dict, description="Score (1-5) to description"
    )


class QuestionDetail(QuestionResponse):
    """A question together with the dimension it belongs to."""

    dimension: DimensionSummary
