"""Common Pydantic schemas shared across the API."""

from typing import Generic, TypeVar, Optional
from pydantic import BaseModel, Field


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope returned by every endpoint."""

    success: bool = Field(default=True, description="Always true for successful calls")
    message: str = Field(description="Human readable outcome")
    data: Optional[T] = Field(default=None, description="Response payload")

    @classmethod
    def create(cls, data: T, message: str) -> "ApiResponse[T]":
        """Wrap a payload in the success envelope."""
        return cls(success=True, message=message, data=data)


class ErrorDetail(BaseModel):
    """Body of an error envelope."""

    code: str = Field(description="Error code for programmatic handling")
    message: str = Field(description="The rule that was violated")
    path: Optional[str] = Field(None, description="Request path")
    method: Optional[str] = Field(None, description="Request method")
    field: Optional[str] = Field(None, description="Offending input field, if any")


class ErrorResponse(BaseModel):
    """Error response model."""

    error: ErrorDetail
