"""
Common schemas used across the API.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Schema whose JSON field names are camelCase (firstName, passwordConfirm)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Pagination(BaseModel):
    page: int = Field(description="Current page number")
    limit: int = Field(description="Items per page")
    total: int = Field(description="Total number of items matching filters")
    pages: int = Field(description="Total number of pages")

    @classmethod
    def create(cls, page: int, limit: int, total: int) -> "Pagination":
        pages = (total + limit - 1) // limit if limit > 0 else 0
        return cls(page=page, limit=limit, total=total, pages=pages)


class MessageResponse(BaseModel):
    status: str = "success"
    message: str


class ErrorResponse(BaseModel):
    """Error response format."""

    status: str = Field(description="'fail' for client errors, 'error' for server errors")
    error: str = Field(description="Stable error code")
    message: str = Field(description="Human-readable error message")
    details: Optional[Any] = None
    request_id: Optional[str] = None
