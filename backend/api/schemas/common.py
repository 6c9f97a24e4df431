"""Common schemas used across the API."""

from typing import Annotated, Generic, TypeVar

from fastapi import Path
from pydantic import BaseModel, Field

T = TypeVar("T")

UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"

# Identifier in a request body
UUIDStr = Annotated[str, Field(pattern=UUID_PATTERN, description="UUID")]


def uuid_path(description: str):
    """Path parameter that must be a UUID."""
    return Path(pattern=UUID_PATTERN, description=description)


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str


class PageResponse(BaseModel, Generic[T]):
    """One page of a list endpoint."""

    items: list[T]
    total: int = Field(description="Total matching items")
    page: int = Field(description="Page number (1-indexed)")
    limit: int = Field(description="Items per page")
    total_pages: int
