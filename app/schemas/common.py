from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by every endpoint."""

    success: bool = True
    message: str | None = None
    count: int | None = None
    data: T | None = None
