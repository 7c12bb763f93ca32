"""
Standard response envelope shared by every route.
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class StandardResponse(BaseModel, Generic[T]):
    status: bool = True
    message: str = ""
    data: T | None = None


def ok(message: str, data: Any = None) -> dict:
    """Successful envelope as a plain dict (FastAPI serializes nested models)."""
    return {"status": True, "message": message, "data": data}
