"""
Common response envelope
"""
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    """Standard envelope: ``{success, message, data}``"""

    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None
