"""
Credential domain models: sticker (skill) → badge (competency) → plaque (outcome)
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator

from .rubric import RubricLevel


class CredentialType(str, Enum):
    STICKER = "sticker"
    BADGE = "badge"
    PLAQUE = "plaque"


class Credential(BaseModel):
    """An awarded credential; unique per (student, type, scope)"""

    id: str
    student_id: str
    credential_type: CredentialType
    scope_id: str
    title: str
    description: Optional[str] = None
    icon_url: Optional[str] = None
    rubric_level: Optional[RubricLevel] = None
    awarded_at: datetime
    awarded_by: Optional[str] = None
    approved_by: Optional[str] = None

    class Config:
        from_attributes = True

    @field_validator("rubric_level", mode="before")
    @classmethod
    def _parse_level(cls, value):
        return None if value is None else RubricLevel.parse(value)
