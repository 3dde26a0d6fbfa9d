"""
SQLAlchemy declarative base and shared column mixin

Every ORM model inherits from both ``Base`` and ``BaseModel``:

    class GradeDB(Base, BaseModel):
        __tablename__ = "grades"
        ...

``BaseModel`` contributes the UUID primary key and the audit timestamps.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utc_now():
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class BaseModel:
    """Common columns: string UUID id, created_at, updated_at"""

    id = Column(String(36), primary_key=True, default=_new_id)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False)

    def to_dict(self) -> dict:
        """Column values as a plain dict (relationships excluded)"""
        return {column.name: getattr(self, column.key, None) for column in self.__table__.columns}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id}>"
