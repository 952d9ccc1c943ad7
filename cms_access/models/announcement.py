"""Announcement model.

Only the permission columns are owned here; announcement content, surveys and
attachments are managed by the content services.
"""

from sqlalchemy import Column, String, Boolean, DateTime, JSON, Index
from sqlalchemy.sql import func
from ..database import Base


class Announcement(Base):
    """Flat permission-bearing content record."""

    __tablename__ = "announcements"
    __table_args__ = (
        Index("ix_announcements_deleted_at", "deleted_at"),
    )

    id = Column(String(50), primary_key=True)
    title = Column(String(500), nullable=False)
    is_public = Column(Boolean, nullable=False, default=True)

    permission_rank_ids = Column(JSON, nullable=True)
    permission_position_ids = Column(JSON, nullable=True)
    permission_department_ids = Column(JSON, nullable=True)
    permission_employee_ids = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True, default=None)
