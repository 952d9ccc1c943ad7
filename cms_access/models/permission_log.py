"""Permission drift audit trail.

PermissionLogEntry rows are append-only in spirit: the only mutation ever
applied is the DETECTED -> RESOLVED transition. DismissedPermissionLog records
per-administrator "don't show again" choices for alerts.
"""

import enum

from sqlalchemy import Column, String, Text, Integer, DateTime, JSON, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func
from ..database import Base


class EntityKind(str, enum.Enum):
    WIKI = "wiki"
    ANNOUNCEMENT = "announcement"


class PermissionLogAction(str, enum.Enum):
    DETECTED = "detected"
    RESOLVED = "resolved"


class PermissionLogEntry(Base):
    """One drift alert for one entity.

    Fields:
        invalid_departments: [{"id": str, "name": str | None}, ...]
        snapshot_permissions: rank/position ids and the full department
            breakdown at detection time
        resolved_by: administrator id, NULL for system auto-resolve
    """

    __tablename__ = "permission_logs"
    __table_args__ = (
        Index("ix_permission_logs_entity", "entity_kind", "entity_id"),
        Index("ix_permission_logs_action", "action"),
        Index("ix_permission_logs_detected_at", "detected_at"),
        Index("ix_permission_logs_resolved_at", "resolved_at"),
    )

    id = Column(String(50), primary_key=True)
    entity_id = Column(String(50), nullable=False)
    entity_kind = Column(String(20), nullable=False)  # EntityKind value

    invalid_departments = Column(JSON, nullable=True)
    snapshot_permissions = Column(JSON, nullable=False)

    action = Column(String(20), nullable=False)  # PermissionLogAction value
    note = Column(Text, nullable=True)

    detected_at = Column(DateTime(timezone=True), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def is_open(self) -> bool:
        return self.action == PermissionLogAction.DETECTED.value and self.resolved_at is None

    @property
    def invalid_department_ids(self) -> list[str]:
        return [d["id"] for d in (self.invalid_departments or [])]


class DismissedPermissionLog(Base):
    """An administrator's choice to stop seeing an alert in the unread list."""

    __tablename__ = "dismissed_permission_logs"
    __table_args__ = (
        UniqueConstraint("permission_log_id", "dismissed_by", name="uq_dismissed_log_admin"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    permission_log_id = Column(
        String(50),
        ForeignKey("permission_logs.id", ondelete="CASCADE"),
        nullable=False,
    )
    dismissed_by = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
