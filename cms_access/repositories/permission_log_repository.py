"""Repository for permission drift log entries and their dismissals."""

from typing import List, Optional, Set

from ..exceptions import PermissionLogNotFoundError
from ..models import PermissionLogEntry, DismissedPermissionLog, PermissionLogAction
from .base import BaseRepository


class PermissionLogRepository(BaseRepository[PermissionLogEntry]):
    """Data access for the drift audit trail.

    "Open" always means action = detected AND resolved_at IS NULL.
    """

    model_class = PermissionLogEntry
    not_found_error = PermissionLogNotFoundError

    def _open_query(self, entity_kind: str):
        return self.db.query(PermissionLogEntry).filter(
            PermissionLogEntry.entity_kind == entity_kind,
            PermissionLogEntry.action == PermissionLogAction.DETECTED.value,
            PermissionLogEntry.resolved_at.is_(None),
        )

    def add(self, entry: PermissionLogEntry) -> PermissionLogEntry:
        self.db.add(entry)
        self.db.flush()
        return entry

    def find_open(self, entity_kind: str, entity_id: str) -> Optional[PermissionLogEntry]:
        """Most recent open entry for one entity, if any."""
        return (
            self._open_query(entity_kind)
            .filter(PermissionLogEntry.entity_id == entity_id)
            .order_by(PermissionLogEntry.detected_at.desc())
            .first()
        )

    def list_open(self, entity_kind: str, entity_id: Optional[str] = None) -> List[PermissionLogEntry]:
        query = self._open_query(entity_kind)
        if entity_id is not None:
            query = query.filter(PermissionLogEntry.entity_id == entity_id)
        return query.order_by(PermissionLogEntry.detected_at.asc()).all()

    def open_entity_ids(self, entity_kind: str) -> Set[str]:
        rows = self._open_query(entity_kind).with_entities(PermissionLogEntry.entity_id).all()
        return {entity_id for (entity_id,) in rows}

    def list_entries(
        self,
        entity_kind: Optional[str] = None,
        resolved: Optional[bool] = None,
        entity_id: Optional[str] = None,
    ) -> List[PermissionLogEntry]:
        """All entries, newest first, optionally filtered.

        *resolved* True keeps entries with resolved_at set, False keeps open
        ones, None keeps everything.
        """
        query = self.db.query(PermissionLogEntry)
        if entity_kind is not None:
            query = query.filter(PermissionLogEntry.entity_kind == entity_kind)
        if entity_id is not None:
            query = query.filter(PermissionLogEntry.entity_id == entity_id)
        if resolved is True:
            query = query.filter(PermissionLogEntry.resolved_at.isnot(None))
        elif resolved is False:
            query = query.filter(PermissionLogEntry.resolved_at.is_(None))
        return query.order_by(PermissionLogEntry.detected_at.desc()).all()

    # ------------------------------------------------------------------
    # Dismissals
    # ------------------------------------------------------------------

    def dismissed_log_ids(self, admin_id: str) -> Set[str]:
        rows = (
            self.db.query(DismissedPermissionLog.permission_log_id)
            .filter(DismissedPermissionLog.dismissed_by == admin_id)
            .all()
        )
        return {log_id for (log_id,) in rows}

    def add_dismissal(self, log_id: str, admin_id: str) -> DismissedPermissionLog:
        dismissal = DismissedPermissionLog(permission_log_id=log_id, dismissed_by=admin_id)
        self.db.add(dismissal)
        self.db.flush()
        return dismissal
