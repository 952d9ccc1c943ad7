"""Reconciliation log: the DETECTED -> RESOLVED audit trail of permission drift.

At most one entry per entity is open (DETECTED with no resolved_at) at any
time. RESOLVED is terminal; a later detection opens a fresh entry.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Set

from sqlalchemy.orm import Session

from ..models import EntityKind, PermissionLogAction, PermissionLogEntry
from ..repositories.permission_log_repository import PermissionLogRepository
from ..schemas.permission_log import DismissResult
from .drift_detector import DepartmentMap, DriftFinding, all_reactivated

logger = logging.getLogger(__name__)

AUTO_RESOLVE_NOTE = "Automatically resolved: every previously inactive department is active again"


class ReconciliationLogService:
    """Reads and transitions permission log entries.

    Public methods:
        open_entity_ids   -- entity ids with an open entry, per kind
        open_invalid_ids  -- invalid department ids referenced by open entries
        auto_resolve      -- close entries whose departments came back
        record_detected   -- open an entry unless one is already open
        resolve_manually  -- close entries after an administrator fix
        list_entries, unread, dismiss
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = PermissionLogRepository(db)

    # ------------------------------------------------------------------
    # Reconciliation side
    # ------------------------------------------------------------------

    def open_entity_ids(self, kind: EntityKind) -> Set[str]:
        return self.repo.open_entity_ids(EntityKind(kind).value)

    def open_invalid_ids(self, kind: EntityKind) -> Set[str]:
        ids: Set[str] = set()
        for entry in self.repo.list_open(EntityKind(kind).value):
            ids.update(entry.invalid_department_ids)
        return ids

    def auto_resolve(self, kind: EntityKind, department_map: DepartmentMap) -> List[PermissionLogEntry]:
        """Resolve every open entry of *kind* whose invalid ids are all active now."""
        now = datetime.now(timezone.utc)
        resolved = []
        for entry in self.repo.list_open(EntityKind(kind).value):
            if not all_reactivated(entry.invalid_department_ids, department_map):
                continue
            entry.action = PermissionLogAction.RESOLVED.value
            entry.resolved_at = now
            entry.resolved_by = None
            entry.note = AUTO_RESOLVE_NOTE
            resolved.append(entry)

        if resolved:
            self.db.commit()
            for entry in resolved:
                logger.info(
                    "Permission log auto-resolved",
                    extra={"log_id": entry.id, "entity_id": entry.entity_id, "entity_kind": entry.entity_kind},
                )
        return resolved

    def record_detected(self, finding: DriftFinding) -> Optional[PermissionLogEntry]:
        """Open a DETECTED entry for *finding*; None if one is already open."""
        reference = finding.reference
        if self.repo.find_open(reference.entity_kind, reference.entity_id) is not None:
            return None

        entry = PermissionLogEntry(
            id=str(uuid.uuid4()),
            entity_id=reference.entity_id,
            entity_kind=reference.entity_kind,
            invalid_departments=finding.invalid,
            snapshot_permissions=finding.snapshot(),
            action=PermissionLogAction.DETECTED.value,
            note=finding.note(),
            detected_at=datetime.now(timezone.utc),
        )
        self.repo.add(entry)
        self.db.commit()
        logger.info(
            "Permission drift detected",
            extra={
                "log_id": entry.id,
                "entity_id": entry.entity_id,
                "entity_kind": entry.entity_kind,
                "invalid_department_ids": finding.invalid_ids,
            },
        )
        return entry

    # ------------------------------------------------------------------
    # Administrator side
    # ------------------------------------------------------------------

    def resolve_manually(
        self,
        kind: EntityKind,
        entity_id: str,
        resolved_by: str,
        note: str,
        snapshot: dict,
    ) -> List[PermissionLogEntry]:
        """Close the entity's open entries after a replacement. Does not commit.

        When nothing was open, a RESOLVED entry is appended so the replacement
        still shows up in the trail.
        """
        kind = EntityKind(kind)
        now = datetime.now(timezone.utc)
        entries = self.repo.list_open(kind.value, entity_id)
        for entry in entries:
            entry.action = PermissionLogAction.RESOLVED.value
            entry.resolved_at = now
            entry.resolved_by = resolved_by
            entry.note = note

        if not entries:
            entries = [self.repo.add(PermissionLogEntry(
                id=str(uuid.uuid4()),
                entity_id=entity_id,
                entity_kind=kind.value,
                invalid_departments=None,
                snapshot_permissions=snapshot,
                action=PermissionLogAction.RESOLVED.value,
                note=note,
                detected_at=now,
                resolved_at=now,
                resolved_by=resolved_by,
            ))]
        self.db.flush()
        return entries

    def list_entries(
        self,
        kind: Optional[EntityKind] = None,
        resolved: Optional[bool] = None,
        entity_id: Optional[str] = None,
    ) -> List[PermissionLogEntry]:
        kind_value = EntityKind(kind).value if kind is not None else None
        return self.repo.list_entries(kind_value, resolved, entity_id)

    def get(self, log_id: str) -> PermissionLogEntry:
        return self.repo.get_by_id(log_id)

    def unread(self, admin_id: str, kind: Optional[EntityKind] = None) -> List[PermissionLogEntry]:
        """Open entries this administrator has not dismissed, newest first."""
        dismissed = self.repo.dismissed_log_ids(admin_id)
        return [
            entry for entry in self.list_entries(kind, resolved=False)
            if entry.is_open and entry.id not in dismissed
        ]

    def dismiss(self, log_ids: List[str], admin_id: str) -> DismissResult:
        """Batch "don't show again". Idempotent per (log, administrator)."""
        dismissed = already = missing = 0
        known = {entry.id for entry in self.repo.get_many(set(log_ids))}
        already_dismissed = self.repo.dismissed_log_ids(admin_id)

        for log_id in dict.fromkeys(log_ids):
            if log_id not in known:
                missing += 1
            elif log_id in already_dismissed:
                already += 1
            else:
                self.repo.add_dismissal(log_id, admin_id)
                dismissed += 1
        self.db.commit()

        logger.info(
            "Permission logs dismissed",
            extra={"admin_id": admin_id, "dismissed": dismissed, "already": already, "not_found": missing},
        )
        return DismissResult(dismissed=dismissed, already_dismissed=already, not_found=missing)
