"""Administrator-driven replacement of stale permission ids.

Typical use: a department was reorganised, so every folder or announcement
still pointing at the old department id gets the new id instead. Employee ids
are swapped the same way on announcements, the only kind with an employee
list. A successful replacement closes the entity's open drift entries.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..exceptions import ValidationError
from ..models import EntityKind
from ..schemas.permission_log import PermissionReplacement, ReplacePermissionsResult
from ..schemas.wiki import PermissionSets
from .permission_sources import source_for
from .reconciliation_log_service import ReconciliationLogService

logger = logging.getLogger(__name__)

_FIELD_BY_TYPE = {
    "department": "department_ids",
    "employee": "employee_ids",
    "rank": "rank_ids",
    "position": "position_ids",
}


def _swap(ids: Optional[List[str]], old_id: str, new_id: str):
    """Replace *old_id* with *new_id*, keeping order. Returns (ids, swapped)."""
    if not ids or old_id not in ids:
        return ids, 0
    swapped = 0
    result: List[str] = []
    for item in ids:
        if item == old_id:
            item = new_id
            swapped += 1
        if item not in result:
            result.append(item)
    return result, swapped


class PermissionReplacementService:
    def __init__(self, db: Session):
        self.db = db
        self.log_service = ReconciliationLogService(db)

    def replace_permissions(
        self,
        kind: EntityKind,
        entity_id: str,
        replacements: List[PermissionReplacement],
        resolved_by: str,
    ) -> ReplacePermissionsResult:
        """Apply *replacements* to one entity and resolve its open log entries.

        Replacements whose old id is not on the entity are ignored. Raises
        EntityNotFoundError for an unknown or deleted entity, and
        ValidationError for employee replacements on a kind without an
        employee list.
        """
        kind = EntityKind(kind)
        source = source_for(kind, self.db)
        reference = source.get(entity_id)
        if not source.carries_employee_ids and any(r.type == "employee" for r in replacements):
            raise ValidationError(
                f"{kind.value} entities have no employee permission list", field="replacements",
            )

        lists = {
            "department_ids": list(reference.department_ids),
            "rank_ids": list(reference.rank_ids),
            "position_ids": list(reference.position_ids),
        }
        if source.carries_employee_ids:
            lists["employee_ids"] = list(reference.employee_ids)
        replaced = 0
        for replacement in replacements:
            field = _FIELD_BY_TYPE[replacement.type]
            lists[field], swapped = _swap(lists[field], replacement.old_id, replacement.new_id)
            replaced += swapped

        updated = PermissionSets(**lists)
        note = "Permissions replaced by administrator: " + ", ".join(
            f"{r.type} {r.old_id} -> {r.new_id}" for r in replacements
        )
        try:
            source.apply_permission_update(entity_id, updated)
            entries = self.log_service.resolve_manually(
                kind, entity_id, resolved_by, note, snapshot=updated.model_dump(),
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Permissions replaced",
            extra={
                "entity_id": entity_id,
                "entity_kind": kind.value,
                "replaced": replaced,
                "resolved_by": resolved_by,
            },
        )
        return ReplacePermissionsResult(
            entity_id=entity_id,
            entity_kind=kind.value,
            replaced=replaced,
            resolved_log_ids=[entry.id for entry in entries],
        )
