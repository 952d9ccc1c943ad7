"""Admin API: permission drift logs, alert dismissal and manual replacement."""

import logging
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from ..database import get_db
from ..models import EntityKind
from ..schemas.permission_log import (
    DismissRequest,
    DismissResult,
    PermissionLogResponse,
    ReplacePermissionsRequest,
    ReplacePermissionsResult,
)
from ..services.permission_replacement_service import PermissionReplacementService
from ..services.reconciliation_log_service import ReconciliationLogService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/permission-logs", tags=["permission-logs"])

# Separate router: replacement is addressed by entity, not by log entry.
replace_router = APIRouter(prefix="/api/admin", tags=["permission-logs"])


@router.get("", response_model=List[PermissionLogResponse])
def list_permission_logs(
    kind: Optional[EntityKind] = Query(None),
    resolved: Optional[bool] = Query(None),
    entity_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """All log entries, newest first."""
    return ReconciliationLogService(db).list_entries(kind, resolved, entity_id)


@router.get("/unread", response_model=List[PermissionLogResponse])
def list_unread_permission_logs(
    admin_id: str = Query(...),
    kind: Optional[EntityKind] = Query(None),
    db: Session = Depends(get_db),
):
    """Open alerts the administrator has not dismissed."""
    return ReconciliationLogService(db).unread(admin_id, kind)


@router.patch("/dismiss", response_model=DismissResult)
def dismiss_permission_logs(data: DismissRequest, db: Session = Depends(get_db)):
    return ReconciliationLogService(db).dismiss(data.log_ids, data.admin_id)


@router.get("/{log_id}", response_model=PermissionLogResponse)
def get_permission_log(log_id: str, db: Session = Depends(get_db)):
    return ReconciliationLogService(db).get(log_id)


@replace_router.patch("/{kind}/{entity_id}/replace-permissions", response_model=ReplacePermissionsResult)
def replace_permissions(
    kind: EntityKind,
    entity_id: str,
    data: ReplacePermissionsRequest,
    db: Session = Depends(get_db),
):
    """Swap stale ids on one entity and resolve its open drift entries."""
    return PermissionReplacementService(db).replace_permissions(
        kind, entity_id, data.replacements, resolved_by=data.admin_id,
    )
