"""Permission log, replacement, and reconciliation run schemas."""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List, Dict, Any


class DepartmentRef(BaseModel):
    """A department id with the display name the identity source reported."""
    id: str
    name: Optional[str] = None


class PermissionLogResponse(BaseModel):
    id: str
    entity_id: str
    entity_kind: str
    invalid_departments: Optional[List[DepartmentRef]] = None
    snapshot_permissions: Dict[str, Any]
    action: str
    note: Optional[str] = None
    detected_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    class Config:
        from_attributes = True


class DismissRequest(BaseModel):
    """Batch "don't show again" for alerts."""
    log_ids: List[str] = Field(min_length=1)
    admin_id: str


class DismissResult(BaseModel):
    dismissed: int
    already_dismissed: int
    not_found: int


class PermissionReplacement(BaseModel):
    """Swap one stale id for a new one inside a single permission list."""
    old_id: str
    new_id: str
    type: str  # 'department', 'employee', 'rank' or 'position'

    @field_validator('type')
    @classmethod
    def validate_type(cls, v: str) -> str:
        v = v.lower()
        if v not in ('department', 'employee', 'rank', 'position'):
            raise ValueError("type must be 'department', 'employee', 'rank' or 'position'")
        return v


class ReplacePermissionsRequest(BaseModel):
    replacements: List[PermissionReplacement] = Field(min_length=1)
    admin_id: str


class ReplacePermissionsResult(BaseModel):
    entity_id: str
    entity_kind: str
    replaced: int
    resolved_log_ids: List[str]


class RunReportResponse(BaseModel):
    """Outcome of one reconciliation run for one kind."""
    run_id: str
    entity_kind: str
    status: str  # completed, noop, failed, skipped
    entities_total: int = 0
    department_ids_checked: int = 0
    auto_resolved: int = 0
    detected: int = 0
    skipped_open: int = 0
    errors: int = 0
    error_message: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
