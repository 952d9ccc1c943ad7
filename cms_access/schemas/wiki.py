"""Wiki tree and access schemas."""

from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Optional, List


class PermissionSets(BaseModel):
    """Rank / position / department / employee id lists attached to a folder or announcement.

    ``None`` means "no list" and is stored as NULL; an empty list is kept as-is.
    Only announcements carry ``employee_ids``.
    """
    rank_ids: Optional[List[str]] = None
    position_ids: Optional[List[str]] = None
    department_ids: Optional[List[str]] = None
    employee_ids: Optional[List[str]] = None

    @field_validator('rank_ids', 'position_ids', 'department_ids', 'employee_ids')
    @classmethod
    def dedupe(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        """Drop blanks and duplicates while keeping first-seen order."""
        if v is None:
            return None
        seen: list[str] = []
        for item in v:
            item = item.strip()
            if item and item not in seen:
                seen.append(item)
        return seen


class WikiNodeCreate(BaseModel):
    """Schema for creating a folder or file."""
    name: str
    kind: str  # 'folder' or 'file'
    parent_id: Optional[str] = None
    is_public: bool = True
    permissions: Optional[PermissionSets] = None
    order: int = 0

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be empty")
        if '/' in v:
            raise ValueError("Name cannot contain '/'")
        return v

    @field_validator('kind')
    @classmethod
    def validate_kind(cls, v: str) -> str:
        v = v.lower()
        if v not in ('folder', 'file'):
            raise ValueError("kind must be 'folder' or 'file'")
        return v


class WikiNodeResponse(BaseModel):
    """Schema for node responses."""
    id: str
    name: str
    kind: str
    parent_id: Optional[str] = None
    depth: int
    is_public: bool
    permission_rank_ids: Optional[List[str]] = None
    permission_position_ids: Optional[List[str]] = None
    permission_department_ids: Optional[List[str]] = None
    order: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PathEntry(BaseModel):
    """One step of a breadcrumb or subtree listing."""
    node: WikiNodeResponse
    depth: int


class FileSearchHit(BaseModel):
    """A matching file together with its breadcrumb."""
    node: WikiNodeResponse
    path: List[PathEntry]


class Requester(BaseModel):
    """Attributes of the employee asking for access.

    Missing attributes never match a folder's permission list.
    """
    department_id: Optional[str] = None
    rank_id: Optional[str] = None
    position_id: Optional[str] = None


class AccessCheckResponse(BaseModel):
    node_id: str
    allowed: bool


class WikiNodeMove(BaseModel):
    new_parent_id: Optional[str] = None


class WikiNodeUpdate(BaseModel):
    """Rename / reorder and visibility changes; omitted fields are left alone."""
    name: Optional[str] = None
    order: Optional[int] = None
    is_public: Optional[bool] = None
    permissions: Optional[PermissionSets] = None
