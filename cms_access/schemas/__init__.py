"""Pydantic schemas for validation and API responses."""

from .wiki import (
    PermissionSets,
    WikiNodeCreate,
    WikiNodeResponse,
    PathEntry,
    FileSearchHit,
    Requester,
    AccessCheckResponse,
    WikiNodeMove,
    WikiNodeUpdate,
)
from .permission_log import (
    DepartmentRef,
    PermissionLogResponse,
    DismissRequest,
    DismissResult,
    PermissionReplacement,
    ReplacePermissionsRequest,
    ReplacePermissionsResult,
    RunReportResponse,
)

__all__ = [
    "PermissionSets",
    "WikiNodeCreate",
    "WikiNodeResponse",
    "PathEntry",
    "FileSearchHit",
    "Requester",
    "AccessCheckResponse",
    "WikiNodeMove",
    "WikiNodeUpdate",
    "DepartmentRef",
    "PermissionLogResponse",
    "DismissRequest",
    "DismissResult",
    "PermissionReplacement",
    "ReplacePermissionsRequest",
    "ReplacePermissionsResult",
    "RunReportResponse",
]
