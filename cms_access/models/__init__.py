"""Database models."""

from .wiki_node import WikiNode, WikiClosure, NodeKind
from .announcement import Announcement
from .permission_log import (
    PermissionLogEntry,
    DismissedPermissionLog,
    PermissionLogAction,
    EntityKind,
)

__all__ = [
    "WikiNode", "WikiClosure", "NodeKind",
    "Announcement",
    "PermissionLogEntry", "DismissedPermissionLog",
    "PermissionLogAction", "EntityKind",
]
