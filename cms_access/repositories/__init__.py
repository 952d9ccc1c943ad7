"""Data access repositories."""

from .base import BaseRepository
from .wiki_repository import WikiNodeRepository
from .announcement_repository import AnnouncementRepository
from .permission_log_repository import PermissionLogRepository

__all__ = [
    "BaseRepository",
    "WikiNodeRepository",
    "AnnouncementRepository",
    "PermissionLogRepository",
]
