"""Repository for the permission columns of announcements."""

from typing import List

from sqlalchemy.orm import Query

from ..exceptions import EntityNotFoundError
from ..models import Announcement, EntityKind
from .base import BaseRepository


class _AnnouncementNotFound(EntityNotFoundError):
    def __init__(self, announcement_id: str):
        super().__init__(EntityKind.ANNOUNCEMENT.value, announcement_id)


class AnnouncementRepository(BaseRepository[Announcement]):
    """Data access for announcements; soft-deleted rows are invisible."""

    model_class = Announcement
    not_found_error = _AnnouncementNotFound

    def _base_query(self) -> Query:
        return self.db.query(Announcement).filter(Announcement.deleted_at.is_(None))

    def list_all(self) -> List[Announcement]:
        return self._base_query().order_by(Announcement.created_at.asc(), Announcement.id.asc()).all()
