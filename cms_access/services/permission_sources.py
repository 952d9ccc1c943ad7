"""Permission-bearing entity kinds.

Each kind the reconciler checks is one small adapter: list every live entity
as a plain ``PermissionReference`` and write back replacement permission
lists. References are detached from the session so they can be handed to
worker threads.
"""

from dataclasses import dataclass, field
from typing import List, Protocol

from sqlalchemy.orm import Session

from ..exceptions import EntityNotFoundError, ValidationError
from ..models import EntityKind, NodeKind
from ..repositories.announcement_repository import AnnouncementRepository
from ..repositories.wiki_repository import WikiNodeRepository
from ..schemas.wiki import PermissionSets


@dataclass(frozen=True)
class PermissionReference:
    """Snapshot of one entity's permission lists, built per run."""
    entity_id: str
    entity_kind: str
    name: str
    department_ids: List[str] = field(default_factory=list)
    rank_ids: List[str] = field(default_factory=list)
    position_ids: List[str] = field(default_factory=list)
    employee_ids: List[str] = field(default_factory=list)

    @property
    def has_department_refs(self) -> bool:
        return bool(self.department_ids)


class PermissionReferenceSource(Protocol):
    kind: EntityKind
    carries_employee_ids: bool

    def list_all(self) -> List[PermissionReference]:
        ...

    def get(self, entity_id: str) -> PermissionReference:
        ...

    def apply_permission_update(self, entity_id: str, permissions: PermissionSets) -> None:
        ...


def _reference(kind: EntityKind, entity_id: str, name: str, row, employee_ids=None) -> PermissionReference:
    return PermissionReference(
        entity_id=entity_id,
        entity_kind=kind.value,
        name=name,
        department_ids=list(row.permission_department_ids or []),
        rank_ids=list(row.permission_rank_ids or []),
        position_ids=list(row.permission_position_ids or []),
        employee_ids=list(employee_ids or []),
    )


class WikiPermissionSource:
    """Wiki folders. Files carry no permission lists and are never listed."""

    kind = EntityKind.WIKI
    carries_employee_ids = False

    def __init__(self, db: Session):
        self.db = db
        self.repo = WikiNodeRepository(db)

    def list_all(self) -> List[PermissionReference]:
        return [
            _reference(self.kind, node.id, node.name, node)
            for node in self.repo.list_all(NodeKind.FOLDER)
        ]

    def _load_folder(self, entity_id: str):
        node = self.repo.get_by_id_optional(entity_id)
        if node is None:
            raise EntityNotFoundError(self.kind.value, entity_id)
        if not node.is_folder:
            raise ValidationError(f"Wiki node {entity_id} is a file and has no permission lists", field="entity_id")
        return node

    def get(self, entity_id: str) -> PermissionReference:
        node = self._load_folder(entity_id)
        return _reference(self.kind, node.id, node.name, node)

    def apply_permission_update(self, entity_id: str, permissions: PermissionSets) -> None:
        """Replace the folder's lists. The caller commits."""
        if permissions.employee_ids:
            raise ValidationError("Wiki folders have no employee permission list", field="employee_ids")
        node = self._load_folder(entity_id)
        node.permission_rank_ids = permissions.rank_ids
        node.permission_position_ids = permissions.position_ids
        node.permission_department_ids = permissions.department_ids
        self.db.flush()


class AnnouncementPermissionSource:
    kind = EntityKind.ANNOUNCEMENT
    carries_employee_ids = True

    def __init__(self, db: Session):
        self.db = db
        self.repo = AnnouncementRepository(db)

    def list_all(self) -> List[PermissionReference]:
        return [self._to_reference(a) for a in self.repo.list_all()]

    def get(self, entity_id: str) -> PermissionReference:
        return self._to_reference(self.repo.get_by_id(entity_id))

    def _to_reference(self, announcement) -> PermissionReference:
        return _reference(
            self.kind, announcement.id, announcement.title, announcement,
            employee_ids=announcement.permission_employee_ids,
        )

    def apply_permission_update(self, entity_id: str, permissions: PermissionSets) -> None:
        """Replace the announcement's lists. The caller commits."""
        announcement = self.repo.get_by_id(entity_id)
        announcement.permission_rank_ids = permissions.rank_ids
        announcement.permission_position_ids = permissions.position_ids
        announcement.permission_department_ids = permissions.department_ids
        announcement.permission_employee_ids = permissions.employee_ids
        self.db.flush()


def source_for(kind: EntityKind, db: Session) -> PermissionReferenceSource:
    """The source adapter for *kind*, bound to *db*."""
    kind = EntityKind(kind)
    if kind is EntityKind.WIKI:
        return WikiPermissionSource(db)
    return AnnouncementPermissionSource(db)


__all__ = [
    "PermissionReference",
    "PermissionReferenceSource",
    "WikiPermissionSource",
    "AnnouncementPermissionSource",
    "source_for",
]
