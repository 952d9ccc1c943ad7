"""Cascading attribute-based access checks over the wiki tree.

The decision itself is the pure function ``evaluate_access``; ``AccessService``
only loads the target and its ancestor folders. A denial is a plain ``False``,
never an exception.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..models import WikiNode, NodeKind
from ..repositories.wiki_repository import WikiNodeRepository
from ..schemas.wiki import Requester

logger = logging.getLogger(__name__)


def _matches(value: Optional[str], allowed: Optional[List[str]]) -> bool:
    return value is not None and bool(allowed) and value in allowed


def folder_admits(folder: WikiNode, requester: Requester) -> bool:
    """One folder's own rule, ignoring its ancestors."""
    if folder.is_public:
        return True
    return (
        _matches(requester.rank_id, folder.permission_rank_ids)
        or _matches(requester.position_id, folder.permission_position_ids)
        or _matches(requester.department_id, folder.permission_department_ids)
    )


def evaluate_access(
    target: WikiNode,
    ancestor_folders: Iterable[WikiNode],
    requester: Requester,
) -> bool:
    """Decide access to *target* given its folders ordered root to nearest.

    A private file is denied outright. Otherwise every non-public folder on
    the path must admit the requester; the first one that does not wins.
    """
    if target.is_file and not target.is_public:
        return False
    for folder in ancestor_folders:
        if not folder_admits(folder, requester):
            return False
    return True


class AccessService:
    """Loads tree data for access decisions. Read-only."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = WikiNodeRepository(db)

    def can_access(self, node_id: str, requester: Requester) -> bool:
        target = self.repo.get_by_id(node_id)
        folders = [node for node, _ in self.repo.ancestors(node_id, kind=NodeKind.FOLDER)]
        allowed = evaluate_access(target, folders, requester)
        if not allowed:
            logger.debug("Access denied", extra={"node_id": node_id})
        return allowed

    def accessible_children(self, parent_id: Optional[str], requester: Requester) -> List[WikiNode]:
        """Direct children of *parent_id* that the requester may open."""
        if parent_id is None:
            folders: List[WikiNode] = []
        else:
            self.repo.get_by_id(parent_id)
            folders = [node for node, _ in self.repo.ancestors(parent_id, kind=NodeKind.FOLDER)]
            if not all(folder_admits(folder, requester) for folder in folders):
                return []

        # The parent chain already admits; only each child's own rule is left
        visible = []
        for child in self.repo.children(parent_id):
            own = [child] if child.is_folder else []
            if evaluate_access(child, own, requester):
                visible.append(child)
        return visible
