"""Deep module for the wiki folder/file tree.

Callers create, move and delete nodes through this service and never touch
closure rows themselves. Each mutation is one transaction: every check runs
before the first write, and any failure rolls the session back.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..exceptions import CycleError, NotEmptyError, NodeNotFoundError, ValidationError
from ..models import WikiNode, NodeKind
from ..repositories.wiki_repository import WikiNodeRepository
from ..schemas.wiki import PermissionSets

logger = logging.getLogger(__name__)


class HierarchyService:
    """All wiki tree operations behind a narrow interface.

    Public methods:
        create / create_folder / create_file
        get, list_all, children, subtree, ancestor_path
        move               -- re-parent a subtree, refusing cycles
        update             -- rename / reorder
        update_node        -- rename, reorder, visibility and lists in one commit
        update_visibility  -- is_public and folder permission lists
        soft_delete        -- stamp a whole subtree as deleted
        delete_folder_only -- soft delete, refused while children exist
        find_folder_by_path, search_files
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = WikiNodeRepository(db)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, node_id: str) -> WikiNode:
        return self.repo.get_by_id(node_id)

    def list_all(self) -> List[WikiNode]:
        return self.repo.list_all()

    def children(self, parent_id: Optional[str] = None) -> List[WikiNode]:
        """Direct live children, folders first; roots when *parent_id* is None."""
        if parent_id is not None:
            self.repo.get_by_id(parent_id)
        return self.repo.children(parent_id)

    def subtree(self, ancestor_id: str) -> List[Tuple[WikiNode, int]]:
        self.repo.get_by_id(ancestor_id)
        return self.repo.subtree(ancestor_id)

    def ancestor_path(self, descendant_id: str) -> List[Tuple[WikiNode, int]]:
        """Root-first path down to and including *descendant_id*."""
        self.repo.get_by_id(descendant_id)
        return self.repo.ancestors(descendant_id)

    def find_folder_by_path(self, path: str) -> WikiNode:
        """Resolve a slash-separated folder path such as ``/Guides/Onboarding``."""
        segments = [segment for segment in path.strip().split("/") if segment.strip()]
        if not segments:
            raise ValidationError("Folder path cannot be empty", field="path")

        parent_id: Optional[str] = None
        folder: Optional[WikiNode] = None
        for index, segment in enumerate(segments):
            folder = self.repo.find_child_folder(parent_id, segment.strip())
            if folder is None:
                missing = "/" + "/".join(segments[: index + 1])
                raise NodeNotFoundError(missing, message=f"Folder not found: {missing}")
            parent_id = folder.id
        return folder

    def search_files(self, query: str) -> List[Tuple[WikiNode, List[Tuple[WikiNode, int]]]]:
        """Files whose name contains *query*, each with its breadcrumb."""
        query = query.strip()
        if not query:
            return []
        return [(node, self.repo.ancestors(node.id)) for node in self.repo.search_files(query)]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        kind: NodeKind,
        parent_id: Optional[str] = None,
        is_public: bool = True,
        permissions: Optional[PermissionSets] = None,
        order: int = 0,
    ) -> WikiNode:
        """Create a node as the last leaf under *parent_id* (a root when None)."""
        kind = NodeKind(kind)
        name = name.strip()
        if not name:
            raise ValidationError("Name cannot be empty", field="name")

        if kind is NodeKind.FOLDER and permissions is not None:
            self._check_permission_lists(kind.value, permissions)
        parent = self._require_folder_parent(parent_id)

        node = WikiNode(
            id=str(uuid.uuid4()),
            name=name,
            kind=kind.value,
            parent_id=parent_id,
            depth=parent.depth + 1 if parent else 0,
            is_public=is_public,
            order=order,
        )
        # Files only carry is_public; their permission lists stay NULL
        if kind is NodeKind.FOLDER and permissions is not None:
            node.permission_rank_ids = permissions.rank_ids
            node.permission_position_ids = permissions.position_ids
            node.permission_department_ids = permissions.department_ids

        try:
            self.repo.add(node)
            self.repo.link_new_node(node.id, parent_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Created wiki node",
            extra={"node_id": node.id, "kind": node.kind, "parent_id": parent_id},
        )
        return node

    def create_folder(
        self,
        name: str,
        parent_id: Optional[str] = None,
        is_public: bool = True,
        permissions: Optional[PermissionSets] = None,
        order: int = 0,
    ) -> WikiNode:
        return self.create(name, NodeKind.FOLDER, parent_id, is_public, permissions, order)

    def create_file(
        self,
        name: str,
        parent_id: Optional[str] = None,
        is_public: bool = True,
        order: int = 0,
    ) -> WikiNode:
        return self.create(name, NodeKind.FILE, parent_id, is_public, None, order)

    def move(self, node_id: str, new_parent_id: Optional[str]) -> WikiNode:
        """Re-parent *node_id* and its whole subtree.

        Raises CycleError if *new_parent_id* is the node itself or one of its
        descendants (soft-deleted ones included).
        """
        node = self.repo.get_by_id(node_id)

        if new_parent_id is not None:
            subtree_ids = {descendant_id for descendant_id, _ in self.repo.subtree_edges(node_id)}
            if new_parent_id in subtree_ids:
                raise CycleError(node_id, new_parent_id)
        parent = self._require_folder_parent(new_parent_id)

        try:
            subtree = self.repo.relink_subtree(node_id, new_parent_id)
            base_depth = parent.depth + 1 if parent else 0
            offsets = dict(subtree)
            for member in self.repo.arena_nodes(list(offsets)):
                member.depth = base_depth + offsets[member.id]
            node.parent_id = new_parent_id
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Moved wiki node",
            extra={"node_id": node_id, "new_parent_id": new_parent_id, "subtree_size": len(subtree)},
        )
        return node

    def update(self, node_id: str, name: Optional[str] = None, order: Optional[int] = None) -> WikiNode:
        return self.update_node(node_id, name=name, order=order)

    def update_node(
        self,
        node_id: str,
        name: Optional[str] = None,
        order: Optional[int] = None,
        is_public: Optional[bool] = None,
        permissions: Optional[PermissionSets] = None,
    ) -> WikiNode:
        """Apply a partial update in one transaction.

        ``None`` leaves a field as it is, so a folder keeps its lists when only
        ``is_public`` changes. The whole request is validated before the first
        write; a rejected request leaves the node untouched.
        """
        node = self.repo.get_by_id(node_id)
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Name cannot be empty", field="name")
        if permissions is not None:
            self._check_permission_lists(node.kind, permissions)

        try:
            if name is not None:
                node.name = name
            if order is not None:
                node.order = order
            if is_public is not None:
                node.is_public = is_public
            if permissions is not None and node.is_folder:
                node.permission_rank_ids = permissions.rank_ids
                node.permission_position_ids = permissions.position_ids
                node.permission_department_ids = permissions.department_ids
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return node

    def update_visibility(
        self,
        node_id: str,
        is_public: bool,
        rank_ids: Optional[List[str]] = None,
        position_ids: Optional[List[str]] = None,
        department_ids: Optional[List[str]] = None,
    ) -> WikiNode:
        """Set the node's public flag and, for folders, its permission lists."""
        node = self.repo.get_by_id(node_id)
        sets = PermissionSets(
            rank_ids=rank_ids, position_ids=position_ids, department_ids=department_ids
        )
        self._check_permission_lists(node.kind, sets)

        try:
            node.is_public = is_public
            if node.is_folder:
                node.permission_rank_ids = sets.rank_ids
                node.permission_position_ids = sets.position_ids
                node.permission_department_ids = sets.department_ids
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return node

    def soft_delete(self, node_id: str) -> int:
        """Soft-delete *node_id* and every live descendant. Returns the count."""
        self.repo.get_by_id(node_id)
        members = [member for member, _ in self.repo.subtree(node_id)]
        try:
            count = self.repo.mark_deleted(members, datetime.now(timezone.utc))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Soft-deleted wiki subtree", extra={"node_id": node_id, "count": count})
        return count

    def delete_folder_only(self, node_id: str) -> int:
        """Soft-delete an empty folder; refuses while it has live children."""
        node = self.repo.get_by_id(node_id)
        if not node.is_folder:
            raise ValidationError(f"Node {node_id} is not a folder", field="node_id")
        children = self.repo.children(node_id)
        if children:
            raise NotEmptyError(node_id, len(children))
        return self.soft_delete(node_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_permission_lists(self, kind: str, permissions: PermissionSets) -> None:
        """Files carry no lists; folders carry no employee list."""
        if NodeKind(kind) is NodeKind.FILE:
            has_lists = any(
                v is not None
                for v in (permissions.rank_ids, permissions.position_ids,
                          permissions.department_ids, permissions.employee_ids)
            )
            if has_lists:
                raise ValidationError("Files cannot carry permission lists", field="permissions")
        elif permissions.employee_ids:
            raise ValidationError("Wiki folders have no employee permission list", field="employee_ids")

    def _require_folder_parent(self, parent_id: Optional[str]) -> Optional[WikiNode]:
        if parent_id is None:
            return None
        parent = self.repo.get_by_id_optional(parent_id)
        if parent is None:
            raise NodeNotFoundError(parent_id, message=f"Parent node not found: {parent_id}")
        if not parent.is_folder:
            raise ValidationError(f"Parent {parent_id} is a file and cannot hold children", field="parent_id")
        return parent
