"""Wiki tree repository: node rows plus closure-table maintenance.

Owns all tree query logic including soft-delete filtering. Every read joins
closure rows to live nodes, so callers never see deleted nodes even though
their closure rows are kept.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import case
from sqlalchemy.orm import Query

from ..exceptions import NodeNotFoundError
from ..models import WikiNode, WikiClosure, NodeKind
from .base import BaseRepository


def _escape_like(text: str) -> str:
    """Make LIKE wildcards in user input match literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class WikiNodeRepository(BaseRepository[WikiNode]):
    """Repository for wiki nodes and their closure rows.

    Mutating helpers only add/flush; the service owns commit and rollback so a
    whole create or move is one transaction.
    """

    model_class = WikiNode
    not_found_error = NodeNotFoundError

    def _base_query(self) -> Query:
        """Exclude soft-deleted nodes from all default queries."""
        return self.db.query(WikiNode).filter(WikiNode.deleted_at.is_(None))

    @staticmethod
    def _sibling_order():
        """Folders first, then the explicit order key, then name."""
        return (
            case((WikiNode.kind == NodeKind.FOLDER.value, 0), else_=1),
            WikiNode.order.asc(),
            WikiNode.name.asc(),
        )

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add(self, node: WikiNode) -> WikiNode:
        self.db.add(node)
        self.db.flush()
        return node

    def list_all(self, kind: Optional[NodeKind] = None) -> List[WikiNode]:
        """All live nodes ordered by depth, then sibling order."""
        query = self._base_query()
        if kind is not None:
            query = query.filter(WikiNode.kind == kind.value)
        return query.order_by(WikiNode.depth.asc(), *self._sibling_order()).all()

    def children(self, parent_id: Optional[str]) -> List[WikiNode]:
        """Direct live children of *parent_id*; roots when *parent_id* is None."""
        query = self._base_query()
        if parent_id is None:
            query = query.filter(WikiNode.parent_id.is_(None))
        else:
            query = query.filter(WikiNode.parent_id == parent_id)
        return query.order_by(*self._sibling_order()).all()

    def find_child_folder(self, parent_id: Optional[str], name: str) -> Optional[WikiNode]:
        query = self._base_query().filter(
            WikiNode.kind == NodeKind.FOLDER.value,
            WikiNode.name == name,
        )
        if parent_id is None:
            query = query.filter(WikiNode.parent_id.is_(None))
        else:
            query = query.filter(WikiNode.parent_id == parent_id)
        return query.order_by(WikiNode.order.asc()).first()

    def search_files(self, text: str) -> List[WikiNode]:
        """Case-insensitive substring search over live file names."""
        return (
            self._base_query()
            .filter(
                WikiNode.kind == NodeKind.FILE.value,
                WikiNode.name.ilike(f"%{_escape_like(text)}%", escape="\\"),
            )
            .order_by(WikiNode.updated_at.desc(), WikiNode.name.asc())
            .all()
        )

    # ------------------------------------------------------------------
    # Closure reads
    # ------------------------------------------------------------------

    def subtree(self, ancestor_id: str) -> List[Tuple[WikiNode, int]]:
        """Live descendants of *ancestor_id* (itself included) with their distance."""
        rows = (
            self.db.query(WikiNode, WikiClosure.depth)
            .join(WikiClosure, WikiClosure.descendant_id == WikiNode.id)
            .filter(
                WikiClosure.ancestor_id == ancestor_id,
                WikiNode.deleted_at.is_(None),
            )
            .order_by(WikiClosure.depth.asc(), *self._sibling_order())
            .all()
        )
        return [(node, depth) for node, depth in rows]

    def ancestors(
        self, descendant_id: str, kind: Optional[NodeKind] = None
    ) -> List[Tuple[WikiNode, int]]:
        """Live ancestors of *descendant_id* (itself included), root first."""
        query = (
            self.db.query(WikiNode, WikiClosure.depth)
            .join(WikiClosure, WikiClosure.ancestor_id == WikiNode.id)
            .filter(
                WikiClosure.descendant_id == descendant_id,
                WikiNode.deleted_at.is_(None),
            )
        )
        if kind is not None:
            query = query.filter(WikiNode.kind == kind.value)
        rows = query.order_by(WikiClosure.depth.desc()).all()
        return [(node, depth) for node, depth in rows]

    def arena_nodes(self, node_ids: List[str]) -> List[WikiNode]:
        """Nodes by id regardless of soft-delete state."""
        if not node_ids:
            return []
        return self.db.query(WikiNode).filter(WikiNode.id.in_(node_ids)).all()

    def subtree_edges(self, ancestor_id: str) -> List[Tuple[str, int]]:
        """(descendant_id, depth) for every closure row under *ancestor_id*.

        Includes soft-deleted descendants: cycle checks and moves must see the
        whole arena, not just what readers see.
        """
        rows = (
            self.db.query(WikiClosure.descendant_id, WikiClosure.depth)
            .filter(WikiClosure.ancestor_id == ancestor_id)
            .all()
        )
        return [(descendant_id, depth) for descendant_id, depth in rows]

    def ancestor_edges(self, descendant_id: str) -> List[Tuple[str, int]]:
        """(ancestor_id, depth) for every closure row above *descendant_id*, self included."""
        rows = (
            self.db.query(WikiClosure.ancestor_id, WikiClosure.depth)
            .filter(WikiClosure.descendant_id == descendant_id)
            .all()
        )
        return [(ancestor_id, depth) for ancestor_id, depth in rows]

    # ------------------------------------------------------------------
    # Closure writes
    # ------------------------------------------------------------------

    def link_new_node(self, node_id: str, parent_id: Optional[str]) -> None:
        """Insert the closure rows for a freshly created leaf node."""
        rows = [WikiClosure(ancestor_id=node_id, descendant_id=node_id, depth=0)]
        if parent_id is not None:
            for ancestor_id, depth in self.ancestor_edges(parent_id):
                rows.append(
                    WikiClosure(ancestor_id=ancestor_id, descendant_id=node_id, depth=depth + 1)
                )
        self.db.add_all(rows)
        self.db.flush()

    def relink_subtree(self, node_id: str, new_parent_id: Optional[str]) -> List[Tuple[str, int]]:
        """Detach the subtree rooted at *node_id* from its old upper chain and
        attach it under *new_parent_id*.

        Rows inside the subtree are untouched; rows linking an outside
        ancestor to an inside descendant are replaced.

        Returns:
            The subtree's (descendant_id, depth-from-node) pairs, for depth refresh.
        """
        subtree = self.subtree_edges(node_id)
        subtree_ids = [descendant_id for descendant_id, _ in subtree]

        self.db.query(WikiClosure).filter(
            WikiClosure.descendant_id.in_(subtree_ids),
            WikiClosure.ancestor_id.notin_(subtree_ids),
        ).delete(synchronize_session="fetch")

        if new_parent_id is not None:
            upper = self.ancestor_edges(new_parent_id)
            self.db.add_all([
                WikiClosure(
                    ancestor_id=ancestor_id,
                    descendant_id=descendant_id,
                    depth=up_depth + down_depth + 1,
                )
                for ancestor_id, up_depth in upper
                for descendant_id, down_depth in subtree
            ])

        self.db.flush()
        return subtree

    def mark_deleted(self, nodes: List[WikiNode], when: datetime) -> int:
        """Stamp deleted_at on every node in *nodes*. Closure rows stay."""
        for node in nodes:
            node.deleted_at = when
        self.db.flush()
        return len(nodes)
