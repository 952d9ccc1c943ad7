"""Wiki tree models: nodes and their closure table.

The tree is an arena of nodes addressed by id. ``parent_id`` records the
direct parent, but every traversal goes through ``wiki_closures``, which holds
one row per (ancestor, descendant) pair including a depth-0 self row.
"""

import enum

from sqlalchemy import Column, String, Integer, Boolean, DateTime, JSON, ForeignKey, Index
from sqlalchemy.sql import func
from ..database import Base


class NodeKind(str, enum.Enum):
    FOLDER = "folder"
    FILE = "file"


class WikiNode(Base):
    """A folder or file in the wiki tree.

    Permission lists are only meaningful on folders; files always store NULL
    and expose ``is_public`` as their single switch (False = deny outright,
    True = defer to ancestor folders).
    """

    __tablename__ = "wiki_nodes"
    __table_args__ = (
        Index("ix_wiki_nodes_parent_id", "parent_id"),
        Index("ix_wiki_nodes_kind", "kind"),
        Index("ix_wiki_nodes_deleted_at", "deleted_at"),
    )

    id = Column(String(50), primary_key=True)
    name = Column(String(500), nullable=False)
    kind = Column(String(10), nullable=False)  # NodeKind value

    # Direct parent; NULL for roots. Never followed for traversal.
    parent_id = Column(String(50), ForeignKey("wiki_nodes.id"), nullable=True)

    # Cached ancestor count (0 = root), refreshed on move
    depth = Column(Integer, nullable=False, default=0)

    is_public = Column(Boolean, nullable=False, default=True)
    permission_rank_ids = Column(JSON, nullable=True)
    permission_position_ids = Column(JSON, nullable=True)
    permission_department_ids = Column(JSON, nullable=True)

    # Sibling sort key
    order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Soft delete (NULL = live)
    deleted_at = Column(DateTime(timezone=True), nullable=True, default=None)

    @property
    def is_folder(self) -> bool:
        return self.kind == NodeKind.FOLDER.value

    @property
    def is_file(self) -> bool:
        return self.kind == NodeKind.FILE.value


class WikiClosure(Base):
    """Transitive closure of the parent relation.

    ``depth`` is the number of edges between ancestor and descendant. Rows are
    kept when either endpoint is soft-deleted; readers join to ``wiki_nodes``
    and filter on ``deleted_at``.
    """

    __tablename__ = "wiki_closures"
    __table_args__ = (
        Index("ix_wiki_closures_descendant", "descendant_id"),
    )

    ancestor_id = Column(String(50), ForeignKey("wiki_nodes.id"), primary_key=True)
    descendant_id = Column(String(50), ForeignKey("wiki_nodes.id"), primary_key=True)
    depth = Column(Integer, nullable=False)
