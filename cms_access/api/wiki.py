"""Wiki tree API: node CRUD, move, breadcrumbs, search and access checks.

Single router delegating to HierarchyService and AccessService.
"""

import logging
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from ..database import get_db
from ..models import NodeKind
from ..schemas.wiki import (
    AccessCheckResponse,
    FileSearchHit,
    PathEntry,
    Requester,
    WikiNodeCreate,
    WikiNodeMove,
    WikiNodeResponse,
    WikiNodeUpdate,
)
from ..services.access_service import AccessService
from ..services.hierarchy_service import HierarchyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wiki", tags=["wiki"])


def _requester(
    department_id: Optional[str] = Query(None),
    rank_id: Optional[str] = Query(None),
    position_id: Optional[str] = Query(None),
) -> Requester:
    return Requester(department_id=department_id, rank_id=rank_id, position_id=position_id)


def _path(entries) -> List[PathEntry]:
    return [PathEntry(node=WikiNodeResponse.model_validate(node), depth=depth) for node, depth in entries]


# -- Tree reads -------------------------------------------------------------

@router.get("/roots", response_model=List[WikiNodeResponse])
def list_roots(
    requester: Requester = Depends(_requester),
    filtered: bool = Query(False, description="Only nodes the requester may open"),
    db: Session = Depends(get_db),
):
    if filtered:
        return AccessService(db).accessible_children(None, requester)
    return HierarchyService(db).children(None)


@router.get("/search", response_model=List[FileSearchHit])
def search_files(q: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """Case-insensitive file name search; each hit carries its breadcrumb."""
    hits = HierarchyService(db).search_files(q)
    return [
        FileSearchHit(node=WikiNodeResponse.model_validate(node), path=_path(path))
        for node, path in hits
    ]


@router.get("/by-path", response_model=WikiNodeResponse)
def get_folder_by_path(path: str = Query(...), db: Session = Depends(get_db)):
    return HierarchyService(db).find_folder_by_path(path)


@router.get("/{node_id}", response_model=WikiNodeResponse)
def get_node(node_id: str, db: Session = Depends(get_db)):
    return HierarchyService(db).get(node_id)


@router.get("/{node_id}/children", response_model=List[WikiNodeResponse])
def list_children(
    node_id: str,
    requester: Requester = Depends(_requester),
    filtered: bool = Query(False, description="Only nodes the requester may open"),
    db: Session = Depends(get_db),
):
    if filtered:
        return AccessService(db).accessible_children(node_id, requester)
    return HierarchyService(db).children(node_id)


@router.get("/{node_id}/subtree", response_model=List[PathEntry])
def get_subtree(node_id: str, db: Session = Depends(get_db)):
    return _path(HierarchyService(db).subtree(node_id))


@router.get("/{node_id}/breadcrumb", response_model=List[PathEntry])
def get_breadcrumb(node_id: str, db: Session = Depends(get_db)):
    """Root-first path to the node, the node itself last."""
    return _path(HierarchyService(db).ancestor_path(node_id))


@router.get("/{node_id}/access", response_model=AccessCheckResponse)
def check_access(
    node_id: str,
    requester: Requester = Depends(_requester),
    db: Session = Depends(get_db),
):
    allowed = AccessService(db).can_access(node_id, requester)
    return AccessCheckResponse(node_id=node_id, allowed=allowed)


# -- Mutations --------------------------------------------------------------

@router.post("", response_model=WikiNodeResponse, status_code=201)
def create_node(data: WikiNodeCreate, db: Session = Depends(get_db)):
    return HierarchyService(db).create(
        name=data.name,
        kind=NodeKind(data.kind),
        parent_id=data.parent_id,
        is_public=data.is_public,
        permissions=data.permissions,
        order=data.order,
    )


@router.patch("/{node_id}", response_model=WikiNodeResponse)
def update_node(node_id: str, data: WikiNodeUpdate, db: Session = Depends(get_db)):
    return HierarchyService(db).update_node(
        node_id,
        name=data.name,
        order=data.order,
        is_public=data.is_public,
        permissions=data.permissions,
    )


@router.put("/{node_id}/move", response_model=WikiNodeResponse)
def move_node(node_id: str, data: WikiNodeMove, db: Session = Depends(get_db)):
    return HierarchyService(db).move(node_id, data.new_parent_id)


@router.delete("/{node_id}")
def delete_node(
    node_id: str,
    folder_only: bool = Query(False, description="Refuse when the folder still has children"),
    db: Session = Depends(get_db),
):
    service = HierarchyService(db)
    if folder_only:
        deleted = service.delete_folder_only(node_id)
    else:
        deleted = service.soft_delete(node_id)
    return {"node_id": node_id, "deleted": deleted}
