"""API routes."""

from .wiki import router as wiki_router
from .permission_validation import router as permission_validation_router
from .permission_logs import router as permission_logs_router, replace_router

__all__ = [
    "wiki_router",
    "permission_validation_router",
    "permission_logs_router",
    "replace_router",
]
