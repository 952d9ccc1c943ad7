"""Admin API: run permission-drift reconciliation on demand.

The scheduled worker runs the same code on its interval; these endpoints let an
administrator trigger a run immediately.
"""

import logging
from enum import Enum
from functools import lru_cache
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.config import settings
from ..database import get_db, SessionLocal
from ..models import EntityKind
from ..schemas.permission_log import RunReportResponse
from ..services.identity_resolver import IdentityResolver, build_identity_resolver
from ..services.notifications import LoggingNotificationSink, NotificationSink
from ..services.reconciliation_service import run_all, run_safely

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/permission-validation", tags=["permission-validation"])


class ValidationTarget(str, Enum):
    WIKI = "wiki"
    ANNOUNCEMENT = "announcement"
    ALL = "all"


@lru_cache
def get_identity_resolver() -> IdentityResolver:
    """Process-wide resolver built from settings."""
    return build_identity_resolver(settings)


def get_notifier() -> NotificationSink:
    return LoggingNotificationSink()


@router.post("/{target}", response_model=List[RunReportResponse])
def run_validation(
    target: ValidationTarget,
    db: Session = Depends(get_db),
    resolver: IdentityResolver = Depends(get_identity_resolver),
    notifier: NotificationSink = Depends(get_notifier),
):
    """Reconcile one kind now, or every kind concurrently for ``all``.

    Always answers 200; a run that could not complete reports status
    ``failed`` (or ``skipped`` when one was already in flight).
    """
    logger.info("Manual permission validation requested", extra={"target": target.value})
    if target is ValidationTarget.ALL:
        reports = run_all(resolver, session_factory=SessionLocal, notifier=notifier)
    else:
        reports = [run_safely(EntityKind(target.value), resolver, db=db, notifier=notifier)]
    return [RunReportResponse(**report.as_dict()) for report in reports]
