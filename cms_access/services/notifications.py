"""Administrator notifications for newly detected drift."""

import logging
from typing import Dict, List, Optional, Protocol

from .permission_sources import PermissionReference

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify_admin(
        self,
        reference: PermissionReference,
        invalid_departments: List[Dict[str, Optional[str]]],
    ) -> None:
        ...


class LoggingNotificationSink:
    """Writes one structured warning per alert."""

    def notify_admin(
        self,
        reference: PermissionReference,
        invalid_departments: List[Dict[str, Optional[str]]],
    ) -> None:
        logger.warning(
            "Inactive department references on %s %r; an administrator must replace them",
            reference.entity_kind,
            reference.name,
            extra={
                "entity_id": reference.entity_id,
                "entity_kind": reference.entity_kind,
                "invalid_department_ids": [d["id"] for d in invalid_departments],
            },
        )
