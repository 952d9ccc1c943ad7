"""Business logic services."""

from .hierarchy_service import HierarchyService
from .access_service import AccessService, evaluate_access
from .reconciliation_log_service import ReconciliationLogService
from .reconciliation_service import ReconciliationService, RunReport, run_safely, run_all
from .permission_replacement_service import PermissionReplacementService

__all__ = [
    "HierarchyService",
    "AccessService",
    "evaluate_access",
    "ReconciliationLogService",
    "ReconciliationService",
    "RunReport",
    "run_safely",
    "run_all",
    "PermissionReplacementService",
]
