"""Custom exception hierarchy for cms-access."""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Wiki tree errors
    NODE_NOT_FOUND = "NODE_NOT_FOUND"
    CYCLE_DETECTED = "CYCLE_DETECTED"
    FOLDER_NOT_EMPTY = "FOLDER_NOT_EMPTY"

    # Permission-bearing entities and their logs
    ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"
    PERMISSION_LOG_NOT_FOUND = "PERMISSION_LOG_NOT_FOUND"

    # Identity source
    RESOLVER_UNAVAILABLE = "RESOLVER_UNAVAILABLE"

    # Reconciliation
    ENTITY_PROCESSING_FAILED = "ENTITY_PROCESSING_FAILED"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"


class CmsAccessError(Exception):
    """
    Base exception for all cms-access errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            status_code: HTTP status code to return
            details: Optional additional context/details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for JSON response.

        Returns:
            Dictionary with error, message, and details fields
        """
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class NodeNotFoundError(CmsAccessError):
    """Wiki node not found (or soft-deleted)."""

    def __init__(self, node_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Wiki node not found: {node_id}",
            ErrorCode.NODE_NOT_FOUND,
            status_code=404,
            details={"node_id": node_id}
        )


class EntityNotFoundError(CmsAccessError):
    """Permission-bearing entity not found for the given kind."""

    def __init__(self, entity_kind: str, entity_id: str):
        super().__init__(
            f"{entity_kind} not found: {entity_id}",
            ErrorCode.ENTITY_NOT_FOUND,
            status_code=404,
            details={"entity_kind": entity_kind, "entity_id": entity_id}
        )


class PermissionLogNotFoundError(CmsAccessError):
    """Permission log entry not found."""

    def __init__(self, log_id: str):
        super().__init__(
            f"Permission log not found: {log_id}",
            ErrorCode.PERMISSION_LOG_NOT_FOUND,
            status_code=404,
            details={"log_id": log_id}
        )


class CycleError(CmsAccessError):
    """Moving this node would make it an ancestor of itself."""

    def __init__(self, node_id: str, new_parent_id: str):
        super().__init__(
            f"Cannot move {node_id} under its own descendant {new_parent_id}",
            ErrorCode.CYCLE_DETECTED,
            status_code=409,
            details={"node_id": node_id, "new_parent_id": new_parent_id}
        )


class NotEmptyError(CmsAccessError):
    """Folder-only deletion blocked by existing children."""

    def __init__(self, node_id: str, child_count: int):
        super().__init__(
            f"Folder {node_id} is not empty ({child_count} children)",
            ErrorCode.FOLDER_NOT_EMPTY,
            status_code=409,
            details={"node_id": node_id, "child_count": child_count}
        )


class ValidationError(CmsAccessError):
    """Validation failed for user input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )


class ResolverUnavailableError(CmsAccessError):
    """The identity source could not answer a department lookup."""

    def __init__(self, message: str = "Identity source unavailable", original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            message,
            ErrorCode.RESOLVER_UNAVAILABLE,
            status_code=503,
            details=details
        )


class PerEntityProcessingError(CmsAccessError):
    """A single entity failed during drift detection.

    Raised inside a reconciliation batch and caught there; it never leaves
    the run.
    """

    def __init__(self, entity_kind: str, entity_id: str, original_error: Exception):
        super().__init__(
            f"Failed to process {entity_kind} {entity_id}: {original_error}",
            ErrorCode.ENTITY_PROCESSING_FAILED,
            status_code=500,
            details={
                "entity_kind": entity_kind,
                "entity_id": entity_id,
                "original_error": str(original_error),
            }
        )
