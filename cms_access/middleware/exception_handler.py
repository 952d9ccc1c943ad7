"""Exception handler middleware for structured error responses."""

import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from ..exceptions import CmsAccessError

logger = logging.getLogger(__name__)


async def cms_access_exception_handler(request: Request, exc: CmsAccessError) -> JSONResponse:
    """
    Convert a CmsAccessError into its JSON body and HTTP status.

    Client errors (4xx) are logged at WARNING, everything else at ERROR.
    """
    level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        level,
        f"CmsAccessError: {exc.error_code.value}",
        extra={
            "error_code": exc.error_code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
            "status_code": exc.status_code
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )
