"""
HTTP exceptions and engine-error handlers for the REST adapter
"""
from typing import Any, Dict, Optional
import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from ..core.exceptions import (
    ConflictError,
    DependencyError,
    GradingEngineError,
    IncidentNotFoundError,
    ScopeNotFoundError,
    SubmissionNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class GradingAPIException(HTTPException):
    """Base HTTP exception for the grading API"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        headers: Optional[Dict[str, str]] = None,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.extra = extra or {}


class InvalidScopeKindError(GradingAPIException):
    def __init__(self, kind: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown aggregation scope '{kind}'",
            error_code="INVALID_SCOPE_KIND",
            extra={"kind": kind}
        )


_NOT_FOUND = (SubmissionNotFoundError, IncidentNotFoundError, ScopeNotFoundError)


def status_for(error: GradingEngineError) -> int:
    """HTTP status for an engine error"""
    if isinstance(error, _NOT_FOUND):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, ConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(error, DependencyError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def grading_engine_error_handler(request: Request, exc: GradingEngineError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(
            f"Engine error on {request.method} {request.url.path}: {exc.error_code}",
            extra={"error_code": exc.error_code, "details": exc.details},
        )
    else:
        logger.info(
            f"Request rejected: {exc.error_code}",
            extra={"path": request.url.path, "error_code": exc.error_code},
        )
    return JSONResponse(status_code=status_code, content={"success": False, "error": exc.to_dict()})


async def grading_api_exception_handler(request: Request, exc: GradingAPIException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "error_code": exc.error_code,
                "message": exc.detail,
                "details": exc.extra,
                "retryable": False,
            },
        },
        headers=exc.headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GradingEngineError, grading_engine_error_handler)
    app.add_exception_handler(GradingAPIException, grading_api_exception_handler)
