"""
Service Error Base

Every module's service layer raises subclasses of ServiceError. Routers
turn them into structured HTTP errors with `raise_http_error`.
"""

import logging
from typing import Any, NoReturn

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base exception for service-layer errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 400,
        extra: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.extra = extra or {}
        super().__init__(message)


def raise_http_error(e: ServiceError) -> NoReturn:
    """Convert a service error to an HTTPException."""
    detail: dict[str, Any] = {
        "error": e.error_code,
        "message": e.message,
    }
    detail.update(e.extra)
    headers = None
    retry_after = e.extra.get("retry_after_seconds")
    if retry_after is not None:
        headers = {"Retry-After": str(retry_after)}
    raise HTTPException(status_code=e.status_code, detail=detail, headers=headers) from e


def internal_error(e: Exception, context: str) -> HTTPException:
    """Log an unexpected exception and build the generic 500 response."""
    logger.exception(f"Error {context}: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
