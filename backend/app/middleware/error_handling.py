"""
Error Types and Error Handling Middleware

Defines the progress engine's exception hierarchy and the middleware
that turns those exceptions into a consistent JSON error body.

Exception hierarchy:
    ServiceError
    ├── ProgressInputError          422, malformed outcome, nothing touched
    ├── PersistenceError            503, storage failure
    │   └── TransientPersistenceError   retried once at the upsert boundary
    └── NotFoundError               404

Usage:
    from app.middleware.error_handling import PersistenceError, setup_error_handling

    setup_error_handling(app, debug=settings.DEBUG)

    raise PersistenceError("Could not store topic progress")

The middleware wraps `call_next(request)`, so any ServiceError raised by a
route, dependency or service surfaces here. HTTPException is left to
FastAPI's own handler.
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.models.base import ErrorDetail

logger = logging.getLogger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================


class ServiceError(Exception):
    """
    Base exception for service errors.

    Carries an HTTP status code, a machine-readable error code, and
    optional details for debugging.

    Example:
        raise ServiceError("Progress store unavailable", status_code=503)
    """

    status_code: int = 500
    error_code: str = "service_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code
        if error_code:
            self.error_code = error_code
        self.details = details


class ProgressInputError(ServiceError):
    """
    Malformed session outcome.

    Raised before persistence is touched (e.g. missing user or session id).
    """

    status_code = 422
    error_code = "invalid_progress_input"


class PersistenceError(ServiceError):
    """
    Progress storage failure.

    Raised by repositories when a read or write cannot be completed.
    """

    status_code = 503
    error_code = "persistence_error"


class TransientPersistenceError(PersistenceError):
    """
    Storage failure worth retrying.

    Connection drops, deadlocks, and unique-key conflicts from concurrent
    creators.
    """

    error_code = "transient_persistence_error"


class NotFoundError(ServiceError):
    """Raised when a requested resource doesn't exist."""

    status_code = 404
    error_code = "not_found"


# =============================================================================
# Error Handling Middleware
# =============================================================================


def _error_body(
    error_code: str,
    message: str,
    error_id: str,
    details: Optional[dict] = None,
) -> dict:
    return ErrorDetail(
        error=error_code,
        message=message,
        error_id=error_id,
        details=details,
        timestamp=datetime.now(timezone.utc),
    ).model_dump(mode="json")


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    Logs every failure under a short correlation id and returns the
    standard error body. Internal details are only exposed in debug mode.
    """

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        """Process request and handle any errors."""
        error_id = str(uuid4())[:8]

        try:
            return await call_next(request)

        except HTTPException:
            raise

        except ServiceError as e:
            logger.error(
                f"[{error_id}] {e.error_code}: {e.message}",
                extra={
                    "error_id": error_id,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            return JSONResponse(
                status_code=e.status_code,
                content=_error_body(
                    e.error_code,
                    e.message,
                    error_id,
                    e.details if self.debug else None,
                ),
            )

        except Exception as e:
            logger.error(
                f"[{error_id}] Unhandled error: {type(e).__name__}: {e}",
                extra={
                    "error_id": error_id,
                    "path": request.url.path,
                    "traceback": traceback.format_exc(),
                },
            )
            details = None
            if self.debug:
                details = {"exception": type(e).__name__, "message": str(e)}
            return JSONResponse(
                status_code=500,
                content=_error_body(
                    "internal_server_error",
                    "An unexpected error occurred",
                    error_id,
                    details,
                ),
            )


def setup_error_handling(app: FastAPI, debug: bool = False) -> None:
    """
    Configure error handling on the FastAPI app.

    Args:
        app: FastAPI application instance
        debug: Whether to include exception details in responses
    """
    app.add_middleware(ErrorHandlingMiddleware, debug=debug)
    logger.info(f"Error handling middleware enabled (debug={debug})")
