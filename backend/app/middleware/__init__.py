"""
Middleware Package

Provides FastAPI middleware and the service exception hierarchy.

Usage:
    from app.middleware import setup_error_handling, PersistenceError
"""

from app.middleware.error_handling import (
    ErrorHandlingMiddleware,
    NotFoundError,
    PersistenceError,
    ProgressInputError,
    ServiceError,
    TransientPersistenceError,
    setup_error_handling,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "NotFoundError",
    "PersistenceError",
    "ProgressInputError",
    "ServiceError",
    "TransientPersistenceError",
    "setup_error_handling",
]
