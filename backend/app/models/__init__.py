"""Pydantic models package."""

from app.models.base import ErrorDetail, MetricsPayload, StrictRequest, StrictResponse

__all__ = ["ErrorDetail", "MetricsPayload", "StrictRequest", "StrictResponse"]
