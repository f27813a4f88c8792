"""
Strict Base Models for Inbound and Outbound Validation

Session outcomes arrive from other services (lesson runner, assessment
runner, audio scoring). Validating them once at the boundary means the
aggregation code never has to re-check shapes at runtime.

Usage:
    # Outcomes we own the shape of (strictest validation)
    class LessonOutcome(StrictRequest):
        id: str

    # Payloads produced by external scorers (extra fields tolerated)
    class AudioMetrics(MetricsPayload):
        overall_performance: float | None = None

    # Records and API responses
    class TopicProgressState(StrictResponse):
        topic_name: str

Architecture:
    Caller → StrictRequest / MetricsPayload → ProgressOrchestrator
    Repository record → StrictResponse → API Response
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class StrictRequest(BaseModel):
    """
    Base model for inbound payloads with strict validation.

    Rejects any fields not explicitly declared in the model, catching
    producer typos and mismatches at the boundary rather than mid-update.

    Features:
        - extra="forbid": Unknown fields raise ValidationError
        - validate_default=True: Validates default values
        - str_strip_whitespace=True: Trims whitespace from strings
        - allow_inf_nan=False: NaN and infinite numbers raise ValidationError
        - from_attributes=True: Allows ORM model conversion
    """

    model_config = ConfigDict(
        extra="forbid",  # Reject unknown fields
        validate_default=True,  # Validate defaults
        str_strip_whitespace=True,  # Clean string inputs
        from_attributes=True,  # Enable ORM conversion
        allow_inf_nan=False,  # Reject NaN / Infinity
    )


class MetricsPayload(BaseModel):
    """
    Base model for scorer-produced metrics.

    AI scorers attach many diagnostic fields this engine does not use;
    they are ignored rather than rejected.
    NaN and infinite scores are rejected.
    """

    model_config = ConfigDict(
        extra="ignore",
        str_strip_whitespace=True,
        populate_by_name=True,
        allow_inf_nan=False,
    )


class StrictResponse(BaseModel):
    """
    Base model for records and response bodies.

    Features:
        - extra="ignore": Silently ignores extra fields (DB may have more columns)
        - validate_default=True: Validates default values
        - from_attributes=True: Allows ORM model conversion

    Example:
        >>> TopicProgressState.model_validate(db_topic)
    """

    model_config = ConfigDict(
        extra="ignore",  # Allow extra fields in responses
        validate_default=True,  # Validate defaults
        from_attributes=True,  # Enable ORM conversion
    )


class ErrorDetail(StrictResponse):
    """
    Standardized error response detail.

    Body returned by the error_handling middleware for every failure.
    """

    error: str  # Error code (e.g., "validation_error")
    message: str  # Human-readable message
    error_id: str  # Correlation ID for log lookup
    details: Optional[dict] = None  # Additional context
    timestamp: datetime
