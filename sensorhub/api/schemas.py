"""
Shared request/response models for the control-plane API
"""
from typing import Any, Optional

from pydantic import BaseModel, Field


class ApiResponse(BaseModel):
    """Standard success envelope"""
    status: str = "success"
    data: Any = None


class ErrorResponse(BaseModel):
    """Standard error envelope"""
    status: str = "error"
    message: str
    error_code: Optional[int] = None


class ThresholdUpdateRequest(BaseModel):
    """Partial threshold patch; at least one bound must be given"""
    min: Optional[float] = Field(None, description="New lower bound")
    max: Optional[float] = Field(None, description="New upper bound")


class ForceAnomalyRequest(BaseModel):
    """Request model for forcing an anomaly"""
    duration_seconds: Optional[float] = Field(
        None, gt=0, description="Anomaly length in seconds (defaults to a random 2-5 minutes)"
    )
