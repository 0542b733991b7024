"""Liveness payloads."""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    HEALTHY = "healthy"


class SweepStatus(BaseModel):
    """What the hold-expiry worker has done since startup."""

    running: bool = Field(..., description="Whether the sweep loop is scheduled")
    iterations: int = Field(0, ge=0, description="Completed sweep passes")
    last_expired: Optional[int] = Field(None, description="Holds expired by the latest pass")
    last_failed: Optional[int] = Field(None, description="Holds the latest pass could not expire")


class HealthResponse(BaseModel):
    status: HealthStatus = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current server time (naive UTC)")
    version: str = Field(..., description="Service version")
    workers: Dict[str, bool] = Field(default_factory=dict, description="Running state per background worker")
    hold_sweep: SweepStatus
