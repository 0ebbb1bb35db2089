"""
API models and schemas for the health endpoint.
"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field


class WatcherHealth(BaseModel):
    """Liveness of one watcher."""
    last_heartbeat: Optional[datetime] = Field(default=None, description="Last successful tick")
    alive: bool = Field(..., description="Heartbeat is within the staleness threshold")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status: healthy or degraded")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="Service version")
    watchers: Dict[str, WatcherHealth] = Field(default_factory=dict, description="Per-watcher heartbeat")
    snapshots: Dict[str, int] = Field(default_factory=dict, description="Cached snapshots per resource type")

    class Config:
        """Pydantic configuration."""
        json_encoders = {
            datetime: lambda v: v.isoformat()
        }


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(default=None, description="Error details")
    status_code: int = Field(..., description="HTTP status code")
