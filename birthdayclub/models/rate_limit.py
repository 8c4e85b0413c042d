"""Rate limit data models for Birthday Club."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class RateLimitCounter(BaseModel):
    """Persisted fixed-window counter for one guarded operation."""

    operation: str = Field(..., description="Name of the guarded operation (unique)")
    counter: int = Field(..., ge=0, description="Invocations in the current window")
    last_updated: datetime = Field(..., description="Last time the counter changed")
    created_at: datetime = Field(..., description="When the counter was first created")


class RateLimitDecision(BaseModel):
    """Outcome of a check-and-increment call."""

    allowed: bool
    operation: str
    counter: int = Field(..., description="Counter value after the call")
    limit: int
    reset_time: Optional[datetime] = Field(
        None, description="When the window reopens (only set when denied)"
    )
