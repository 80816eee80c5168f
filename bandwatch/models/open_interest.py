"""Open interest sample data model."""

from pydantic import BaseModel, Field


class OpenInterestSample(BaseModel):
    """A single open interest reading."""

    timestamp: int = Field(..., ge=0, description="Sample time, epoch milliseconds")
    value: float = Field(..., ge=0, description="Open interest in contracts")

    model_config = {"frozen": True}
