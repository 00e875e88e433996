from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN = "unknown"


class UsageRecord(BaseModel):
    """One completed DJ generation call and what it cost."""

    model_config = ConfigDict(frozen=True)

    id: str
    createdAt: str = Field(..., description="UTC ISO-8601 completion time")
    model: str
    storyId: str = UNKNOWN
    storyName: str = UNKNOWN
    speakerName: str = UNKNOWN
    inputTokens: int = Field(0, ge=0)
    outputTokens: int = Field(0, ge=0)
    inputCost: float = 0.0
    outputCost: float = 0.0
    totalCost: float = 0.0


class UsageSummary(BaseModel):
    records: List[UsageRecord]
    total_cost: float
    total_input: int
    total_output: int
    count: int
    source: Literal["memory", "sink", "none"]


class UsageContext(BaseModel):
    """Caller-supplied correlation metadata for a generation call."""

    storyId: Optional[str] = None
    storyName: Optional[str] = None
    speakerName: Optional[str] = None
