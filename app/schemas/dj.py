from typing import Optional

from pydantic import BaseModel, Field


class GenerateRequest(BaseModel):
    # Optional here so a missing prompt is reported as 400, not 422.
    prompt: Optional[str] = Field(None, description="Prompt sent to the model as a single user message")
    storyId: Optional[str] = None
    storyName: Optional[str] = None
    speakerName: Optional[str] = None
