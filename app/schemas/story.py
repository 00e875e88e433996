from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

AudienceType = Literal["self", "parent", "helper", "care"]


class StoryCreate(BaseModel):
    name: Optional[str] = None
    contact: Optional[str] = None
    text: Optional[str] = None
    category: Optional[str] = None
    emotions: List[str] = Field(default_factory=list)
    audienceType: AudienceType = "self"
    voiceFile: Optional[str] = Field(None, description="Name of an already uploaded voice file")
    voiceUrl: Optional[str] = Field(None, description="Public URL of an already uploaded voice file")


class Story(BaseModel):
    id: str
    createdAt: str
    name: str = "anonymous"
    contact: str = ""
    text: str = ""
    category: str = ""
    emotions: List[str] = Field(default_factory=list)
    audienceType: str = "self"
    voiceFile: Optional[str] = None
    voiceUrl: Optional[str] = None
    hasVoice: bool = False
    aiEmotion: str = ""


class StoryListResponse(BaseModel):
    total: int
    items: List[Dict[str, Any]]


class StoryStats(BaseModel):
    total: int
    textCount: int
    voiceCount: int
    todayCount: int
