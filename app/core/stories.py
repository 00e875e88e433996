import datetime as dt
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.schemas.story import Story, StoryCreate, StoryStats

FILTER_ALL = "all"
FILTER_TEXT = "text"
FILTER_VOICE = "voice"

# Korean filter names sent by the admin page.
FILTER_ALIASES = {
    "전체": FILTER_ALL,
    "텍스트": FILTER_TEXT,
    "음성": FILTER_VOICE,
}


def build_story(payload: StoryCreate, now: Optional[dt.datetime] = None) -> Story:
    now = now or dt.datetime.now(dt.timezone.utc)
    has_voice = bool(payload.voiceFile or payload.voiceUrl)
    return Story(
        id=str(uuid.uuid4()),
        createdAt=now.isoformat(),
        name=payload.name or "anonymous",
        contact=payload.contact or "",
        text=payload.text or "",
        category=payload.category or "",
        emotions=list(payload.emotions),
        audienceType=payload.audienceType,
        voiceFile=payload.voiceFile,
        voiceUrl=payload.voiceUrl,
        hasVoice=has_voice,
    )


def normalize_filter(value: Optional[str]) -> str:
    value = (value or "").strip()
    return FILTER_ALIASES.get(value, value) or FILTER_ALL


def filter_constraints(filter_name: str) -> List[Tuple[str, str, Any]]:
    """Equality constraints a store can push down for ``filter_name``.

    The text filter also needs a non-empty ``text``, which is checked with
    ``matches_filter`` after the query.
    """

    if filter_name == FILTER_ALL:
        return []
    if filter_name == FILTER_TEXT:
        return [("hasVoice", "==", False)]
    if filter_name == FILTER_VOICE:
        return [("hasVoice", "==", True)]
    return [("category", "==", filter_name)]


def matches_filter(story: Dict[str, Any], filter_name: str) -> bool:
    if filter_name == FILTER_ALL:
        return True
    if filter_name == FILTER_TEXT:
        return bool(story.get("text")) and not story.get("hasVoice")
    if filter_name == FILTER_VOICE:
        return bool(story.get("hasVoice"))
    return story.get("category") == filter_name


def to_list_item(story: Dict[str, Any]) -> Dict[str, Any]:
    item = dict(story)
    item["timestamp"] = story.get("createdAt")
    item["voiceUrl"] = story.get("voiceUrl") or None
    item["aiEmotion"] = story.get("aiEmotion") or ""
    return item


def compute_stats(stories: Iterable[Dict[str, Any]], today: Optional[dt.date] = None) -> StoryStats:
    today = today or dt.datetime.now(dt.timezone.utc).date()
    total = text_count = voice_count = today_count = 0
    for story in stories:
        total += 1
        if story.get("text"):
            text_count += 1
        if story.get("hasVoice"):
            voice_count += 1
        created = _parse_created_at(story.get("createdAt"))
        if created is not None and created.date() == today:
            today_count += 1
    return StoryStats(
        total=total,
        textCount=text_count,
        voiceCount=voice_count,
        todayCount=today_count,
    )


def _parse_created_at(value: Any) -> Optional[dt.datetime]:
    if isinstance(value, dt.datetime):
        created = value
    elif isinstance(value, str) and value:
        try:
            created = dt.datetime.fromisoformat(value)
        except ValueError:
            return None
    else:
        return None
    if created.tzinfo is None:
        created = created.replace(tzinfo=dt.timezone.utc)
    return created.astimezone(dt.timezone.utc)
