from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_story_repository
from app.config.logger import get_logger
from app.core.errors import InvalidRequest
from app.core.stories import build_story, compute_stats, normalize_filter, to_list_item
from app.db.story_repository import StoryRepository
from app.schemas.responses import SuccessResponse
from app.schemas.story import StoryCreate, StoryListResponse, StoryStats

router = APIRouter(prefix="/api", tags=["stories"])
LOGGER = get_logger("routes.stories")


@router.post("/stories", response_model=SuccessResponse, response_model_exclude_none=True)
def create_story(
    payload: StoryCreate,
    repository: StoryRepository = Depends(get_story_repository),
) -> SuccessResponse:
    if not payload.text and not (payload.voiceFile or payload.voiceUrl):
        raise InvalidRequest("text or voice is required")
    story = build_story(payload)
    repository.add(story)
    LOGGER.info(
        "Story submitted",
        extra={"storyId": story.id, "category": story.category, "audienceType": story.audienceType},
    )
    return SuccessResponse(success=True, id=story.id)


@router.get("/stories", response_model=StoryListResponse)
def list_stories(
    filter: str | None = Query(default=None),
    limit: int = Query(default=500, ge=1),
    repository: StoryRepository = Depends(get_story_repository),
) -> StoryListResponse:
    filter_name = normalize_filter(filter)
    items = [to_list_item(story) for story in repository.list(filter_name, limit)]
    LOGGER.info("Stories listed", extra={"filter": filter_name, "count": len(items)})
    return StoryListResponse(total=len(items), items=items)


@router.get("/stats", response_model=StoryStats)
def story_stats(repository: StoryRepository = Depends(get_story_repository)) -> StoryStats:
    return compute_stats(repository.all())


@router.delete("/stories/{story_id}", response_model=SuccessResponse, response_model_exclude_none=True)
def delete_story(
    story_id: str,
    repository: StoryRepository = Depends(get_story_repository),
) -> SuccessResponse:
    repository.delete(story_id)
    return SuccessResponse(success=True)


@router.delete("/stories", response_model=SuccessResponse, response_model_exclude_none=True)
def delete_all_stories(repository: StoryRepository = Depends(get_story_repository)) -> SuccessResponse:
    deleted = repository.delete_all()
    LOGGER.warning("All stories deleted", extra={"count": deleted})
    return SuccessResponse(success=True)
