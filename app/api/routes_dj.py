from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.api.dependencies import get_relay
from app.config.logger import get_logger
from app.core.relay import StreamRelay
from app.schemas.dj import GenerateRequest

router = APIRouter(prefix="/api/dj", tags=["dj"])
LOGGER = get_logger("routes.dj")


@router.post("/generate", response_class=StreamingResponse)
async def generate_broadcast(
    payload: GenerateRequest,
    relay: StreamRelay = Depends(get_relay),
) -> StreamingResponse:
    LOGGER.info(
        "DJ broadcast generation requested",
        extra={
            "storyId": payload.storyId,
            "storyName": payload.storyName,
            "speakerName": payload.speakerName,
        },
    )
    return await relay.open(payload)
