from fastapi import Request

from app.core.ledger import UsageLedger
from app.core.relay import StreamRelay
from app.db.story_repository import StoryRepository


def get_ledger(request: Request) -> UsageLedger:
    return request.app.state.ledger


def get_relay(request: Request) -> StreamRelay:
    return request.app.state.relay


def get_story_repository(request: Request) -> StoryRepository:
    return request.app.state.story_repository
