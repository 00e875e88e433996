from typing import Any, Callable, Dict, List, Optional, Protocol

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from app.config.logger import get_logger
from app.core.errors import StoreError
from app.core.stories import filter_constraints, matches_filter
from app.schemas.story import Story

LOGGER = get_logger("story_repository")

_FIRESTORE_ERRORS = (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError)


class StoryRepository(Protocol):
    def add(self, story: Story) -> None:
        ...

    def list(self, filter_name: str, limit: int) -> List[Dict[str, Any]]:
        ...

    def all(self) -> List[Dict[str, Any]]:
        ...

    def delete(self, story_id: str) -> None:
        ...

    def delete_all(self) -> int:
        ...


class FirestoreStoryRepository:
    """Stories stored as documents keyed by story id."""

    def __init__(
        self,
        client_factory: Callable[[], firestore.Client],
        collection: str = "stories",
    ):
        self._client_factory = client_factory
        self._collection_name = collection
        self._client: Optional[firestore.Client] = None

    def _collection(self) -> firestore.CollectionReference:
        if self._client is None:
            self._client = self._client_factory()
        return self._client.collection(self._collection_name)

    def add(self, story: Story) -> None:
        try:
            self._collection().document(story.id).set(story.model_dump())
        except _FIRESTORE_ERRORS as exc:
            raise StoreError(f"story insert failed: {exc}") from exc
        LOGGER.info("Story stored", extra={"storyId": story.id, "hasVoice": story.hasVoice})

    def list(self, filter_name: str, limit: int) -> List[Dict[str, Any]]:
        try:
            query = self._collection()
            for field, op, value in filter_constraints(filter_name):
                query = query.where(filter=FieldFilter(field, op, value))
            query = query.order_by("createdAt", direction=firestore.Query.DESCENDING).limit(limit)
            stories = [snapshot.to_dict() or {} for snapshot in query.stream()]
        except _FIRESTORE_ERRORS as exc:
            raise StoreError(f"story query failed: {exc}") from exc
        return [story for story in stories if matches_filter(story, filter_name)]

    def all(self) -> List[Dict[str, Any]]:
        try:
            return [snapshot.to_dict() or {} for snapshot in self._collection().stream()]
        except _FIRESTORE_ERRORS as exc:
            raise StoreError(f"story scan failed: {exc}") from exc

    def delete(self, story_id: str) -> None:
        # Voice objects live in external storage and are left untouched.
        try:
            self._collection().document(story_id).delete()
        except _FIRESTORE_ERRORS as exc:
            raise StoreError(f"story delete failed: {exc}") from exc
        LOGGER.info("Story deleted", extra={"storyId": story_id})

    def delete_all(self) -> int:
        deleted = 0
        try:
            for snapshot in self._collection().stream():
                snapshot.reference.delete()
                deleted += 1
        except _FIRESTORE_ERRORS as exc:
            raise StoreError(f"story purge failed: {exc}") from exc
        LOGGER.info("All stories deleted", extra={"count": deleted})
        return deleted
