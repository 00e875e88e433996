from typing import Callable, List, Optional, Protocol

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore

from app.config.logger import get_logger
from app.core.errors import SinkWriteError
from app.schemas.usage import UsageRecord

LOGGER = get_logger("usage_sink")

_FIRESTORE_ERRORS = (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError)


class UsageSink(Protocol):
    def append(self, record: UsageRecord) -> None:
        ...

    def recent(self, limit: int) -> List[UsageRecord]:
        ...


class FirestoreUsageSink:
    """Durable mirror of the usage ring.

    Firestore path: {collection}/{record.id}
    """

    def __init__(
        self,
        client_factory: Callable[[], firestore.Client],
        collection: str = "dj_usage",
    ):
        self._client_factory = client_factory
        self._collection = collection
        self._client: Optional[firestore.Client] = None

    @property
    def client(self) -> firestore.Client:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def append(self, record: UsageRecord) -> None:
        payload = record.model_dump()
        payload["loggedAt"] = firestore.SERVER_TIMESTAMP
        try:
            self.client.collection(self._collection).document(record.id).set(payload)
        except _FIRESTORE_ERRORS as exc:
            raise SinkWriteError(f"usage sink append failed: {exc}") from exc
        LOGGER.info(
            "Usage record mirrored",
            extra={"recordId": record.id, "path": f"{self._collection}/{record.id}"},
        )

    def recent(self, limit: int) -> List[UsageRecord]:
        query = (
            self.client.collection(self._collection)
            .order_by("createdAt", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        records: List[UsageRecord] = []
        for snapshot in query.stream():
            data = snapshot.to_dict() or {}
            data.pop("loggedAt", None)
            records.append(UsageRecord(**data))
        LOGGER.info(
            "Usage records loaded from sink",
            extra={"collection": self._collection, "count": len(records)},
        )
        return records
