import base64
import json
import os
from typing import Any, Dict, Optional

from google.cloud import firestore
from google.oauth2 import service_account

from app.config.logger import get_logger

LOGGER = get_logger("firestore")


def get_firestore_client() -> firestore.Client:
    """Build a Firestore client for the story store and the usage sink.

    Credentials come from FIREBASE_SERVICE_ACCOUNT_BASE64 (inline service
    account JSON), then FIREBASE_SERVICE_ACCOUNT_FILE, then the ambient
    application default credentials.
    """

    project_override = os.getenv("FIRESTORE_PROJECT_ID") or None
    service_account_info = _load_service_account_info()
    if service_account_info is None:
        LOGGER.info(
            "No service account configured; using default credentials",
            extra={"projectId": project_override},
        )
        return firestore.Client(project=project_override)

    credentials = service_account.Credentials.from_service_account_info(service_account_info)
    project_id: Optional[str] = project_override or service_account_info.get("project_id")
    LOGGER.info("Firestore client initialized with explicit credentials", extra={"projectId": project_id})
    return firestore.Client(credentials=credentials, project=project_id)


def _load_service_account_info() -> Optional[Dict[str, Any]]:
    encoded = os.getenv("FIREBASE_SERVICE_ACCOUNT_BASE64")
    if encoded:
        try:
            return json.loads(base64.b64decode(encoded).decode("utf-8"))
        except (ValueError, json.JSONDecodeError) as exc:
            LOGGER.error("Invalid FIREBASE_SERVICE_ACCOUNT_BASE64 payload: %s", exc)
            raise

    path = os.getenv("FIREBASE_SERVICE_ACCOUNT_FILE")
    if path:
        with open(path, encoding="utf-8") as handle:
            return json.load(handle)
    return None
