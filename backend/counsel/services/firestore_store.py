import logging
from typing import Any

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import firestore
from starlette.concurrency import run_in_threadpool

from ..core.errors import InitializationError, PersistenceError
from ..models.session import SessionRecord, SessionRecordCreate
from .history import HistoryCallback, HistoryStore, Subscription, collection_path

logger = logging.getLogger(__name__)


def create_firestore_client(config: dict) -> firestore.Client:
    """Build a Firestore client from the host-supplied store configuration.

    Credentials come from the environment (GOOGLE_APPLICATION_CREDENTIALS or
    the runtime's default service account).
    """
    try:
        return firestore.Client(project=config.get("projectId") or None)
    except (GoogleAuthError, GoogleAPIError, ValueError) as e:
        raise InitializationError(f"Could not create Firestore client: {e}") from e


def document_to_record(doc: Any) -> SessionRecord:
    data = doc.to_dict() or {}
    return SessionRecord(
        id=doc.id,
        problem=data.get("problem", ""),
        counsel=data.get("counsel", ""),
        # None until the server timestamp of a local write resolves
        timestamp=data.get("timestamp"),
        user_id=data.get("userId", ""),
    )


class FirestoreSessionStore(HistoryStore):
    def __init__(self, client: Any, app_id: str):
        self._client = client
        self.app_id = app_id

    def _collection(self, identity: str):
        return self._client.collection(*collection_path(self.app_id, identity).split("/"))

    async def append(self, identity: str, record: SessionRecordCreate) -> SessionRecord:
        data = {
            "problem": record.problem,
            "counsel": record.counsel,
            "timestamp": firestore.SERVER_TIMESTAMP,
            "userId": record.user_id,
        }
        try:
            _, ref = await run_in_threadpool(self._collection(identity).add, data)
        except (GoogleAPIError, GoogleAuthError) as e:
            raise PersistenceError(f"Could not save counseling session: {e}") from e
        logger.info("Saved counseling session %s for %s", ref.id, identity)
        return SessionRecord(
            id=ref.id,
            problem=record.problem,
            counsel=record.counsel,
            timestamp=None,
            user_id=record.user_id,
        )

    def subscribe(self, identity: str, callback: HistoryCallback) -> Subscription:
        def on_snapshot(docs, changes, read_time):
            callback([document_to_record(d) for d in docs])

        try:
            watch = self._collection(identity).on_snapshot(on_snapshot)
        except (GoogleAPIError, GoogleAuthError) as e:
            raise PersistenceError(f"Could not subscribe to history: {e}") from e
        logger.info("Listening to %s", collection_path(self.app_id, identity))
        return Subscription(watch.unsubscribe)

    def close(self) -> None:
        self._client.close()
