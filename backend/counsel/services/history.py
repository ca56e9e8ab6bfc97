import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Iterable, List, Optional

from ..config import Settings
from ..core.errors import InitializationError
from ..models.session import SessionRecord, SessionRecordCreate

logger = logging.getLogger(__name__)

HistoryCallback = Callable[[List[SessionRecord]], None]

# Unresolved server timestamps sort as the oldest possible value
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def collection_path(app_id: str, identity: str) -> str:
    return f"artifacts/{app_id}/users/{identity}/counselingSessions"


def sort_history(records: Iterable[SessionRecord]) -> List[SessionRecord]:
    """Newest first; records whose timestamp is still pending go last."""
    return sorted(records, key=lambda r: r.timestamp or _OLDEST, reverse=True)


class Subscription:
    """Handle for a live history subscription."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._cancel()


class HistoryStore(ABC):
    """Keyed store of counsel records with push-based snapshots.

    Subscribers receive the full record list of one identity after every
    change. Callbacks may run on any thread.
    """

    @abstractmethod
    async def append(self, identity: str, record: SessionRecordCreate) -> SessionRecord:
        ...

    @abstractmethod
    def subscribe(self, identity: str, callback: HistoryCallback) -> Subscription:
        ...

    def close(self) -> None:
        pass


async def history_stream(store: HistoryStore, identity: str) -> AsyncIterator[List[SessionRecord]]:
    """Yield sorted history snapshots for ``identity`` until closed.

    Nothing is subscribed until the first item is requested, and every call
    starts its own subscription.
    """
    loop = asyncio.get_running_loop()
    queue: "asyncio.Queue[List[SessionRecord]]" = asyncio.Queue()

    def deliver(records: List[SessionRecord]) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, records)

    subscription = store.subscribe(identity, deliver)
    try:
        while True:
            records = await queue.get()
            yield sort_history(records)
    finally:
        subscription.unsubscribe()


def parse_store_config(raw: str) -> dict:
    try:
        config = json.loads(raw or "{}")
    except json.JSONDecodeError as e:
        raise InitializationError(f"STORE_CONFIG is not valid JSON: {e}") from e
    if not isinstance(config, dict):
        raise InitializationError("STORE_CONFIG must be a JSON object")
    return config


def build_store(settings: Settings) -> Optional[HistoryStore]:
    """Build the configured history store, or None when persistence is off."""
    backend = settings.STORE_BACKEND
    if backend == "none":
        logger.info("History store disabled (STORE_BACKEND=none)")
        return None

    config = parse_store_config(settings.STORE_CONFIG)

    if backend == "sql":
        from sqlalchemy.exc import SQLAlchemyError

        from ..db.base import SessionLocal, init_db
        from .sql_store import SqlSessionStore

        try:
            init_db()
        except SQLAlchemyError as e:
            raise InitializationError(f"Could not prepare history tables: {e}") from e
        logger.info("Using SQL history store for app_id=%s", settings.APP_ID)
        return SqlSessionStore(SessionLocal, settings.APP_ID)

    if backend == "firestore":
        from .firestore_store import FirestoreSessionStore, create_firestore_client

        client = create_firestore_client(config)
        logger.info("Using Firestore history store for app_id=%s", settings.APP_ID)
        return FirestoreSessionStore(client, settings.APP_ID)

    raise InitializationError(f"Unknown STORE_BACKEND: {backend}")

