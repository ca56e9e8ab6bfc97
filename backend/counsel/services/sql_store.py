import logging
import threading
from collections import defaultdict
from typing import Callable, Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..core.errors import PersistenceError
from ..models.session import SessionRecord, SessionRecordCreate
from ..models.sql_models import CounselingSession
from .history import HistoryCallback, HistoryStore, Subscription

logger = logging.getLogger(__name__)


def row_to_record(row: CounselingSession) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        problem=row.problem,
        counsel=row.counsel,
        timestamp=row.timestamp,
        user_id=row.user_id,
    )


class SqlSessionStore(HistoryStore):
    """History store on a relational database.

    Change notifications are in-process: subscribers see appends made
    through this store instance, plus an initial snapshot on subscribe.
    """

    def __init__(self, session_factory: Callable[[], Session], app_id: str):
        self._session_factory = session_factory
        self.app_id = app_id
        self._listeners: Dict[str, List[HistoryCallback]] = defaultdict(list)
        self._lock = threading.Lock()

    def load(self, identity: str) -> List[SessionRecord]:
        db = self._session_factory()
        try:
            rows = (
                db.query(CounselingSession)
                .filter(CounselingSession.app_id == self.app_id, CounselingSession.user_id == identity)
                .all()
            )
            return [row_to_record(r) for r in rows]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read history: {e}") from e
        finally:
            db.close()

    def _insert(self, identity: str, record: SessionRecordCreate) -> SessionRecord:
        db = self._session_factory()
        try:
            row = CounselingSession(
                app_id=self.app_id,
                user_id=identity,
                problem=record.problem,
                counsel=record.counsel,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return row_to_record(row)
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Could not save counseling session: {e}") from e
        finally:
            db.close()

    def _publish(self, identity: str) -> None:
        with self._lock:
            listeners = list(self._listeners.get(identity, ()))
        if not listeners:
            return
        try:
            records = self.load(identity)
        except PersistenceError as e:
            # The write already committed; subscribers catch up on the next change
            logger.error("History refresh after append failed for %s: %s", identity, e)
            return
        for callback in listeners:
            callback(records)

    async def append(self, identity: str, record: SessionRecordCreate) -> SessionRecord:
        if record.user_id != identity:
            raise PersistenceError("Record owner does not match the identity it is filed under")
        saved = await run_in_threadpool(self._insert, identity, record)
        logger.info("Saved counseling session %s for %s", saved.id, identity)
        await run_in_threadpool(self._publish, identity)
        return saved

    def subscribe(self, identity: str, callback: HistoryCallback) -> Subscription:
        records = self.load(identity)
        with self._lock:
            self._listeners[identity].append(callback)

        def cancel() -> None:
            with self._lock:
                listeners = self._listeners.get(identity, [])
                if callback in listeners:
                    listeners.remove(callback)
                if not listeners:
                    self._listeners.pop(identity, None)

        callback(records)
        return Subscription(cancel)
