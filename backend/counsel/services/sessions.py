import asyncio
import logging
import time
from collections import OrderedDict
from typing import Callable, List, Optional

from ..config import Settings, get_settings
from ..core.errors import InitializationError, PersistenceError
from ..models.session import SessionRecord
from ..orchestration.llm import CompletionClient, GeminiClient
from .history import HistoryStore, Subscription, build_store
from .identity import IdentityProvider
from .interaction import HISTORY_FAILED, INIT_FAILED, InteractionController

logger = logging.getLogger(__name__)


class CounselSession:
    """One browser's controller plus its live history binding.

    The history subscription is opened by ``bind_history`` on first need and
    released by ``close``.
    """

    def __init__(self, identity: str, token: str, controller: InteractionController, store: Optional[HistoryStore] = None):
        self.identity = identity
        self.token = token
        self.controller = controller
        self.store = store
        self._subscription: Optional[Subscription] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.last_seen = 0.0

    def _deliver(self, records: List[SessionRecord]) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self.controller.apply_history(records)
        else:
            # Store callbacks may arrive on a worker thread; state only changes on the loop
            self._loop.call_soon_threadsafe(self.controller.apply_history, records)

    def bind_history(self) -> None:
        if self.store is None or self._subscription is not None:
            return
        self._loop = asyncio.get_running_loop()
        try:
            self._subscription = self.store.subscribe(self.identity, self._deliver)
        except PersistenceError as e:
            logger.error("Error subscribing to history for %s: %s", self.identity, e)
            self.controller.report_error(HISTORY_FAILED)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None


class SessionRegistry:
    """Process-wide map from identity to ``CounselSession``.

    Sessions are kept in least-recently-used order. A session idle for longer
    than ``idle_seconds``, or pushed out by ``max_sessions``, is closed and
    dropped; the browser gets a fresh session on its next request.
    """

    def __init__(
        self,
        client: CompletionClient,
        store: Optional[HistoryStore] = None,
        init_error: Optional[InitializationError] = None,
        initial_token: Optional[str] = None,
        max_sessions: int = 1000,
        idle_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        # An initialization failure leaves persistence inert
        self.store = None if init_error is not None else store
        self.init_error = init_error
        # Host-supplied sign-in token; consumed by the first browser without one
        self.initial_token = initial_token
        self.max_sessions = max_sessions
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._sessions: "OrderedDict[str, CounselSession]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def has_history(self) -> bool:
        return self.store is not None

    async def open(self, token: Optional[str] = None) -> CounselSession:
        if not token and self.initial_token:
            token, self.initial_token = self.initial_token, None
        provider = IdentityProvider(token)
        identity = await provider.authenticate()
        now = self._clock()

        session = self._sessions.get(identity)
        if session is None:
            controller = InteractionController(
                self.client,
                store=self.store,
                identity=identity,
                initial_error=INIT_FAILED if self.init_error is not None else "",
            )
            session = CounselSession(identity, provider.token, controller, self.store)
            self._sessions[identity] = session
            logger.info("Opened counsel session for %s", identity)
        else:
            self._sessions.move_to_end(identity)
        session.last_seen = now
        self._evict(now)
        return session

    def _evict(self, now: float) -> None:
        while self._sessions:
            identity, oldest = next(iter(self._sessions.items()))
            if len(self._sessions) <= self.max_sessions and now - oldest.last_seen < self.idle_seconds:
                break
            del self._sessions[identity]
            oldest.close()
            logger.info("Closed idle counsel session for %s", identity)

    async def aclose(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()
        if self.store is not None:
            self.store.close()
        aclose = getattr(self.client, "aclose", None)
        if aclose is not None:
            await aclose()


def build_registry(settings: Optional[Settings] = None) -> SessionRegistry:
    settings = settings or get_settings()
    store: Optional[HistoryStore] = None
    init_error: Optional[InitializationError] = None
    try:
        store = build_store(settings)
    except InitializationError as e:
        logger.error("Initialization failed; history disabled: %s", e)
        init_error = e
    return SessionRegistry(
        GeminiClient(settings),
        store=store,
        init_error=init_error,
        initial_token=settings.INITIAL_AUTH_TOKEN,
        max_sessions=settings.MAX_SESSIONS,
        idle_seconds=settings.SESSION_IDLE_SECONDS,
    )
