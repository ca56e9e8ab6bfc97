import logging
from typing import Iterable, Optional

from ..core.errors import CompletionError, PersistenceError, ValidationError
from ..models.session import SessionRecord, SessionRecordCreate
from ..models.state import AppState
from ..orchestration.llm import CompletionClient
from ..orchestration.prompts import counsel_prompt, prayer_prompt, steps_prompt
from .history import HistoryStore, sort_history

logger = logging.getLogger(__name__)

# User-facing messages
COUNSEL_INPUT_REQUIRED = "Please describe your problem or question to receive counsel."
PRAYER_INPUT_REQUIRED = "Please describe your problem or question before generating a prayer prompt."
STEPS_COUNSEL_REQUIRED = "Please receive biblical counsel before asking for actionable steps."
COUNSEL_FAILED = "We could not get counsel. Please check your internet connection and try again."
PRAYER_FAILED = "We could not generate a prayer prompt. Please try again."
STEPS_FAILED = "We could not suggest actionable steps. Please try again."
SAVE_FAILED = "Your counsel was received but could not be saved to your history."
HISTORY_FAILED = "Your past sessions could not be loaded."
INIT_FAILED = "The app could not be initialized. Past sessions are unavailable."


def _require(text: Optional[str], message: str) -> str:
    if not text or not text.strip():
        raise ValidationError(message)
    return text


class InteractionController:
    """Drives the three actions of the counsel page.

    State is an immutable ``AppState`` replaced on every transition. Each
    action converts its failures into ``state.error`` and always clears its
    own loading flag; nothing is raised to the caller.
    """

    def __init__(
        self,
        client: CompletionClient,
        store: Optional[HistoryStore] = None,
        identity: Optional[str] = None,
        initial_error: str = "",
    ):
        self.client = client
        self.store = store
        self.identity = identity
        self._state = AppState(error=initial_error)

    @property
    def state(self) -> AppState:
        return self._state

    def _advance(self, **changes) -> AppState:
        self._state = self._state.model_copy(update=changes)
        return self._state

    def report_error(self, message: str) -> AppState:
        return self._advance(error=message)

    def apply_history(self, records: Iterable[SessionRecord]) -> AppState:
        return self._advance(history=tuple(sort_history(records)))

    async def request_counsel(self, problem_text: str) -> AppState:
        if self._state.is_loading_counsel:
            logger.info("Counsel request already in flight; ignoring")
            return self._state
        try:
            _require(problem_text, COUNSEL_INPUT_REQUIRED)
        except ValidationError as e:
            return self._advance(problem_text=problem_text or "", error=str(e))

        self._advance(
            problem_text=problem_text,
            is_loading_counsel=True,
            counsel="",
            prayer_prompt="",
            actionable_steps="",
            error="",
        )
        try:
            text = await self.client.complete(counsel_prompt(problem_text))
            self._advance(counsel=text)
            if self.store is not None and self.identity:
                await self.store.append(
                    self.identity,
                    SessionRecordCreate(problem=problem_text, counsel=text, user_id=self.identity),
                )
        except CompletionError as e:
            logger.error("Error fetching biblical counsel: %s", e)
            self._advance(error=COUNSEL_FAILED)
        except PersistenceError as e:
            logger.error("Error saving counseling session: %s", e)
            self._advance(error=SAVE_FAILED)
        finally:
            self._advance(is_loading_counsel=False)
        return self._state

    async def request_prayer_prompt(self, problem_text: str) -> AppState:
        if self._state.is_loading_prayer:
            logger.info("Prayer prompt request already in flight; ignoring")
            return self._state
        try:
            _require(problem_text, PRAYER_INPUT_REQUIRED)
        except ValidationError as e:
            return self._advance(error=str(e))

        self._advance(problem_text=problem_text, is_loading_prayer=True, prayer_prompt="", error="")
        try:
            text = await self.client.complete(prayer_prompt(problem_text))
            self._advance(prayer_prompt=text)
        except CompletionError as e:
            logger.error("Error generating prayer prompt: %s", e)
            self._advance(error=PRAYER_FAILED)
        finally:
            self._advance(is_loading_prayer=False)
        return self._state

    async def request_actionable_steps(self, counsel_text: str, problem_text: str) -> AppState:
        if self._state.is_loading_actions:
            logger.info("Actionable steps request already in flight; ignoring")
            return self._state
        try:
            _require(counsel_text, STEPS_COUNSEL_REQUIRED)
        except ValidationError as e:
            return self._advance(error=str(e))

        self._advance(is_loading_actions=True, actionable_steps="", error="")
        try:
            text = await self.client.complete(steps_prompt(counsel_text, problem_text or ""))
            self._advance(actionable_steps=text)
        except CompletionError as e:
            logger.error("Error suggesting actionable steps: %s", e)
            self._advance(error=STEPS_FAILED)
        finally:
            self._advance(is_loading_actions=False)
        return self._state
