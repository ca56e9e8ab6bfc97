from typing import List, Optional

from pydantic import BaseModel

from .models.state import AppState

PAGE_TITLE = "Biblical Counsel"
INPUT_LABEL = "What is on your heart or mind?"
INPUT_PLACEHOLDER = "Describe your situation, question, or struggle here..."
COUNSEL_BUTTON = "Get Biblical Counsel ✨"
PRAYER_BUTTON = "Generate Prayer Prompt ✨"
STEPS_BUTTON = "Suggest Actionable Steps ✨"
ERROR_HEADING = "Error!"
HISTORY_HEADING = "Past Sessions"
HISTORY_EMPTY = "No past sessions yet."
REQUEST_FAILED = "The server could not be reached. Please try again."

COUNSEL_TITLE = "Counsel from God's Word:"
PRAYER_TITLE = "Prayer Prompt:"
STEPS_TITLE = "Actionable Steps & Reflection:"


class Panel(BaseModel):
    key: str
    title: str
    body: str


class HistoryEntry(BaseModel):
    id: str
    problem: str
    counsel: str
    timestamp: Optional[str] = None


class ViewModel(BaseModel):
    problem_text: str
    # Every trigger is disabled while any action is in flight
    controls_disabled: bool
    loading_counsel: bool
    loading_prayer: bool
    loading_actions: bool
    error: str
    show_followups: bool
    panels: List[Panel]
    history_enabled: bool
    history: List[HistoryEntry]


def present(state: AppState, history_enabled: bool = False) -> ViewModel:
    panels = []
    if state.counsel:
        panels.append(Panel(key="counsel", title=COUNSEL_TITLE, body=state.counsel))
    if state.prayer_prompt:
        panels.append(Panel(key="prayer", title=PRAYER_TITLE, body=state.prayer_prompt))
    if state.actionable_steps:
        panels.append(Panel(key="steps", title=STEPS_TITLE, body=state.actionable_steps))

    history = [
        HistoryEntry(
            id=r.id,
            problem=r.problem,
            counsel=r.counsel,
            timestamp=r.timestamp.isoformat() if r.timestamp else None,
        )
        for r in state.history
    ] if history_enabled else []

    return ViewModel(
        problem_text=state.problem_text,
        controls_disabled=state.busy,
        loading_counsel=state.is_loading_counsel,
        loading_prayer=state.is_loading_prayer,
        loading_actions=state.is_loading_actions,
        error=state.error,
        show_followups=bool(state.counsel),
        panels=panels,
        history_enabled=history_enabled,
        history=history,
    )
