from typing import Tuple

from .base import FrozenModel
from .session import SessionRecord


class AppState(FrozenModel):
    """Everything the page shows, replaced as a whole on every transition."""

    problem_text: str = ""
    counsel: str = ""
    prayer_prompt: str = ""
    actionable_steps: str = ""
    error: str = ""
    is_loading_counsel: bool = False
    is_loading_prayer: bool = False
    is_loading_actions: bool = False
    # Newest first
    history: Tuple[SessionRecord, ...] = ()

    @property
    def busy(self) -> bool:
        return self.is_loading_counsel or self.is_loading_prayer or self.is_loading_actions
