from datetime import datetime, timezone
from typing import Optional

from pydantic import field_validator

from .base import FrozenModel, TimestampedModel


class SessionRecordCreate(FrozenModel):
    """A counsel interaction about to be appended to an identity's history."""

    problem: str
    counsel: str
    user_id: str


class SessionRecord(TimestampedModel):
    """A stored counsel interaction.

    ``timestamp`` is assigned by the store and is ``None`` while a server
    timestamp has not resolved yet.
    """

    id: str
    problem: str
    counsel: str
    user_id: str

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # SQLite hands back naive datetimes
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v
