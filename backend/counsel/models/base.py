from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_serializer


class FrozenModel(BaseModel):
    """Base for immutable records; updates go through ``model_copy``."""

    model_config = ConfigDict(
        frozen=True,
        from_attributes=True,
    )


class TimestampedModel(FrozenModel):
    timestamp: Optional[datetime] = None

    @field_serializer("timestamp", when_used="always")
    def _serialize_timestamp(self, v: Optional[datetime]) -> Optional[str]:
        return v.isoformat() if v else None
