from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, String, Text

from ..db.base import Base


def generate_uuid():
    return str(uuid4())


def utcnow():
    return datetime.now(timezone.utc)


class CounselingSession(Base):
    """SQLAlchemy model for one stored counsel interaction.

    Rows are scoped by (app_id, user_id), the relational form of
    ``artifacts/<app_id>/users/<user_id>/counselingSessions``.
    """

    __tablename__ = "counseling_sessions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    app_id = Column(String(255), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    problem = Column(Text, nullable=False)
    counsel = Column(Text, nullable=False)
    # Assigned by the service on insert, never by the browser
    timestamp = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<CounselingSession(id='{self.id}', user_id='{self.user_id}')>"
