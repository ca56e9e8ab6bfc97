import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, scoped_session, sessionmaker

from ..config import get_settings

logger = logging.getLogger(__name__)

DATABASE_URL = get_settings().DATABASE_URL

# Create SQLAlchemy engine
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)

# Create a scoped session factory
SessionLocal = scoped_session(sessionmaker(autocommit=False, autoflush=False, bind=engine))

# Base class for SQLAlchemy models
Base = declarative_base()


def init_db(bind=None) -> None:
    """Create the history tables on ``bind`` (the default engine if omitted)."""
    # Import models so they are registered with Base
    from ..models import sql_models  # noqa: F401

    target = bind if bind is not None else engine
    logger.info("Creating database tables on %s", target.url)
    Base.metadata.create_all(bind=target)
