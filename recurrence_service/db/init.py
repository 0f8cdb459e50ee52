"""Initialize database tables."""
import logging

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel

from recurrence_service.models.recurrence_pattern import RecurrencePatternRecord  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(engine: Engine) -> None:
    """Create all tables in the database."""
    logger.info("[DB INIT] Creating all tables...")
    SQLModel.metadata.create_all(engine)
    logger.info("[DB INIT] Tables created successfully.")


def check_db(engine: Engine) -> bool:
    """Return True when the database answers a trivial query."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"[DB INIT] Database unavailable: {e}")
        return False
