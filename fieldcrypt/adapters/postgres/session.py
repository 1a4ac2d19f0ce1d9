"""Postgres Session Management."""
import logging
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from fieldcrypt.errors import ConfigurationError
from fieldcrypt.settings import Settings

logger = logging.getLogger(__name__)


def create_session_factory(settings: Settings, engine: Optional[Engine] = None) -> sessionmaker:
    """Build a session factory bound to DATABASE_URL (or a given engine)."""
    if engine is None:
        if not settings.DATABASE_URL:
            raise ConfigurationError("DATABASE_URL must be set to use the encrypted record store.")
        engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)
        logger.info("Initialized Database Engine")
    return sessionmaker(autoflush=False, bind=engine)


def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """Dependency-style generator yielding a session and closing it afterwards."""
    db = factory()
    try:
        yield db
    finally:
        db.close()
