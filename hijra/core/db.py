"""
SQLAlchemy engine, session, and base. DB path from config or default.
"""
import logging
from pathlib import Path
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session

logger = logging.getLogger(__name__)

Base = declarative_base()

DEFAULT_DB_DIR = Path.home() / ".hijra"


def resolve_db_url(config_data: Optional[Dict[str, Any]] = None, db_url: Optional[str] = None) -> str:
    """Pick the SQLAlchemy URL: explicit db_url, then database.path from config, then ~/.hijra/hijra.db."""
    if db_url:
        return db_url
    if config_data:
        path = (config_data.get("database") or {}).get("path")
        if path:
            path = Path(path).expanduser().resolve()
            path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite:///{path}"
    DEFAULT_DB_DIR.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{DEFAULT_DB_DIR / 'hijra.db'}"


class Database:
    """
    Owns one engine and its session factory. Constructed explicitly and passed
    to whatever needs storage, so tests can run against a throwaway file.
    """

    def __init__(self, config_data: Optional[Dict[str, Any]] = None, db_url: Optional[str] = None):
        self.url = resolve_db_url(config_data, db_url)
        # The sync timer and API worker threads share this engine
        connect_args = {"check_same_thread": False} if self.url.startswith("sqlite") else {}
        self.engine = create_engine(self.url, echo=False, future=True, connect_args=connect_args)

        # Import model modules so tables are registered with Base
        from hijra.prayer import models as _prayer_models  # noqa: F401

        Base.metadata.create_all(self.engine)
        self._session_factory = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False
        )
        logger.info(f"Database initialized: {self.url.split('?')[0]}")

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Context manager for a single DB session. Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
