import logging
from typing import Generator, Optional

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.models.base import Base
# Register every mapper on Base.metadata
import app.models.user  # noqa: F401
import app.models.verification  # noqa: F401

logger = logging.getLogger(__name__)


class Database:
    """
    Owns the SQLAlchemy engine (and its connection pool) for the process.

    The engine is created on first use or by an explicit `init()` call from the
    application lifespan, and released by `dispose()`. Handlers never touch it
    directly; they get a session through the `get_db` dependency.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = self._create_engine()
            self._session_factory = sessionmaker(
                bind=self._engine,
                class_=Session,
                expire_on_commit=False,
                autoflush=False,
                autocommit=False,
            )
        return self._engine

    def _create_engine(self) -> Engine:
        if self.url.startswith("sqlite"):
            kwargs = {"connect_args": {"check_same_thread": False}}
            # In-memory databases live and die with a single connection
            if self.url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
            return create_engine(self.url, echo=self.echo, **kwargs)
        return create_engine(self.url, echo=self.echo, pool_pre_ping=True)

    def init(self, create_tables: bool = True) -> None:
        engine = self.engine
        if create_tables:
            Base.metadata.create_all(bind=engine)
        logger.info("Database ready (%s)", engine.url.render_as_string(hide_password=True))

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            logger.info("Database connections released")
        self._engine = None
        self._session_factory = None

    def session(self) -> Session:
        self.engine
        return self._session_factory()


def get_db(request: Request) -> Generator[Session, None, None]:
    database: Database = request.app.state.database
    db = database.session()
    try:
        yield db
    finally:
        db.close()
