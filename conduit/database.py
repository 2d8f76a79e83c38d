import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from conduit.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class Database:
    """
    Process-wide database handle.

    ``connect`` creates the engine and session factory exactly once per
    process; later calls are no-ops, so the application lifespan, scripts
    and the test suite can all call it safely.  ``disconnect`` releases the
    connection pool and allows a fresh ``connect``.
    """

    def __init__(self) -> None:
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    def connect(self, url: str | None = None, **engine_kwargs) -> None:
        if self._engine is not None:
            return
        url = url or settings.DATABASE_URL
        engine_kwargs.setdefault("echo", settings.DEBUG)
        if not url.startswith("sqlite"):
            engine_kwargs.setdefault("pool_pre_ping", True)

        self._engine = create_async_engine(url, **engine_kwargs)
        self._sessionmaker = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("Database engine created for %s", self._engine.url.render_as_string())

    async def disconnect(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("Database connections released")

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database.connect() has not been called")
        return self._engine

    def session(self) -> AsyncSession:
        if self._sessionmaker is None:
            raise RuntimeError("Database.connect() has not been called")
        return self._sessionmaker()


database = Database()


async def get_db():
    async with database.session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
