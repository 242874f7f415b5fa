"""Database connection and session management using SQLAlchemy with async support."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)

from .config import Settings, get_global_settings
from .enums import DatabaseProvider


def build_database_url(settings: Settings) -> str:
    """
    Resolve the async SQLAlchemy URL for the configured provider.

    SQLite uses ``STATS_DB_PATH`` and creates its parent directory. Postgres
    reads ``DATABASE_URL`` and upgrades plain ``postgres://`` URLs to the
    asyncpg driver.
    """
    if settings.db_provider == DatabaseProvider.SQLITE:
        path = Path(settings.stats_db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite+aiosqlite:///{path}"

    url = settings.database_url.strip()
    if not url:
        raise ValueError("DATABASE_URL is required when DB_PROVIDER=postgres")
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


class DatabaseManager:
    """Database connection and session manager."""

    def __init__(self, database_url: Optional[str] = None, echo: Optional[bool] = None):
        """Initialize database manager with async engine."""
        settings = get_global_settings()
        self.database_url = database_url or build_database_url(settings)

        self.engine = create_async_engine(
            self.database_url,
            echo=settings.debug if echo is None else echo,
            future=True,
        )

        self.async_session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session with proper cleanup."""
        async with self.async_session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()
