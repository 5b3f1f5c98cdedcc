from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import Settings
from .models import Base


class Database:
    """Engine and session factory shared by every request of one process."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self.sessionmaker = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        options: dict[str, object] = {"echo": settings.echo_sql}
        if not settings.database_url.startswith("sqlite"):
            options.update(pool_pre_ping=True, pool_recycle=3600)
        return cls(create_async_engine(settings.database_url, **options))

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
