from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession


class Database:
    """Owns the engine and session factory; created lazily on first ``init()``."""

    def __init__(self, url: str) -> None:
        self.url = url
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None
        self._lock = asyncio.Lock()

    @property
    def ready(self) -> bool:
        return self._engine is not None

    async def init(self) -> None:
        if self._engine is not None:
            return
        async with self._lock:
            # Another cold start may have finished while we waited.
            if self._engine is not None:
                return
            # Import models inside to avoid circular imports.
            from defence_coach import models  # noqa: F401

            engine = create_async_engine(self.url, echo=False, future=True)
            async with engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
            self._session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
            self._engine = engine

    async def dispose(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._session_factory = None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if self._session_factory is None:
            await self.init()
        async with self._session_factory() as session:
            yield session
