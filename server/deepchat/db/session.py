from __future__ import annotations
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker

# Register table metadata before create_all
from deepchat.db import models  # noqa: F401

logger = logging.getLogger(__name__)


class Database:
    """Process-wide database handle.

    The engine is created on first use, at most once even when several
    requests arrive together, and cached only after the tables could be
    created. A failed attempt leaves nothing cached so the next call retries.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[sessionmaker] = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._engine is not None

    async def engine(self) -> AsyncEngine:
        if self._engine is not None:
            return self._engine
        async with self._lock:
            if self._engine is None:
                engine = create_async_engine(self.url, echo=self.echo, future=True)
                try:
                    async with engine.begin() as conn:
                        await conn.run_sync(SQLModel.metadata.create_all)
                except Exception:
                    await engine.dispose()
                    logger.error("Database connection failed url=%s", self.url)
                    raise
                self._sessionmaker = sessionmaker(
                    bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False, autocommit=False
                )
                self._engine = engine
                logger.info("Database connected url=%s", self.url)
        return self._engine

    async def dispose(self) -> None:
        async with self._lock:
            if self._engine is not None:
                await self._engine.dispose()
                self._engine = None
                self._sessionmaker = None
                logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        await self.engine()
        session: AsyncSession = self._sessionmaker()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
