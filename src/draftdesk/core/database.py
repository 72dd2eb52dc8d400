"""
Database Layer

Async SQLAlchemy 2.0 setup with lazy engine creation and session management.

Design:
    - Lazy initialization: engine created on first use, not at import.
    - get_session_factory: returns a reusable async session maker and is the
      FastAPI dependency the routers resolve.

Services receive a session factory instead of a session because the
callback handler commits its sub-steps in separate transactions.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from draftdesk.core.config import settings

logger = logging.getLogger(__name__)

# Module-level singletons (lazy)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async SQLAlchemy engine (singleton)."""
    global _engine  # noqa: PLW0603
    if _engine is None:
        _engine = create_async_engine(settings.DATABASE_URL, echo=False)
        logger.info("Database engine created: %s", _engine.url.render_as_string())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory (singleton)."""
    global _session_factory  # noqa: PLW0603
    if _session_factory is None:
        # expire_on_commit=False: prevents implicit I/O after commit
        _session_factory = async_sessionmaker(
            get_engine(),
            expire_on_commit=False,
        )
    return _session_factory


async def dispose_engine() -> None:
    """Dispose the engine at application shutdown."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database engine disposed")
