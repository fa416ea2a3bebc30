"""
BETSYNC - Transactional Store
Async database connections with connection pooling and health monitoring
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, select, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from app.core.config import settings

logger = logging.getLogger(__name__)

# Base class for SQLAlchemy models
Base = declarative_base()


class DatabaseManager:
    """Database manager with connection pooling and monitoring"""

    def __init__(self, url: Optional[str] = None):
        self._url = url or settings.get_database_url()
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None
        self._connection_stats: Dict[str, Any] = {
            "total_connections": 0,
            "active_connections": 0,
            "queries_executed": 0,
            "errors": 0
        }

    @property
    def is_sqlite(self) -> bool:
        return self._url.startswith("sqlite")

    async def initialize(self) -> None:
        """Initialize database engine and session factory"""
        if self._engine is not None:
            return

        logger.info("Initializing database connection...")

        if self.is_sqlite:
            self._engine = create_async_engine(
                self._url,
                echo=settings.DATABASE_ECHO,
                connect_args={"timeout": settings.DATABASE_POOL_TIMEOUT},
            )
        else:
            self._engine = create_async_engine(
                self._url,
                pool_size=settings.DATABASE_POOL_SIZE,
                max_overflow=settings.DATABASE_MAX_OVERFLOW,
                pool_timeout=settings.DATABASE_POOL_TIMEOUT,
                pool_recycle=settings.DATABASE_POOL_RECYCLE,
                echo=settings.DATABASE_ECHO,
                pool_pre_ping=True,
            )

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False
        )

        self._setup_event_listeners()

        logger.info("Database connection initialized successfully")

    def _setup_event_listeners(self) -> None:
        """Set up SQLAlchemy event listeners for monitoring"""
        if not self._engine:
            return

        @event.listens_for(self._engine.sync_engine, "checkout")
        def receive_checkout(dbapi_connection, connection_record, connection_proxy):
            self._connection_stats["active_connections"] += 1

        @event.listens_for(self._engine.sync_engine, "checkin")
        def receive_checkin(dbapi_connection, connection_record):
            self._connection_stats["active_connections"] -= 1

        @event.listens_for(self._engine.sync_engine, "connect")
        def receive_connect(dbapi_connection, connection_record):
            self._connection_stats["total_connections"] += 1
            if self.is_sqlite:
                # Let SQLAlchemy emit BEGIN itself
                dbapi_connection.isolation_level = None

        if self.is_sqlite:
            # SQLite has no row locks; take the write lock up front so
            # concurrent transactions serialize instead of failing to upgrade.
            @event.listens_for(self._engine.sync_engine, "begin")
            def receive_begin(conn):
                conn.exec_driver_sql("BEGIN IMMEDIATE")

    async def create_all(self) -> None:
        """Create all tables (development and tests; production uses alembic)"""
        if not self._engine:
            await self.initialize()

        import app.models.models  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Close database connection pool"""
        if self._engine:
            logger.info("Closing database connection pool...")
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection pool closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get async database session with automatic cleanup"""
        if not self._session_factory:
            await self.initialize()

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                self._connection_stats["errors"] += 1
                logger.error(f"Database session error: {e}")
                raise

    async def health_check(self) -> Dict[str, Any]:
        """Check database health and connectivity"""
        try:
            start_time = asyncio.get_running_loop().time()

            async with self.session() as session:
                result = await session.execute(text("SELECT 1"))
                _ = result.scalar()

            latency_ms = (asyncio.get_running_loop().time() - start_time) * 1000

            return {
                "status": "healthy",
                "latency_ms": round(latency_ms, 2),
                "stats": self.get_stats()
            }
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {
                "status": "unhealthy",
                "error": str(e),
                "stats": self._connection_stats
            }

    def get_stats(self) -> Dict[str, Any]:
        """Get database connection statistics"""
        return dict(self._connection_stats)


class TransactionManager:
    """All-or-nothing transactions over a DatabaseManager"""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """Execute operations within a single all-or-nothing transaction"""
        async with self.db_manager.session() as session:
            async with session.begin():
                yield session


class QueryBuilder:
    """Fluent query builder for common operations"""

    def __init__(self, model: Any):
        self.model = model
        self._filters = []
        self._order_by = []
        self._limit = None

    def filter(self, *conditions) -> 'QueryBuilder':
        """Add filter conditions"""
        self._filters.extend(conditions)
        return self

    def order_by(self, *columns) -> 'QueryBuilder':
        """Add ordering"""
        self._order_by.extend(columns)
        return self

    def limit(self, limit: int) -> 'QueryBuilder':
        """Set result limit"""
        self._limit = limit
        return self

    def build(self):
        """Build SQLAlchemy select statement"""
        stmt = select(self.model)

        if self._filters:
            stmt = stmt.where(*self._filters)

        for col in self._order_by:
            stmt = stmt.order_by(col)

        if self._limit:
            stmt = stmt.limit(self._limit)

        return stmt


# Global database manager instance
db_manager = DatabaseManager()


async def init_db() -> None:
    """Initialize database; create tables directly when running on SQLite"""
    await db_manager.initialize()

    if db_manager.is_sqlite:
        await db_manager.create_all()
        logger.info("SQLite tables ensured/created")


async def close_db() -> None:
    """Close database connections"""
    await db_manager.close()
