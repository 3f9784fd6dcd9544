"""
Async SQLAlchemy engine + session factory.

Production runs on TiDB, which is wire-compatible with MySQL 5.7, through the
aiomysql driver. Every hand-written statement sticks to portable SQL so the
same stores run unchanged against SQLite (aiosqlite) in tests.
"""
import logging

from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from socialfeed.config import Settings, settings

logger = logging.getLogger(__name__)

# name → (level, description)
DEFAULT_ROLES = {
    "user": (1, "A user can create posts and comments"),
    "moderator": (2, "A moderator can update other users' posts"),
    "admin": (3, "An admin can update and delete other users' posts"),
}


class Base(DeclarativeBase):
    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:  # noqa: ANN001
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(cfg: Settings = settings) -> AsyncEngine:
    """Create the async engine for the configured URL."""
    url = cfg.db_url
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=cfg.db_echo)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_async_engine(
        url,
        pool_pre_ping=True,
        pool_size=cfg.db_pool_size,
        max_overflow=cfg.db_max_overflow,
        echo=cfg.db_echo,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables if they don't exist and seed reference roles (idempotent)."""
    from socialfeed.models import RoleRow

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    async with build_session_factory(engine)() as session:
        async with session.begin():
            existing = set(
                (await session.execute(select(RoleRow.name))).scalars().all()
            )
            for name, (level, description) in DEFAULT_ROLES.items():
                if name not in existing:
                    session.add(RoleRow(name=name, level=level, description=description))
                    logger.info("Seeded role %s (level=%d)", name, level)

