from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from schooltime.core.config import settings


def build_engine(database_url: str) -> AsyncEngine:
    """Create the async engine. In-memory SQLite shares a single connection so every session sees one database."""
    options: Dict[str, Any] = {"echo": False, "future": True}
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}
    elif not database_url.startswith("sqlite"):
        # pool_pre_ping: drop connections the server closed while idle.
        # pool_recycle: discard connections after this many seconds.
        options["pool_pre_ping"] = True
        options["pool_recycle"] = 300
    return create_async_engine(database_url, **options)


engine = build_engine(settings.database_url)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def create_tables(bind: AsyncEngine = engine) -> None:
    # Register every mapped table on Base.metadata before create_all
    import schooltime.auth.models  # noqa: F401
    import schooltime.core.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
