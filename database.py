from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from typing import AsyncGenerator

from config.settings import settings, IS_PRODUCTION

# The ledger relies on conditional UPDATEs and unique constraints; production needs Postgres
if IS_PRODUCTION:
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL must be set in production. SQLite is not allowed in production.")
    if "sqlite" in settings.database_url.lower():
        raise RuntimeError("SQLite is forbidden in production. Use a PostgreSQL DATABASE_URL.")

DATABASE_URL = settings.database_url or "sqlite+aiosqlite:///./sql_app.db"


def to_async_url(url: str) -> str:
    """Point plain postgres URLs (as handed out by hosting platforms) at the asyncpg driver."""
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def engine_options(url: str) -> dict:
    """
    Driver-specific engine arguments.

    SQLite serializes writers, so concurrent credit deductions wait on the
    file lock instead of failing immediately. Postgres connections are
    checked before use since the hosted database drops idle ones.
    """
    if url.startswith("sqlite"):
        return {"connect_args": {"timeout": 15}}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


ASYNC_DATABASE_URL = to_async_url(DATABASE_URL)

engine = create_async_engine(
    ASYNC_DATABASE_URL,
    echo=False,
    future=True,
    **engine_options(ASYNC_DATABASE_URL),
)

Base = declarative_base()

# One session per request; objects stay usable after commit for building responses
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def init_db():
    """
    Create the profile and credit ledger tables if they do not exist.
    Called once on application startup.
    """
    from database_models import UserProfile, UserCredits  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session dependency.

    Commits when the handler returns normally and rolls back when it raises.
    The Entitlement Gate commits its own deduction before the vendor call, so
    a later failure in the handler never undoes a consumed credit.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
