from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import declarative_base

# Used when STORAGE_BACKEND=sql is forced without a DATABASE_URL
DEFAULT_SQLITE_URL = "sqlite+aiosqlite:///./jellyfin_signup.db"

# Create declarative base for models
Base = declarative_base()


def normalize_database_url(url: str) -> str:
    """
    Map plain connection strings onto the async drivers SQLAlchemy needs.

    - file:/path/app.db and bare *.db paths become sqlite+aiosqlite URLs
    - postgresql:// and postgres:// use asyncpg
    - sqlite:// without a driver uses aiosqlite
    """
    if url.startswith("file:"):
        return "sqlite+aiosqlite:///" + url[len("file:"):]
    if url.endswith(".db") and "://" not in url:
        return "sqlite+aiosqlite:///" + url
    if url.startswith("postgres://"):
        return "postgresql+asyncpg://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    if url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + url[len("sqlite://"):]
    return url


def create_engine_for_url(url: str) -> AsyncEngine:
    """Create an async engine for the given (possibly plain) database URL."""
    url = normalize_database_url(url)
    kwargs = {}
    if url.startswith("sqlite") and ":memory:" in url:
        # One shared connection, otherwise every session sees an empty database
        kwargs["poolclass"] = StaticPool
    return create_async_engine(
        url,
        echo=False,
        future=True,
        **kwargs,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create async session factory bound to the engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine):
    """
    Initialize the database by creating all tables.
    This should be called on application startup.
    """
    async with engine.begin() as conn:
        # Import models here to ensure they're registered with Base
        import database_models  # noqa: F401
        # Create all tables
        await conn.run_sync(Base.metadata.create_all)
