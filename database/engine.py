import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy import BigInteger, Integer, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase

from core.config import settings

logger = logging.getLogger("database_engine")


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, applying pool limits where the driver supports them."""
    url = make_url(database_url)
    options: dict = {"echo": echo, "pool_pre_ping": True}

    if url.get_backend_name() == "sqlite":
        # SQLite needs FK enforcement turned on per connection
        engine = create_async_engine(url, echo=echo)

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    options.update(
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
    )
    if url.drivername == "postgresql+asyncpg":
        options["connect_args"] = {"command_timeout": settings.database_command_timeout}

    return create_async_engine(url, **options)


# log for debugging purposes (never the credentials)
logger.info(
    f"Connecting to database at {make_url(settings.database_url).render_as_string(hide_password=True)}"
)

db_engine = build_engine(settings.database_url)


# Create async session maker to be used throughout the application
AsyncSessionLocal = async_sessionmaker(
    db_engine, class_=AsyncSession, expire_on_commit=False
)


# Base class for declarative models
class Base(DeclarativeBase):
    pass


def import_models() -> None:
    """Import every model module so ``Base.metadata`` knows all tables."""
    import database.models.universities  # noqa: F401
    import database.models.dimensions  # noqa: F401
    import database.models.evaluations  # noqa: F401
    import database.models.rater_assignments  # noqa: F401


# Function to initialize the database (create tables)
async def init_db(engine: AsyncEngine | None = None):
    import_models()
    async with (engine or db_engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Function to close database connections
async def close_db():
    """Close database engine and connections."""
    await db_engine.dispose()


# Primary/foreign key type: BIGINT on real databases, INTEGER on SQLite so
# rowid autoincrement keeps working
BigIntId = BigInteger().with_variant(Integer, "sqlite")
