import logging
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from config.settings import DATABASE_URL_ASYNC, DATABASE_ECHO

logger = logging.getLogger(__name__)


def create_engine_async(url, echo=False):
    """Build the async engine for ``url``.

    SQLite transactions are opened with BEGIN IMMEDIATE so that concurrent
    writers queue on the database lock instead of failing on lock upgrade.
    """
    engine = create_async_engine(url, echo=echo)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine.sync_engine, "connect")
        def do_connect(dbapi_connection, connection_record):
            # let SQLAlchemy emit BEGIN itself
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def do_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_session_factory(engine):
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# Asynchronous engine and session
if DATABASE_URL_ASYNC:
    engine_async = create_engine_async(DATABASE_URL_ASYNC, echo=DATABASE_ECHO)
    AsyncSessionLocal = create_session_factory(engine_async)
else:
    logger.error("DATABASE_URL_ASYNC is not set. Data endpoints will answer 500 until it is configured.")
    engine_async = None
    AsyncSessionLocal = None


# Base declarative class for ORM models
Base = declarative_base()


async def init_models(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

