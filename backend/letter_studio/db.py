from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
import os
import logging
from dotenv import load_dotenv
from typing import AsyncGenerator
from contextlib import asynccontextmanager
from urllib.parse import quote_plus

from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

load_dotenv()

logger = logging.getLogger(__name__)


def build_database_url() -> str:
    """
    Resolve the async database URL.

    DATABASE_URL wins when set. Otherwise the individual DB_* parts build a
    Postgres (asyncpg) URL, and with neither present a local SQLite file is used.
    """
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    DB_USER = os.getenv("DB_USER")
    DB_PASSWORD = os.getenv("DB_PASSWORD")
    DB_HOST = os.getenv("DB_HOST")
    DB_PORT = os.getenv("DB_PORT")
    DB_NAME = os.getenv("DB_NAME")

    if all([DB_USER, DB_PASSWORD, DB_HOST, DB_PORT, DB_NAME]):
        encoded_password = quote_plus(DB_PASSWORD)
        return f"postgresql+asyncpg://{DB_USER}:{encoded_password}@{DB_HOST}:{DB_PORT}/{DB_NAME}"

    return "sqlite+aiosqlite:///./letter_studio.db"


DATABASE_URL = build_database_url()
logger.info("DATABASE_URL constructed for SQLAlchemy engine.")

engine = create_async_engine(DATABASE_URL, echo=os.getenv("SQL_ECHO", "false").lower() == "true")

# The instrumentor hooks the synchronous engine underneath the async wrapper
SQLAlchemyInstrumentor().instrument(
    engine=engine.sync_engine,
    enable_commenter=True,
    commenter_options={}
)

async_session_maker = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)


# for dependency injection
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session



@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Session for scripts: commits on success, rolls back on error."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
