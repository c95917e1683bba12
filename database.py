import logging
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from config import settings
from errors import DatastoreError

logger = logging.getLogger(__name__)

raw_url = settings.DATABASE_URL
if raw_url.startswith("postgresql+psycopg") or raw_url.startswith("postgresql://"):
    # if someone provided a sync URL by mistake, upgrade it to async
    DATABASE_URL = raw_url.replace("postgresql+psycopg", "postgresql+asyncpg", 1).replace(
        "postgresql://", "postgresql+asyncpg://", 1
    )
else:
    DATABASE_URL = raw_url

engine = create_async_engine(DATABASE_URL, echo=False, future=True)
AsyncSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
Base = declarative_base()


async def get_db():
    # One session per request; nothing is shared across requests
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def datastore_errors(db: AsyncSession):
    """Roll back and rethrow any query failure as DatastoreError."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"Datastore Error: {e}")
        await db.rollback()
        raise DatastoreError(str(e)) from e


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
