import logging
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from config import settings
from database import datastore_errors
from errors import Unauthorized, ValidationError
from models import Companion, SessionHistory
from services.companion_service import get_companion

logger = logging.getLogger(__name__)


async def add_to_session_history(db: AsyncSession, companion_id: str, user_id: Optional[str]) -> SessionHistory:
    """
    Records one completed conversation. Every call inserts a new row,
    so calling twice for the same pair yields two entries.
    """
    if not user_id:
        raise Unauthorized()

    await get_companion(db, companion_id)

    entry = SessionHistory(companion_id=companion_id, user_id=user_id)
    async with datastore_errors(db):
        db.add(entry)
        await db.commit()
        await db.refresh(entry)

    logger.info(f"Session recorded: user={user_id} companion={companion_id}")
    return entry


def _sessions_query(limit: int):
    if limit < 1:
        raise ValidationError("limit must be a positive integer")
    return (
        select(Companion)
        .join(SessionHistory, SessionHistory.companion_id == Companion.id)
        .order_by(SessionHistory.created_at.desc())
        .limit(limit)
    )


async def get_recent_sessions(db: AsyncSession, limit: int = settings.DEFAULT_HISTORY_LIMIT):
    # Flattened join: a companion appears once per session it was used in
    async with datastore_errors(db):
        result = await db.execute(_sessions_query(limit))
        return list(result.scalars().all())


async def get_user_sessions(db: AsyncSession, user_id: str, limit: int = settings.DEFAULT_HISTORY_LIMIT):
    query = _sessions_query(limit).where(SessionHistory.user_id == user_id)
    async with datastore_errors(db):
        result = await db.execute(query)
        return list(result.scalars().all())
