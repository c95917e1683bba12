import logging
from typing import Optional, Iterable
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from config import settings
from database import datastore_errors
from errors import Unauthorized
from models import Bookmark, Companion
from services.companion_service import get_companion

logger = logging.getLogger(__name__)


def _pair(companion_id: str, user_id: str):
    return (Bookmark.companion_id == companion_id, Bookmark.user_id == user_id)


async def add_bookmark(
    db: AsyncSession,
    companion_id: str,
    user_id: Optional[str],
    path: Optional[str] = None,
    cache=None,
    deduplicate: Optional[bool] = None,
) -> Bookmark:
    """
    Bookmarks a companion for a user.

    With deduplication on (BOOKMARK_DEDUPLICATE, the default) an existing
    (companion, user) row is returned instead of inserting a second one.
    With it off every call inserts, matching a store that has no unique key.
    """
    if not user_id:
        raise Unauthorized()
    if deduplicate is None:
        deduplicate = settings.BOOKMARK_DEDUPLICATE

    await get_companion(db, companion_id)

    async with datastore_errors(db):
        bookmark = None
        if deduplicate:
            result = await db.execute(select(Bookmark).where(*_pair(companion_id, user_id)).limit(1))
            bookmark = result.scalars().first()

        if bookmark is None:
            bookmark = Bookmark(companion_id=companion_id, user_id=user_id)
            db.add(bookmark)
            await db.commit()
            await db.refresh(bookmark)
            logger.info(f"Bookmark added: user={user_id} companion={companion_id}")

    if path and cache is not None:
        await cache.revalidate(path)
    return bookmark


async def remove_bookmark(
    db: AsyncSession,
    companion_id: str,
    user_id: Optional[str],
    path: Optional[str] = None,
    cache=None,
) -> int:
    """Deletes the pair. Removing a bookmark that does not exist is a no-op."""
    if not user_id:
        raise Unauthorized()

    async with datastore_errors(db):
        result = await db.execute(delete(Bookmark).where(*_pair(companion_id, user_id)))
        await db.commit()

    if result.rowcount:
        logger.info(f"Bookmark removed: user={user_id} companion={companion_id}")
    if path and cache is not None:
        await cache.revalidate(path)
    return result.rowcount or 0


async def get_bookmarked_companions(db: AsyncSession, user_id: str):
    query = (
        select(Companion)
        .join(Bookmark, Bookmark.companion_id == Companion.id)
        .where(Bookmark.user_id == user_id)
        .order_by(Bookmark.created_at.desc())
    )
    async with datastore_errors(db):
        result = await db.execute(query)
        return list(result.scalars().all())


async def get_bookmarked_ids(db: AsyncSession, user_id: Optional[str], companion_ids: Iterable[str]) -> set:
    companion_ids = list(companion_ids)
    if not user_id or not companion_ids:
        return set()
    query = select(Bookmark.companion_id).where(
        Bookmark.user_id == user_id,
        Bookmark.companion_id.in_(companion_ids),
    )
    async with datastore_errors(db):
        result = await db.execute(query)
        return set(result.scalars().all())
