"""
Page data for the web client, cached per route path.

Bookmark, session and companion mutations revalidate these paths so the
next read is rendered fresh.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from auth import AuthContext, get_auth, require_user
from database import get_db
from services.bookmark_service import get_bookmarked_companions, get_bookmarked_ids
from services.companion_service import get_companion, list_companions, list_user_companions
from services.page_cache import PageCache, get_page_cache
from services.quota import new_companion_permissions
from services.session_history import get_recent_sessions, get_user_sessions

router = APIRouter()

HOME_COMPANION_COUNT = 3


def _variant(ctx: AuthContext, request: Request) -> str:
    return f"{ctx.user_id or 'anonymous'}?{request.url.query}"


async def _cards(db: AsyncSession, ctx: AuthContext, companions):
    bookmarked = await get_bookmarked_ids(db, ctx.user_id, {c.id for c in companions})
    return [{**c.to_dict(), "bookmarked": c.id in bookmarked} for c in companions]


@router.get("/")
async def home(
    request: Request,
    ctx: AuthContext = Depends(get_auth),
    db: AsyncSession = Depends(get_db),
    cache: PageCache = Depends(get_page_cache),
):
    async def render():
        companions = await list_companions(db, limit=HOME_COMPANION_COUNT)
        recent = await get_recent_sessions(db)
        return {
            "companions": await _cards(db, ctx, companions),
            "recent_sessions": [c.to_dict() for c in recent],
        }

    return await cache.get_or_render("/", _variant(ctx, request), render)


@router.get("/companions")
async def companion_library(
    request: Request,
    subject: Optional[str] = None,
    topic: Optional[str] = None,
    ctx: AuthContext = Depends(get_auth),
    db: AsyncSession = Depends(get_db),
    cache: PageCache = Depends(get_page_cache),
):
    async def render():
        companions = await list_companions(db, subject=subject, topic=topic)
        return {
            "filters": {"subject": subject or "", "topic": topic or ""},
            "companions": await _cards(db, ctx, companions),
        }

    return await cache.get_or_render("/companions", _variant(ctx, request), render)


@router.get("/companions/new")
async def companion_builder(ctx: AuthContext = Depends(require_user), db: AsyncSession = Depends(get_db)):
    # Never cached: the permission reflects the live companion count
    return {"can_create": await new_companion_permissions(db, ctx)}


@router.get("/companions/{companion_id}")
async def companion_lesson(
    companion_id: str,
    request: Request,
    ctx: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    cache: PageCache = Depends(get_page_cache),
):
    async def render():
        companion = await get_companion(db, companion_id)
        cards = await _cards(db, ctx, [companion])
        return {"companion": cards[0], "user": {"id": ctx.user_id}}

    return await cache.get_or_render(f"/companions/{companion_id}", _variant(ctx, request), render)


@router.get("/my-journey")
async def my_journey(
    request: Request,
    ctx: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    cache: PageCache = Depends(get_page_cache),
):
    async def render():
        companions = await list_user_companions(db, ctx.user_id)
        sessions = await get_user_sessions(db, ctx.user_id)
        bookmarks = await get_bookmarked_companions(db, ctx.user_id)
        return {
            "stats": {
                "lessons_completed": len(sessions),
                "companions_created": len(companions),
            },
            "companions": [c.to_dict() for c in companions],
            "session_history": [c.to_dict() for c in sessions],
            "bookmarks": [c.to_dict() for c in bookmarks],
        }

    return await cache.get_or_render("/my-journey", _variant(ctx, request), render)
