from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession
from auth import AuthContext, require_user
from config import settings
from database import get_db
from routers.companions_router import CompanionOut
from services.page_cache import PageCache, get_page_cache
from services.session_history import add_to_session_history, get_recent_sessions, get_user_sessions

router = APIRouter()


class SessionEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    companion_id: str
    user_id: str
    created_at: Optional[datetime] = None


@router.post("/companions/{companion_id}/sessions", response_model=SessionEntryOut, status_code=201)
async def record_session(
    companion_id: str,
    ctx: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    cache: PageCache = Depends(get_page_cache),
):
    entry = await add_to_session_history(db, companion_id, ctx.user_id)
    await cache.revalidate("/")
    await cache.revalidate("/my-journey")
    return entry


@router.get("/sessions/recent", response_model=List[CompanionOut])
async def recent_sessions(
    limit: int = Query(settings.DEFAULT_HISTORY_LIMIT, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await get_recent_sessions(db, limit=limit)


@router.get("/users/me/sessions", response_model=List[CompanionOut])
async def my_sessions(
    limit: int = Query(settings.DEFAULT_HISTORY_LIMIT, ge=1, le=100),
    ctx: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_user_sessions(db, ctx.user_id, limit=limit)
