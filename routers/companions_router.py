from datetime import datetime
from typing import Optional, List
from fastapi import APIRouter, Body, Depends, Query, Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession
from auth import AuthContext, require_user
from config import settings
from database import get_db
from errors import QuotaExceeded
from rate_limit import limiter
from services.companion_service import (
    create_companion,
    list_companions,
    get_companion,
    list_user_companions,
)
from services.page_cache import PageCache, get_page_cache
from services.quota import new_companion_permissions

router = APIRouter()


class CompanionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    subject: str
    topic: str
    voice: str
    style: str
    duration: int
    author: str
    created_at: Optional[datetime] = None


class Permissions(BaseModel):
    allowed: bool


@router.post("/companions", response_model=CompanionOut, status_code=201)
@limiter.limit(settings.CREATE_COMPANION_RATE_LIMIT)
async def create(
    request: Request,
    payload: dict = Body(...),
    ctx: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    cache: PageCache = Depends(get_page_cache),
):
    # The repository does not re-check the quota; this is the gate
    if not await new_companion_permissions(db, ctx):
        raise QuotaExceeded()

    companion = await create_companion(db, payload, ctx.user_id)

    for path in ("/", "/companions", "/my-journey"):
        await cache.revalidate(path)
    return companion


@router.get("/companions", response_model=List[CompanionOut])
async def list_all(
    subject: Optional[str] = None,
    topic: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await list_companions(db, subject=subject, topic=topic, page=page, limit=limit)


@router.get("/companions/permissions", response_model=Permissions)
async def permissions(ctx: AuthContext = Depends(require_user), db: AsyncSession = Depends(get_db)):
    return {"allowed": await new_companion_permissions(db, ctx)}


@router.get("/companions/{companion_id}", response_model=CompanionOut)
async def get_one(companion_id: str, db: AsyncSession = Depends(get_db)):
    return await get_companion(db, companion_id)


@router.get("/users/me/companions", response_model=List[CompanionOut])
async def my_companions(ctx: AuthContext = Depends(require_user), db: AsyncSession = Depends(get_db)):
    return await list_user_companions(db, ctx.user_id)
