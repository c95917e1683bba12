from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.ext.asyncio import AsyncSession
from auth import AuthContext, require_user
from database import get_db
from routers.companions_router import CompanionOut
from services.bookmark_service import add_bookmark, remove_bookmark, get_bookmarked_companions
from services.page_cache import PageCache, get_page_cache

router = APIRouter()


class BookmarkRequest(BaseModel):
    path: Optional[str] = None

    @field_validator("path")
    @classmethod
    def validate_path(cls, v):
        if v is not None and not v.startswith("/"):
            raise ValueError("path must be an absolute route path")
        return v


class BookmarkState(BaseModel):
    companion_id: str
    bookmarked: bool


@router.post("/companions/{companion_id}/bookmark", response_model=BookmarkState)
async def bookmark(
    companion_id: str,
    body: Optional[BookmarkRequest] = None,
    ctx: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    cache: PageCache = Depends(get_page_cache),
):
    path = body.path if body else None
    await add_bookmark(db, companion_id, ctx.user_id, path=path, cache=cache)
    if path != "/my-journey":
        await cache.revalidate("/my-journey")
    return {"companion_id": companion_id, "bookmarked": True}


@router.delete("/companions/{companion_id}/bookmark", response_model=BookmarkState)
async def unbookmark(
    companion_id: str,
    path: Optional[str] = Query(None, pattern=r"^/"),
    ctx: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    cache: PageCache = Depends(get_page_cache),
):
    await remove_bookmark(db, companion_id, ctx.user_id, path=path, cache=cache)
    if path != "/my-journey":
        await cache.revalidate("/my-journey")
    return {"companion_id": companion_id, "bookmarked": False}


@router.get("/users/me/bookmarks", response_model=List[CompanionOut])
async def my_bookmarks(ctx: AuthContext = Depends(require_user), db: AsyncSession = Depends(get_db)):
    return await get_bookmarked_companions(db, ctx.user_id)
