import logging
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from config import settings
from database import datastore_errors
from errors import Unauthorized, ValidationError, NotFound
from models import Companion, Subject, Voice, Style

logger = logging.getLogger(__name__)


class CompanionFields(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, use_enum_values=True, extra="ignore")

    name: str = Field(min_length=1)
    subject: Subject
    topic: str = Field(min_length=1)
    voice: Voice
    style: Style
    duration: int = Field(gt=0, strict=True)


def validate_companion_fields(fields) -> dict:
    if isinstance(fields, CompanionFields):
        return fields.model_dump()
    try:
        return CompanionFields.model_validate(fields or {}).model_dump()
    except PydanticValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise ValidationError("Invalid companion payload", errors=errors) from e


def _like(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def page_bounds(page: int, limit: int):
    """Inclusive row range for a 1-based page."""
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive integers")
    start = (page - 1) * limit
    return start, start + limit - 1


async def create_companion(db: AsyncSession, fields, author_id: Optional[str]) -> Companion:
    if not author_id:
        raise Unauthorized()

    data = validate_companion_fields(fields)
    companion = Companion(**data, author=author_id)

    async with datastore_errors(db):
        db.add(companion)
        await db.commit()
        await db.refresh(companion)

    logger.info(f"Companion {companion.id} created by {author_id}")
    return companion


async def list_companions(
    db: AsyncSession,
    subject: Optional[str] = None,
    topic: Optional[str] = None,
    page: int = 1,
    limit: int = settings.DEFAULT_PAGE_SIZE,
):
    start, end = page_bounds(page, limit)

    query = select(Companion)
    if subject:
        query = query.where(Companion.subject.ilike(_like(subject), escape="\\"))
    if topic:
        pattern = _like(topic)
        query = query.where(or_(
            Companion.topic.ilike(pattern, escape="\\"),
            Companion.name.ilike(pattern, escape="\\"),
        ))
    query = query.order_by(Companion.created_at.desc(), Companion.id).offset(start).limit(end - start + 1)

    async with datastore_errors(db):
        result = await db.execute(query)
        return list(result.scalars().all())


async def get_companion(db: AsyncSession, companion_id: str) -> Companion:
    async with datastore_errors(db):
        companion = await db.get(Companion, companion_id)
    if companion is None:
        raise NotFound(f"Companion {companion_id} not found")
    return companion


async def list_user_companions(db: AsyncSession, user_id: str):
    query = (
        select(Companion)
        .where(Companion.author == user_id)
        .order_by(Companion.created_at.desc(), Companion.id)
    )
    async with datastore_errors(db):
        result = await db.execute(query)
        return list(result.scalars().all())


async def count_user_companions(db: AsyncSession, user_id: str) -> int:
    query = select(func.count()).select_from(Companion).where(Companion.author == user_id)
    async with datastore_errors(db):
        result = await db.execute(query)
        return result.scalar_one()
