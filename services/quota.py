import enum
import logging
from dataclasses import dataclass
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from errors import Unauthorized
from services.companion_service import count_user_companions

logger = logging.getLogger(__name__)

PRO_PLAN = "pro"

# Checked in order; the first matching feature wins
FEATURE_LIMITS = (
    ("3_companion_limit", 3),
    ("10_companion_limit", 10),
)


class QuotaTier(str, enum.Enum):
    unlimited = "unlimited"
    tiered = "tiered"
    none = "none"


@dataclass(frozen=True)
class Quota:
    tier: QuotaTier
    limit: Optional[int] = None  # None means unlimited

    def allows(self, owned: int) -> bool:
        if self.tier is QuotaTier.unlimited:
            return True
        return owned < self.limit


def resolve_quota(auth) -> Quota:
    if auth.has(plan=PRO_PLAN):
        return Quota(QuotaTier.unlimited)
    for feature, limit in FEATURE_LIMITS:
        if auth.has(feature=feature):
            return Quota(QuotaTier.tiered, limit)
    return Quota(QuotaTier.none, 0)


async def new_companion_permissions(db: AsyncSession, auth) -> bool:
    """
    Whether the caller may create another companion. The owned count is read
    live on every call; nothing is cached between calls.
    """
    if not auth.is_authenticated:
        raise Unauthorized()

    quota = resolve_quota(auth)
    if quota.tier is QuotaTier.unlimited:
        return True
    if quota.limit == 0:
        return False

    owned = await count_user_companions(db, auth.user_id)
    allowed = quota.allows(owned)
    if not allowed:
        logger.info(f"Quota reached for {auth.user_id}: {owned}/{quota.limit}")
    return allowed
