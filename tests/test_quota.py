import pytest
from auth import AuthContext
from errors import Unauthorized
from models import Companion
from services.quota import QuotaTier, resolve_quota, new_companion_permissions
from conftest import COMPANION_PAYLOAD


def ctx(plan=None, *features, user_id="user_1"):
    return AuthContext(user_id=user_id, plan=plan, features=frozenset(features))


def test_pro_plan_is_unlimited():
    quota = resolve_quota(ctx("pro", "3_companion_limit"))
    assert quota.tier is QuotaTier.unlimited
    assert quota.limit is None


def test_feature_flags_grant_tiered_limits():
    assert resolve_quota(ctx(None, "3_companion_limit")).limit == 3
    assert resolve_quota(ctx(None, "10_companion_limit")).limit == 10
    assert resolve_quota(ctx(None, "10_companion_limit")).tier is QuotaTier.tiered


def test_three_companion_flag_is_checked_first():
    assert resolve_quota(ctx(None, "10_companion_limit", "3_companion_limit")).limit == 3


def test_no_entitlement_means_no_creation():
    quota = resolve_quota(ctx("free", "some_other_feature"))
    assert quota.tier is QuotaTier.none
    assert quota.limit == 0
    assert not quota.allows(0)


@pytest.mark.asyncio
async def test_three_limit_with_three_owned_is_denied(db_session, make_companion):
    for _ in range(3):
        await make_companion(author="user_1")
    assert await new_companion_permissions(db_session, ctx(None, "3_companion_limit")) is False


@pytest.mark.asyncio
async def test_three_limit_with_two_owned_is_allowed(db_session, make_companion):
    for _ in range(2):
        await make_companion(author="user_1")
    assert await new_companion_permissions(db_session, ctx(None, "3_companion_limit")) is True


@pytest.mark.asyncio
async def test_pro_with_hundred_companions_is_allowed(db_session):
    db_session.add_all([Companion(**COMPANION_PAYLOAD, author="user_1") for _ in range(100)])
    await db_session.commit()
    assert await new_companion_permissions(db_session, ctx("pro")) is True


@pytest.mark.asyncio
async def test_only_own_companions_count(db_session, make_companion):
    for _ in range(3):
        await make_companion(author="user_2")
    assert await new_companion_permissions(db_session, ctx(None, "3_companion_limit")) is True


@pytest.mark.asyncio
async def test_count_is_read_live(db_session, make_companion):
    auth = ctx(None, "3_companion_limit")
    for _ in range(2):
        await make_companion(author="user_1")
    assert await new_companion_permissions(db_session, auth) is True

    await make_companion(author="user_1")
    assert await new_companion_permissions(db_session, auth) is False


@pytest.mark.asyncio
async def test_without_entitlement_creation_is_denied(db_session):
    assert await new_companion_permissions(db_session, ctx()) is False


@pytest.mark.asyncio
async def test_anonymous_caller_is_unauthorized(db_session):
    with pytest.raises(Unauthorized):
        await new_companion_permissions(db_session, AuthContext())
