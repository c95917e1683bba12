import time
from dataclasses import dataclass, field
from typing import Optional, FrozenSet
import httpx
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
from config import settings
from errors import Unauthorized
from loguru import logger

bearer_scheme = HTTPBearer(auto_error=False)

JWKS_CACHE_SECONDS = 3600
_jwks_cache = {"keys": None, "fetched_at": 0.0}


@dataclass(frozen=True)
class AuthContext:
    """Identity and entitlement snapshot resolved from the provider's session token."""
    user_id: Optional[str] = None
    token: Optional[str] = None
    plan: Optional[str] = None
    features: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    def get_token(self) -> Optional[str]:
        return self.token

    def has(self, plan: Optional[str] = None, feature: Optional[str] = None) -> bool:
        if plan is not None:
            return self.plan == plan
        if feature is not None:
            return feature in self.features
        return False


ANONYMOUS = AuthContext()


def _strip_scope(value: str) -> str:
    # Compact provider claims are scoped, e.g. "u:pro" or "o:team_plan"
    value = value.strip()
    if len(value) > 2 and value[1] == ":":
        return value[2:]
    return value


def _parse_features(raw) -> FrozenSet[str]:
    if not raw:
        return frozenset()
    if isinstance(raw, str):
        raw = raw.split(",")
    return frozenset(_strip_scope(f) for f in raw if f and f.strip())


def context_from_claims(claims: dict, token: Optional[str] = None) -> AuthContext:
    plan = claims.get("plan")
    if plan is None and claims.get("pla"):
        plan = _strip_scope(claims["pla"])
    features = _parse_features(claims.get("features") or claims.get("fea"))
    return AuthContext(user_id=claims.get("sub"), token=token, plan=plan, features=features)


@retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=4), retry=retry_if_exception_type(httpx.ConnectError), reraise=True)
async def fetch_jwks(url: str) -> dict:
    async with httpx.AsyncClient(timeout=10) as client:
        response = await client.get(url)
    response.raise_for_status()
    return response.json()


async def get_signing_key():
    if not settings.AUTH_JWKS_URL:
        return settings.AUTH_JWT_SECRET

    now = time.monotonic()
    if _jwks_cache["keys"] is None or now - _jwks_cache["fetched_at"] > JWKS_CACHE_SECONDS:
        _jwks_cache["keys"] = await fetch_jwks(settings.AUTH_JWKS_URL)
        _jwks_cache["fetched_at"] = now
    return _jwks_cache["keys"]


async def decode_session_token(token: str) -> Optional[dict]:
    if not token:
        return None
    algorithms = ["RS256"] if settings.AUTH_JWKS_URL else [settings.AUTH_JWT_ALGORITHM]
    try:
        key = await get_signing_key()
        payload = jwt.decode(
            token,
            key,
            algorithms=algorithms,
            issuer=settings.AUTH_ISSUER,
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.warning(f"Rejected session token: {e}")
        return None
    except httpx.HTTPError as e:
        logger.error(f"Could not fetch signing keys: {e}")
        return None

    if payload.get("sub") is None:
        return None
    return payload


async def resolve_token(token: Optional[str]) -> AuthContext:
    claims = await decode_session_token(token) if token else None
    if claims is None:
        return ANONYMOUS
    return context_from_claims(claims, token=token)


async def get_auth(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> AuthContext:
    if credentials is None:
        return ANONYMOUS
    return await resolve_token(credentials.credentials)


async def require_user(ctx: AuthContext = Depends(get_auth)) -> AuthContext:
    if not ctx.is_authenticated:
        raise Unauthorized()
    return ctx
