import os
import logging
from dotenv import load_dotenv

load_dotenv()


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./companions.db")
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    PORT = int(os.environ.get('PORT', 8000))
    HOST = os.environ.get('HOST', '0.0.0.0')
    ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

    # Session tokens are issued by the external auth provider
    AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET", "supersecretkey") # Fallback for dev, should be set in env
    AUTH_JWT_ALGORITHM = os.getenv("AUTH_JWT_ALGORITHM", "HS256")
    AUTH_JWKS_URL = os.getenv("AUTH_JWKS_URL")
    AUTH_ISSUER = os.getenv("AUTH_ISSUER")

    PAGE_CACHE_TTL = int(os.getenv("PAGE_CACHE_TTL", 300))
    BOOKMARK_DEDUPLICATE = _bool_env("BOOKMARK_DEDUPLICATE", default=True)

    RATE_LIMIT_ENABLED = _bool_env("RATE_LIMIT_ENABLED", default=True)
    CREATE_COMPANION_RATE_LIMIT = os.getenv("CREATE_COMPANION_RATE_LIMIT", "10/minute")
    VOICE_CONNECT_LIMIT = int(os.getenv("VOICE_CONNECT_LIMIT", 30))
    VOICE_CONNECT_WINDOW = int(os.getenv("VOICE_CONNECT_WINDOW", 60))

    SEARCH_DEBOUNCE_SECONDS = float(os.getenv("SEARCH_DEBOUNCE_SECONDS", 0.3))

    # Defaults
    DEFAULT_PAGE_SIZE = 10
    DEFAULT_HISTORY_LIMIT = 10


settings = Config()


def setup_logging():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
