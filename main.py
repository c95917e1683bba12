import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from prometheus_fastapi_instrumentator import Instrumentator
from config import settings, setup_logging
from errors import register_exception_handlers
from rate_limit import limiter
from routers import bookmarks_router, companions_router, pages_router, sessions_router, ws_router

# Setup
setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Companion Tutor API", version="1.0")

# Rate Limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(companions_router.router, prefix="/api", tags=["companions"])
app.include_router(sessions_router.router, prefix="/api", tags=["sessions"])
app.include_router(bookmarks_router.router, prefix="/api", tags=["bookmarks"])
app.include_router(pages_router.router, prefix="/pages", tags=["pages"])
app.include_router(ws_router.router)

# Instrumentation
Instrumentator().instrument(app).expose(app)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
