import logging
import asyncio
import json
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends
from starlette.websockets import WebSocketState
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession
from auth import resolve_token
from config import settings
from database import get_db
from errors import AppError, NotFound
from services.companion_service import get_companion, list_companions
from services.debounce import Debouncer
from services.session_history import add_to_session_history
from services.voice_session import VoiceEvent, VoiceSession

logger = logging.getLogger(__name__)
router = APIRouter()
redis_client = Redis.from_url(settings.REDIS_URL, decode_responses=True)

# Fixed window starting at the first connect; the key expires with the window
RATE_LIMIT_SCRIPT = """
local current = redis.call("INCR", KEYS[1])
if current == 1 then
    redis.call("EXPIRE", KEYS[1], ARGV[1])
end
return current
"""


async def check_rate_limit(user: str) -> bool:
    key = f"rate_limit:voice:{user}"
    current = await redis_client.eval(RATE_LIMIT_SCRIPT, 1, key, settings.VOICE_CONNECT_WINDOW)
    return current <= settings.VOICE_CONNECT_LIMIT


class WebSocketTransport:
    """Relays voice SDK commands to the browser, which owns the SDK instance."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._muted = False

    async def start(self, assistant: dict, overrides: dict):
        await self.websocket.send_json({
            "type": "command",
            "command": "start",
            "assistant": assistant,
            "overrides": overrides,
        })

    async def stop(self):
        await self.websocket.send_json({"type": "command", "command": "stop"})

    def is_muted(self) -> bool:
        return self._muted

    async def set_muted(self, muted: bool):
        await self.websocket.send_json({"type": "command", "command": "set_muted", "muted": muted})
        self._muted = muted


def _connected(websocket: WebSocket) -> bool:
    return websocket.client_state == WebSocketState.CONNECTED


@router.websocket("/ws/companions/search")
async def search_companions(websocket: WebSocket, db: AsyncSession = Depends(get_db)):
    await websocket.accept()

    async def lookup(subject, topic):
        try:
            companions = await list_companions(db, subject=subject, topic=topic)
        except AppError as e:
            await websocket.send_json({"type": "error", "message": e.message})
            return
        if _connected(websocket):
            await websocket.send_json({
                "type": "results",
                "filters": {"subject": subject or "", "topic": topic or ""},
                "companions": [c.to_dict() for c in companions],
            })

    debouncer = Debouncer(settings.SEARCH_DEBOUNCE_SECONDS, lookup)
    try:
        while True:
            text = await websocket.receive_text()
            try:
                query = json.loads(text)
            except json.JSONDecodeError:
                query = None
            if not isinstance(query, dict):
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue
            debouncer.trigger(query.get("subject") or None, query.get("topic") or None)
    except WebSocketDisconnect:
        logger.info("Search client disconnected")
    finally:
        debouncer.cancel()


@router.websocket("/ws/companions/{companion_id}/voice")
async def voice_session(websocket: WebSocket, companion_id: str, token: str = None, db: AsyncSession = Depends(get_db)):
    # Verify Token
    if not token:
        token = websocket.query_params.get("token")

    ctx = await resolve_token(token)
    if not ctx.is_authenticated:
        await websocket.close(code=4001, reason="Unauthorized")
        return

    if not await check_rate_limit(ctx.user_id):
        await websocket.close(code=4008, reason="Rate Limit Exceeded")
        return

    try:
        companion = await get_companion(db, companion_id)
    except NotFound:
        await websocket.close(code=4004, reason="Companion not found")
        return

    await websocket.accept()
    logger.info(f"Voice session connected: user={ctx.user_id} companion={companion.id}")

    session = VoiceSession(WebSocketTransport(websocket), companion)

    async def receive_from_client():
        try:
            while True:
                text = await websocket.receive_text()
                try:
                    session.post(VoiceEvent.from_client(json.loads(text)))
                except ValueError as e:
                    await websocket.send_json({"type": "error", "message": str(e)})
        except WebSocketDisconnect:
            logger.info(f"Voice client disconnected: {ctx.user_id}")
        finally:
            session.close()

    async def session_worker():
        async for snapshot in session.run():
            if snapshot.completed:
                try:
                    await add_to_session_history(db, companion.id, ctx.user_id)
                except AppError as e:
                    logger.error(f"Could not record session for {ctx.user_id}: {e.message}")
                    if _connected(websocket):
                        await websocket.send_json({"type": "error", "message": "Session could not be saved"})
            if _connected(websocket):
                await websocket.send_json({"type": "state", **snapshot.to_dict()})

    await asyncio.gather(receive_from_client(), session_worker())
