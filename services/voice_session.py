"""
Call-status state machine for a voice conversation with a companion.

Events from the voice SDK and the user's commands arrive through a queue
and are handled one at a time. The status only moves forward:

    INACTIVE -> CONNECTING -> ACTIVE -> FINISHED
                    |
                    +-> INACTIVE   (start failed)
"""
import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol
from services.assistant import configure_assistant, build_assistant_overrides

logger = logging.getLogger(__name__)


class CallStatus(str, enum.Enum):
    INACTIVE = "INACTIVE"
    CONNECTING = "CONNECTING"
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"


class VoiceEventType(str, enum.Enum):
    START_REQUESTED = "start-requested"
    STARTED = "call-start"
    SPEECH_START = "speech-start"
    SPEECH_END = "speech-end"
    MESSAGE = "message"
    ENDED = "call-end"
    START_FAILED = "start-failed"
    ERROR = "error"
    STOP_REQUESTED = "stop-requested"
    TOGGLE_MUTE = "toggle-mute"


CLIENT_ACTIONS = {
    "start": VoiceEventType.START_REQUESTED,
    "stop": VoiceEventType.STOP_REQUESTED,
    "toggle_mute": VoiceEventType.TOGGLE_MUTE,
}

TRANSITIONS = {
    (CallStatus.INACTIVE, VoiceEventType.START_REQUESTED): CallStatus.CONNECTING,
    (CallStatus.CONNECTING, VoiceEventType.STARTED): CallStatus.ACTIVE,
    (CallStatus.CONNECTING, VoiceEventType.START_FAILED): CallStatus.INACTIVE,
    (CallStatus.CONNECTING, VoiceEventType.ENDED): CallStatus.FINISHED,
    (CallStatus.CONNECTING, VoiceEventType.STOP_REQUESTED): CallStatus.FINISHED,
    (CallStatus.ACTIVE, VoiceEventType.ENDED): CallStatus.FINISHED,
    (CallStatus.ACTIVE, VoiceEventType.STOP_REQUESTED): CallStatus.FINISHED,
}


def transition(status: CallStatus, event_type: VoiceEventType) -> CallStatus:
    """Next status; inputs with no entry leave the status unchanged."""
    return TRANSITIONS.get((status, event_type), status)


@dataclass(frozen=True)
class VoiceEvent:
    type: VoiceEventType
    payload: dict = field(default_factory=dict)

    @classmethod
    def from_client(cls, data: dict) -> "VoiceEvent":
        """Parses `{"action": ...}` commands and relayed `{"event": ...}` SDK events."""
        if not isinstance(data, dict):
            raise ValueError("Message must be a JSON object")
        if "action" in data:
            try:
                return cls(CLIENT_ACTIONS[data["action"]])
            except KeyError:
                raise ValueError(f"Unknown action: {data['action']}")
        if "event" in data:
            try:
                event_type = VoiceEventType(data["event"])
            except ValueError:
                raise ValueError(f"Unknown event: {data['event']}")
            if event_type in CLIENT_ACTIONS.values():
                raise ValueError(f"Unknown event: {data['event']}")
            return cls(event_type, data.get("payload") or {})
        raise ValueError("Message must carry an 'action' or an 'event'")


@dataclass(frozen=True)
class SavedMessage:
    role: str
    content: str


@dataclass(frozen=True)
class VoiceSnapshot:
    status: CallStatus
    is_speaking: bool
    is_muted: bool
    messages: List[SavedMessage]
    # True exactly once, when an active call finishes
    completed: bool = False

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "is_speaking": self.is_speaking,
            "is_muted": self.is_muted,
            "messages": [{"role": m.role, "content": m.content} for m in self.messages],
            "completed": self.completed,
        }


class VoiceTransport(Protocol):
    async def start(self, assistant: dict, overrides: dict) -> None: ...

    async def stop(self) -> None: ...

    def is_muted(self) -> bool: ...

    async def set_muted(self, muted: bool) -> None: ...


class VoiceSession:
    def __init__(self, transport: VoiceTransport, companion):
        self.transport = transport
        self.companion = companion
        self.status = CallStatus.INACTIVE
        self.is_speaking = False
        self.is_muted = False
        self.messages: List[SavedMessage] = []
        self.inbox: asyncio.Queue = asyncio.Queue()

    def post(self, event: VoiceEvent):
        self.inbox.put_nowait(event)

    def close(self):
        self.inbox.put_nowait(None)

    def snapshot(self, completed: bool = False) -> VoiceSnapshot:
        return VoiceSnapshot(
            status=self.status,
            is_speaking=self.is_speaking,
            is_muted=self.is_muted,
            messages=list(self.messages),
            completed=completed,
        )

    async def run(self):
        """Consumes the inbox until close(), yielding a snapshot after each state change."""
        while True:
            event = await self.inbox.get()
            if event is None:
                break
            snapshot = await self.handle(event)
            if snapshot is not None:
                yield snapshot

    async def handle(self, event: VoiceEvent) -> Optional[VoiceSnapshot]:
        if event.type is VoiceEventType.ERROR:
            logger.error(f"Voice SDK Error: {event.payload}")
            return None

        if event.type is VoiceEventType.MESSAGE:
            return self._on_message(event.payload)

        if event.type in (VoiceEventType.SPEECH_START, VoiceEventType.SPEECH_END):
            self.is_speaking = event.type is VoiceEventType.SPEECH_START
            return self.snapshot()

        if event.type is VoiceEventType.TOGGLE_MUTE:
            return await self._toggle_microphone()

        previous = self.status
        status = transition(previous, event.type)
        if status is previous:
            logger.debug(f"Ignoring {event.type.value} while {previous.value}")
            return None
        self.status = status

        if event.type is VoiceEventType.START_REQUESTED:
            await self._start_call()
        elif event.type is VoiceEventType.STOP_REQUESTED:
            await self._stop_call()

        if status is CallStatus.FINISHED:
            self.is_speaking = False
        return self.snapshot(completed=previous is CallStatus.ACTIVE and status is CallStatus.FINISHED)

    def _on_message(self, message: dict) -> Optional[VoiceSnapshot]:
        # Partial transcripts are ignored
        if message.get("type") != "transcript" or message.get("transcriptType") != "final":
            return None
        self.messages.insert(0, SavedMessage(role=message.get("role", ""), content=message.get("transcript", "")))
        return self.snapshot()

    async def _toggle_microphone(self) -> Optional[VoiceSnapshot]:
        if self.status is not CallStatus.ACTIVE:
            return None
        muted = not self.transport.is_muted()
        await self.transport.set_muted(muted)
        self.is_muted = muted
        return self.snapshot()

    async def _start_call(self):
        companion = self.companion
        assistant = configure_assistant(companion.voice, companion.style)
        overrides = build_assistant_overrides(companion.subject, companion.topic, companion.style)
        try:
            await self.transport.start(assistant, overrides)
        except Exception as e:
            logger.error(f"Failed to start call: {e}")
            self.post(VoiceEvent(VoiceEventType.START_FAILED))

    async def _stop_call(self):
        try:
            await self.transport.stop()
        except Exception as e:
            logger.error(f"Failed to stop call: {e}")
