"""Lifecycle of a single voice call.

INACTIVE -> CONNECTING -> ACTIVE -> FINISHED, with errors dropping back to
INACTIVE. Vendor events and start/stop requests arrive through ``post()``
and are consumed in order by ``run()``; entering FINISHED hands the transcript to the feedback
callback exactly once per call.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

from defence_coach.schemas import ProjectDetails, TranscriptEntry

LOG = logging.getLogger("defence_coach.call")


class CallStatus(str, Enum):
    INACTIVE = "INACTIVE"
    CONNECTING = "CONNECTING"
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"


@dataclass(frozen=True)
class CallStarted:
    pass


@dataclass(frozen=True)
class CallEnded:
    pass


@dataclass(frozen=True)
class TranscriptMessage:
    role: str
    transcript: str
    transcript_type: str = "final"


@dataclass(frozen=True)
class SpeechStarted:
    pass


@dataclass(frozen=True)
class SpeechEnded:
    pass


@dataclass(frozen=True)
class CallFailed:
    message: str = "Unknown error"


@dataclass(frozen=True)
class StartRequested:
    pass


@dataclass(frozen=True)
class StopRequested:
    pass


CallEvent = Union[
    CallStarted,
    CallEnded,
    TranscriptMessage,
    SpeechStarted,
    SpeechEnded,
    CallFailed,
    StartRequested,
    StopRequested,
]


class VoiceClient(Protocol):
    async def start(self, workflow_id: str, variable_values: Dict[str, str]) -> None: ...

    async def stop(self) -> None: ...


FeedbackHandler = Callable[[List[TranscriptEntry]], Awaitable[Any]]
Emitter = Callable[[Dict[str, Any]], Awaitable[None]]

_LIVE = (CallStatus.CONNECTING, CallStatus.ACTIVE)
_ROLES = ("user", "system", "assistant")


class CallSession:
    def __init__(
        self,
        voice: Optional[VoiceClient],
        workflow_id: Optional[str],
        on_finished: FeedbackHandler,
        questions: Optional[List[str]] = None,
        project_details: Optional[ProjectDetails] = None,
        emit: Optional[Emitter] = None,
    ) -> None:
        self.voice = voice
        self.workflow_id = workflow_id
        self.on_finished = on_finished
        self.questions = list(questions or [])
        self.project_details = project_details
        self._emit = emit
        self.status = CallStatus.INACTIVE
        self.is_speaking = False
        self.transcript: List[TranscriptEntry] = []
        self.last_message: Optional[str] = None
        self.feedback_result: Any = None
        self._finish_handled = False
        self._queue: "asyncio.Queue[Optional[CallEvent]]" = asyncio.Queue()

    def variable_values(self) -> Dict[str, str]:
        formatted = "\n".join(f"- {question}" for question in self.questions)
        details = self.project_details or ProjectDetails()
        return {
            "questions": formatted or "General defence questions",
            "projectTitle": details.project_title or "Your Project",
            "academicLevel": details.academic_level or "undergraduate",
        }

    # -- commands ------------------------------------------------------------

    async def start(self) -> bool:
        if self.status in _LIVE:
            LOG.warning("Call start rejected: status=%s", self.status.value)
            return False
        if self.voice is None:
            await self._fail("Voice services are not available. Please refresh and try again.")
            return False
        if not self.workflow_id:
            await self._fail("Missing interviewer workflow configuration")
            return False

        self.transcript = []
        self.last_message = None
        self.feedback_result = None
        self._finish_handled = False
        await self._set_status(CallStatus.CONNECTING)
        try:
            await self.voice.start(self.workflow_id, self.variable_values())
        except Exception as exc:  # vendor errors of any shape
            LOG.warning("Voice client failed to start: %s", exc)
            await self._fail(f"Failed to start the call: {exc}")
            return False
        return True

    async def stop(self) -> bool:
        await self._drain()
        return await self._stop()

    # -- events --------------------------------------------------------------

    def post(self, event: CallEvent) -> None:
        self._queue.put_nowait(event)

    def close(self) -> None:
        self._queue.put_nowait(None)

    async def run(self) -> None:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            await self.handle(event)

    async def handle(self, event: CallEvent) -> None:
        if isinstance(event, StartRequested):
            if not await self.start():
                await self._send({"type": "status", "status": self.status.value})
        elif isinstance(event, StopRequested):
            await self._stop()
        elif isinstance(event, CallStarted):
            if self.status == CallStatus.CONNECTING:
                await self._set_status(CallStatus.ACTIVE)
        elif isinstance(event, CallEnded):
            if self.status in _LIVE:
                await self._finish(teardown=False)
        elif isinstance(event, TranscriptMessage):
            if self.status in _LIVE and event.transcript_type == "final":
                if event.role not in _ROLES:
                    LOG.warning("Dropping transcript fragment with unknown role %r", event.role)
                    return
                entry = TranscriptEntry(role=event.role, content=event.transcript)
                self.transcript.append(entry)
                self.last_message = entry.content
                await self._send({"type": "transcript", "role": entry.role, "content": entry.content})
        elif isinstance(event, SpeechStarted):
            await self._set_speaking(True)
        elif isinstance(event, SpeechEnded):
            await self._set_speaking(False)
        elif isinstance(event, CallFailed):
            LOG.warning("Voice channel error: status=%s message=%s", self.status.value, event.message)
            if self.status in _LIVE:
                await self._fail(f"Error: {event.message}")
            else:
                await self._notify(f"Error: {event.message}")

    # -- internals -----------------------------------------------------------

    async def _stop(self) -> bool:
        if self.status != CallStatus.ACTIVE:
            return False
        await self._finish(teardown=True)
        return True

    async def _drain(self) -> None:
        """Handle events already queued so fragments received before a stop are kept."""
        while not self._queue.empty():
            event = self._queue.get_nowait()
            if event is None:
                self._queue.put_nowait(None)
                return
            await self.handle(event)

    async def _finish(self, teardown: bool) -> None:
        if self._finish_handled:
            return
        self._finish_handled = True
        await self._set_status(CallStatus.FINISHED)
        await self._set_speaking(False)
        if teardown and self.voice is not None:
            try:
                await self.voice.stop()
            except Exception as exc:  # vendor errors of any shape
                LOG.warning("Voice client failed to stop: %s", exc)
        transcript, self.transcript = self.transcript, []
        LOG.info("Call finished; generating feedback from %s transcript entries", len(transcript))
        self.feedback_result = await self.on_finished(transcript)

    async def _fail(self, message: str) -> None:
        await self._set_status(CallStatus.INACTIVE)
        await self._notify(message)

    async def _set_status(self, status: CallStatus) -> None:
        if status == self.status:
            return
        LOG.info("Call status %s -> %s", self.status.value, status.value)
        self.status = status
        await self._send({"type": "status", "status": status.value})

    async def _set_speaking(self, speaking: bool) -> None:
        if speaking == self.is_speaking:
            return
        self.is_speaking = speaking
        await self._send({"type": "speaking", "speaking": speaking})

    async def _notify(self, message: str) -> None:
        await self._send({"type": "notification", "level": "error", "message": message})

    async def _send(self, payload: Dict[str, Any]) -> None:
        if self._emit is not None:
            await self._emit(payload)
