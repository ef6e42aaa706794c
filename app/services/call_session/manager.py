"""Call session manager."""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional, Set

from app.core.exceptions import DuplicateSessionError, SessionNotFoundError
from app.services.agent.constants import SESSION_GONE_MESSAGE
from app.services.agent.router import AgentRouter
from app.services.agent.stages import CallStage
from app.services.agent.state import ConversationState
from app.services.call_session.models import (
    CallSession,
    FinalTranscript,
    SpokenSegment,
    TurnAction,
    TurnResult,
)
from app.services.speech.cache import AudioHandle, AudioSource

logger = logging.getLogger(__name__)

# Module-level session storage (persists across requests, lost on restart)
_sessions: Dict[str, CallSession] = {}
# One lock per call so unrelated calls never wait on each other
_call_locks: Dict[str, asyncio.Lock] = {}
# Turn currently being processed for each call
_inflight: Dict[str, asyncio.Task] = {}
# Calls whose end has been requested; queued turns for them are skipped
_closing: Set[str] = set()


class TranscriptRecorder(ABC):
    """Audit collaborator that receives the final transcript of each call."""

    @abstractmethod
    async def record(self, transcript: FinalTranscript) -> None:
        """Store a finished call."""
        pass


class CallSessionManager:
    """Owns live call sessions and runs each caller turn through the router."""

    def __init__(self, router: AgentRouter, recorder: Optional[TranscriptRecorder] = None):
        self.router = router
        self.recorder = recorder

    def _lock_for(self, call_sid: str) -> asyncio.Lock:
        lock = _call_locks.get(call_sid)
        if lock is None:
            lock = _call_locks[call_sid] = asyncio.Lock()
        return lock

    async def create_session(
        self, call_sid: str, caller_number: Optional[str] = None
    ) -> CallSession:
        """Create a new call session."""
        if call_sid in _sessions:
            raise DuplicateSessionError(call_sid)
        session = CallSession(
            call_sid=call_sid,
            state=ConversationState(call_sid=call_sid),
            caller_number=caller_number,
        )
        _sessions[call_sid] = session
        logger.info(
            f"[SESSION MANAGER] Session created - CallSid: {call_sid}, "
            f"From: {caller_number or 'unknown'}, active calls: {len(_sessions)}"
        )
        return session

    async def get_session(self, call_sid: str) -> CallSession:
        """Get an existing call session."""
        session = _sessions.get(call_sid)
        if session is None:
            raise SessionNotFoundError(call_sid)
        return session

    async def end_session(
        self, call_sid: str, status: str = "completed"
    ) -> Optional[FinalTranscript]:
        """
        End a call session and hand its transcript to the recorder.

        Any turn still running for the call is cancelled first, and turns
        queued behind it hang up without reaching the model. Ending an
        unknown call is a no-op and returns None.

        Args:
            call_sid: Twilio call SID
            status: Call status - "completed", "failed", "busy", "no-answer" or "canceled"
        """
        _closing.add(call_sid)
        try:
            task = _inflight.get(call_sid)
            if task is not None and not task.done():
                logger.info(f"[SESSION MANAGER] Cancelling in-flight turn - CallSid: {call_sid}")
                task.cancel()

            async with self._lock_for(call_sid):
                session = _sessions.pop(call_sid, None)
            _call_locks.pop(call_sid, None)
        finally:
            _closing.discard(call_sid)

        if session is None:
            logger.info(f"[SESSION MANAGER] No session to end - CallSid: {call_sid}")
            return None

        if session.state.stage is CallStage.ESCALATED:
            status = "escalated"
        elif session.state.stage is CallStage.ACTIVE:
            session.state.stage = CallStage.ENDED
        transcript = FinalTranscript.from_session(session, status, ended_at=datetime.utcnow())
        logger.info(
            f"[SESSION MANAGER] Session ended - CallSid: {call_sid}, status: {status}, "
            f"agent: {transcript.final_agent.value}, turns: {transcript.turn_count}, "
            f"duration: {transcript.duration_seconds}s"
        )

        if self.recorder is not None:
            try:
                await self.recorder.record(transcript)
            except Exception as e:
                logger.error(
                    f"[SESSION MANAGER] Failed to record transcript - CallSid: {call_sid}, "
                    f"Error: {type(e).__name__}: {e}",
                    exc_info=True,
                )
        return transcript

    def _session_gone(self) -> TurnResult:
        segment = SpokenSegment(
            text=SESSION_GONE_MESSAGE,
            audio=AudioHandle(text=SESSION_GONE_MESSAGE, voice_id="", source=AudioSource.FALLBACK),
        )
        return TurnResult(action=TurnAction.HANGUP, segments=[segment])

    async def start_call(self, call_sid: str, caller_number: Optional[str] = None) -> TurnResult:
        """Handle a new inbound call and return the greeting."""
        async with self._lock_for(call_sid):
            try:
                session = await self.create_session(call_sid, caller_number)
            except DuplicateSessionError:
                logger.warning(
                    f"[SESSION MANAGER] Duplicate call start, greeting again - CallSid: {call_sid}"
                )
                session = await self.get_session(call_sid)
            return await self.router.greet(session)

    async def handle_utterance(self, call_sid: str, text: str) -> TurnResult:
        """Process one caller utterance."""
        return await self._run_turn(call_sid, text)

    async def reprompt(self, call_sid: str) -> TurnResult:
        """Ask the caller to speak again after an empty speech result."""
        return await self._run_turn(call_sid, None)

    async def _run_turn(self, call_sid: str, text: Optional[str]) -> TurnResult:
        lock = self._lock_for(call_sid)
        try:
            return await self._run_locked_turn(lock, call_sid, text)
        finally:
            # Webhooks for ended calls must not leave a lock behind
            if call_sid not in _sessions and _call_locks.get(call_sid) is lock and not lock.locked():
                del _call_locks[call_sid]

    async def _run_locked_turn(
        self, lock: asyncio.Lock, call_sid: str, text: Optional[str]
    ) -> TurnResult:
        async with lock:
            if call_sid in _closing:
                logger.info(f"[SESSION MANAGER] Skipping turn for closing call - CallSid: {call_sid}")
                return TurnResult(action=TurnAction.HANGUP)

            try:
                session = await self.get_session(call_sid)
            except SessionNotFoundError:
                logger.warning(f"[SESSION MANAGER] Utterance for unknown call - CallSid: {call_sid}")
                return self._session_gone()

            if text is None:
                work = self.router.reprompt(session)
            else:
                work = self.router.process_turn(session, text)
            task = asyncio.create_task(work)
            _inflight[call_sid] = task
            try:
                await asyncio.wait({task})
            except asyncio.CancelledError:
                task.cancel()
                raise
            finally:
                if _inflight.get(call_sid) is task:
                    del _inflight[call_sid]

            if task.cancelled() or _sessions.get(call_sid) is not session:
                logger.info(
                    f"[SESSION MANAGER] Discarding turn result for ended call - CallSid: {call_sid}"
                )
                return TurnResult(action=TurnAction.HANGUP)

            error = task.exception()
            if error is not None:
                logger.error(
                    f"[SESSION MANAGER] Turn failed - CallSid: {call_sid}, "
                    f"Error: {type(error).__name__}: {error}",
                    exc_info=error,
                )
                return await self.router.apology(session)

            result = task.result()
            logger.info(
                f"[SESSION MANAGER] Turn complete - CallSid: {call_sid}, "
                f"action: {result.action.value}, state: {session.state.router_state}"
            )
            return result

    async def finish_call(self, call_sid: str, status: str = "completed") -> Optional[FinalTranscript]:
        """Handle the call-ended event."""
        return await self.end_session(call_sid, status=status)

    @staticmethod
    def active_call_count() -> int:
        return len(_sessions)
