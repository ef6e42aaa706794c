"""Call session models."""
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel

from app.services.agent.stages import Department
from app.services.agent.state import ConversationState, TranscriptEntry
from app.services.speech.cache import AudioHandle


class CallSession:
    """Call session model."""

    def __init__(
        self,
        call_sid: str,
        state: ConversationState,
        caller_number: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ):
        self.call_sid = call_sid
        self.state = state
        self.caller_number = caller_number
        self.started_at = started_at or datetime.utcnow()


class TurnAction(str, Enum):
    """What the telephony layer should do after speaking."""

    SPEAK = "speak"  # Speak, then keep listening
    TRANSFER = "transfer"  # Speak, then hand the call to a human
    HANGUP = "hangup"  # Speak, then end the call

    def __str__(self) -> str:
        return self.value


class SpokenSegment(BaseModel):
    """One utterance to play, with its rendered audio."""

    text: str
    audio: AudioHandle


class TurnResult(BaseModel):
    """Response instruction for one inbound telephony event."""

    action: TurnAction
    segments: List[SpokenSegment] = []
    department: Department = Department.RECEPTIONIST
    transfer_number: Optional[str] = None
    escalation_reason: Optional[str] = None

    @property
    def text(self) -> str:
        return " ".join(segment.text for segment in self.segments)


class FinalTranscript(BaseModel):
    """Snapshot of a finished call handed to the audit recorder."""

    call_sid: str
    caller_number: Optional[str] = None
    started_at: datetime
    ended_at: datetime
    status: str
    final_agent: Department
    turn_count: int = 0
    failed_attempts: int = 0
    escalation_reason: Optional[str] = None
    entries: List[TranscriptEntry] = []

    @property
    def duration_seconds(self) -> int:
        return max(0, int((self.ended_at - self.started_at).total_seconds()))

    def get_text(self) -> str:
        return "\n".join(f"{entry.speaker}: {entry.text}" for entry in self.entries)

    @classmethod
    def from_session(
        cls, session: CallSession, status: str, ended_at: Optional[datetime] = None
    ) -> "FinalTranscript":
        state = session.state
        return cls(
            call_sid=session.call_sid,
            caller_number=session.caller_number,
            started_at=session.started_at,
            ended_at=ended_at or datetime.utcnow(),
            status=status,
            final_agent=state.active_agent,
            turn_count=state.turn_count,
            failed_attempts=state.failed_attempts,
            escalation_reason=state.escalation_reason,
            entries=list(state.transcript),
        )
