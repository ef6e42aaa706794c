"""Conversation state management."""
from datetime import datetime
from typing import List, Dict, Any, Optional
from pydantic import BaseModel, ConfigDict

from app.services.agent.stages import CallStage, Department

CUSTOMER_SPEAKER = "Customer"


def agent_speaker(department: Department) -> str:
    """Transcript speaker label for a persona."""
    return f"AI-{department.value}"


class TranscriptEntry(BaseModel):
    """One spoken line in the call transcript."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    speaker: str
    text: str


class ConversationState(BaseModel):
    """Per-call conversation state shared by the router and dialogue engine."""

    call_sid: str
    active_agent: Department = Department.RECEPTIONIST
    stage: CallStage = CallStage.ACTIVE
    conversation_history: List[Dict[str, Any]] = []  # Model context for the active persona
    transcript: List[TranscriptEntry] = []  # Whole call, append-only
    turn_count: int = 0
    failed_attempts: int = 0
    escalation_requested: bool = False
    escalation_reason: Optional[str] = None
    sentiment: Optional[str] = None  # Latest caller sentiment, when classified

    @property
    def router_state(self) -> str:
        """Receptionist, one of the specialists, escalated or ended."""
        if self.stage is CallStage.ACTIVE:
            return self.active_agent.value
        return self.stage.value

    @property
    def is_terminal(self) -> bool:
        return self.stage is not CallStage.ACTIVE

    def add_transcript_turn(self, speaker: str, text: str) -> TranscriptEntry:
        """Add a line to the transcript."""
        entry = TranscriptEntry(timestamp=datetime.utcnow(), speaker=speaker, text=text)
        self.transcript.append(entry)
        return entry

    def get_transcript_text(self) -> str:
        """Get full transcript as text."""
        return "\n".join(f"{entry.speaker}: {entry.text}" for entry in self.transcript)

    def add_history(self, message: Dict[str, Any]) -> None:
        self.conversation_history.append(message)

    def prune_history(self, window: int) -> None:
        """
        Keep at most `window` messages of model context.

        The retained window always starts at a caller message so a tool
        result is never kept without the assistant record that requested it.
        """
        history = self.conversation_history[-window:] if window > 0 else []
        while history and history[0].get("role") != "user":
            history.pop(0)
        self.conversation_history = history

    def reset_history(self) -> None:
        self.conversation_history = []

    def switch_agent(self, department: Department) -> None:
        """Hand the call from the receptionist to a specialist."""
        if self.active_agent is not Department.RECEPTIONIST or not department.is_specialist:
            raise ValueError(
                f"Cannot hand off from {self.active_agent.value} to {department.value}"
            )
        self.active_agent = department
        self.reset_history()
