"""Escalation policy: when a call leaves AI handling for a human."""
import re
from enum import Enum
from typing import Optional

from app.core.config import settings
from app.services.agent.constants import HUMAN_REQUEST_PHRASES
from app.services.agent.state import ConversationState

_HUMAN_REQUEST_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(phrase) for phrase in HUMAN_REQUEST_PHRASES) + r")s?\b",
    re.IGNORECASE,
)


class EscalationReason(str, Enum):
    """Why a call was escalated, in rule priority order."""

    EXPLICIT_REQUEST = "explicit_request"
    PRIOR_REQUEST = "prior_request"
    TURN_LIMIT = "turn_limit"
    FAILURE_LIMIT = "failure_limit"
    NEGATIVE_SENTIMENT = "negative_sentiment"

    def __str__(self) -> str:
        return self.value


def requests_human(utterance: Optional[str]) -> bool:
    """True when the caller explicitly asks for a person."""
    return bool(utterance) and _HUMAN_REQUEST_PATTERN.search(utterance) is not None


class EscalationPolicy:
    """
    Pure decision over session state and the latest caller utterance.

    Rules are checked in order and the first match wins, so an explicit
    request always decides the outcome. Conversation length only escalates
    once it exceeds the turn ceiling. The sentiment rule is an optional
    extension and is off unless enabled.
    """

    def __init__(
        self,
        max_turns: Optional[int] = None,
        max_failed_attempts: Optional[int] = None,
        sentiment_enabled: Optional[bool] = None,
        sentiment_min_turns: Optional[int] = None,
    ):
        self.max_turns = max_turns if max_turns is not None else settings.max_turns
        self.max_failed_attempts = (
            max_failed_attempts if max_failed_attempts is not None else settings.max_failed_attempts
        )
        self.sentiment_enabled = (
            sentiment_enabled
            if sentiment_enabled is not None
            else settings.sentiment_escalation_enabled
        )
        self.sentiment_min_turns = (
            sentiment_min_turns if sentiment_min_turns is not None else settings.sentiment_min_turns
        )

    def evaluate(self, state: ConversationState, utterance: Optional[str]) -> Optional[EscalationReason]:
        if requests_human(utterance):
            return EscalationReason.EXPLICIT_REQUEST
        if state.escalation_requested:
            return EscalationReason.PRIOR_REQUEST
        if state.turn_count > self.max_turns:
            return EscalationReason.TURN_LIMIT
        if state.failed_attempts > self.max_failed_attempts:
            return EscalationReason.FAILURE_LIMIT
        if (
            self.sentiment_enabled
            and state.sentiment == "negative"
            and state.turn_count >= self.sentiment_min_turns
        ):
            return EscalationReason.NEGATIVE_SENTIMENT
        return None

    def should_escalate(self, state: ConversationState, utterance: Optional[str]) -> bool:
        return self.evaluate(state, utterance) is not None
