"""Agent router: the per-call state machine over personas, escalation and hangup."""
import logging
import re
from typing import Dict, List, Optional, Tuple

from app.core.config import settings
from app.core.exceptions import ProtocolViolation, ProviderError, ToolError
from app.services.agent.constants import (
    APOLOGY_MESSAGE,
    DEPARTMENT_KEYWORDS,
    GOODBYE_WORDS,
    HANDOFF_PHRASE_PATTERN,
    HANDOFF_TAG_PATTERN,
    NO_INPUT_MESSAGE,
    SIGNAL_TAG_PATTERN,
)
from app.services.agent.dialogue import DialogueEngine
from app.services.agent.escalation import EscalationPolicy, EscalationReason, requests_human
from app.services.agent.insights import SentimentClassifier
from app.services.agent.prompt import (
    get_connect_message,
    get_greeting,
    get_intro_message,
    get_transfer_message,
    get_voicemail_message,
)
from app.services.agent.stages import SPECIALISTS, CallStage, Department
from app.services.agent.state import CUSTOMER_SPEAKER, ConversationState, agent_speaker
from app.services.call_session.models import CallSession, SpokenSegment, TurnAction, TurnResult
from app.services.speech.cache import SpeechSynthesisCache

logger = logging.getLogger(__name__)

_GOODBYE_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(word) for word in GOODBYE_WORDS) + r")\b", re.IGNORECASE
)
_KEYWORD_PATTERNS = [
    (department, re.compile(r"\b(" + "|".join(map(re.escape, words)) + r")\b", re.IGNORECASE))
    for department, words in DEPARTMENT_KEYWORDS.items()
]


def default_agent_numbers() -> Dict[Department, Optional[str]]:
    """Human transfer number per department; the receptionist transfers to the operator."""
    return {
        Department.RECEPTIONIST: settings.operator_number,
        Department.SALES: settings.sales_agent_number,
        Department.SHIPPING: settings.shipping_agent_number,
        Department.SUPPORT: settings.support_agent_number,
        Department.ACCOUNTS: settings.accounts_agent_number,
    }


def strip_signals(text: str) -> str:
    """Remove [[...]] signal tags so they are never spoken."""
    return re.sub(r"\s{2,}", " ", SIGNAL_TAG_PATTERN.sub("", text)).strip()


def detect_handoff(reply: str, utterance: str) -> Tuple[Optional[Department], bool]:
    """
    Department the receptionist is handing the caller to.

    Checks the structured tag first, then the spoken connect phrase, then
    department keywords in the caller's own words. The flag is True when the
    department came from the caller's words only, meaning the reply itself
    did not announce the hand-off.
    """
    match = HANDOFF_TAG_PATTERN.search(reply)
    if match:
        return Department(match.group(1).lower()), False
    match = HANDOFF_PHRASE_PATTERN.search(reply)
    if match:
        return Department(match.group(1).lower()), False
    for department, pattern in _KEYWORD_PATTERNS:
        if pattern.search(utterance):
            return department, True
    return None, False


def is_goodbye(utterance: str) -> bool:
    return _GOODBYE_PATTERN.search(utterance) is not None


class AgentRouter:
    """Decides how each caller turn is handled and what is spoken back."""

    def __init__(
        self,
        dialogue_engine: DialogueEngine,
        speech_cache: SpeechSynthesisCache,
        escalation_policy: Optional[EscalationPolicy] = None,
        sentiment_classifier: Optional[SentimentClassifier] = None,
        agent_numbers: Optional[Dict[Department, Optional[str]]] = None,
    ):
        self.dialogue_engine = dialogue_engine
        self.speech_cache = speech_cache
        self.escalation_policy = escalation_policy or EscalationPolicy()
        self.sentiment_classifier = sentiment_classifier
        self.agent_numbers = agent_numbers if agent_numbers is not None else default_agent_numbers()

    def common_phrases(self) -> List[Tuple[str, str]]:
        """Fixed (text, voice) lines worth rendering at startup."""
        receptionist_voice = self.speech_cache.voice_for(Department.RECEPTIONIST)
        phrases = [
            (get_greeting(), receptionist_voice),
            (NO_INPUT_MESSAGE, receptionist_voice),
        ]
        for department in SPECIALISTS:
            phrases.append((get_connect_message(department), receptionist_voice))
            phrases.append((get_intro_message(department), self.speech_cache.voice_for(department)))
        for department in Department:
            voice = self.speech_cache.voice_for(department)
            phrases.append((APOLOGY_MESSAGE, voice))
            phrases.append((get_transfer_message(department), voice))
            phrases.append((get_voicemail_message(department), voice))
        return list(dict.fromkeys(phrases))

    async def _say(
        self, state: ConversationState, text: str, department: Department
    ) -> SpokenSegment:
        """Render a line in a department's voice and record it in the transcript."""
        state.add_transcript_turn(agent_speaker(department), text)
        audio = await self.speech_cache.render(text, self.speech_cache.voice_for(department))
        return SpokenSegment(text=text, audio=audio)

    def _transfer_result(
        self,
        segments: List[SpokenSegment],
        department: Department,
        reason: Optional[str],
    ) -> TurnResult:
        return TurnResult(
            action=TurnAction.TRANSFER,
            segments=segments,
            department=department,
            transfer_number=self.agent_numbers.get(department),
            escalation_reason=reason,
        )

    async def greet(self, session: CallSession) -> TurnResult:
        """Opening receptionist greeting."""
        state = session.state
        segment = await self._say(state, get_greeting(), Department.RECEPTIONIST)
        logger.info(f"[ROUTER] CallSid: {session.call_sid} greeted")
        return TurnResult(action=TurnAction.SPEAK, segments=[segment])

    async def reprompt(self, session: CallSession) -> TurnResult:
        """Re-prompt after an empty speech result; does not count as a turn."""
        state = session.state
        if state.is_terminal:
            return await self._terminal_result(state)
        segment = await self._say(state, NO_INPUT_MESSAGE, state.active_agent)
        return TurnResult(
            action=TurnAction.SPEAK, segments=[segment], department=state.active_agent
        )

    async def apology(self, session: CallSession) -> TurnResult:
        """Fixed apology that keeps the caller in the current persona."""
        state = session.state
        segment = await self._say(state, APOLOGY_MESSAGE, state.active_agent)
        return TurnResult(
            action=TurnAction.SPEAK, segments=[segment], department=state.active_agent
        )

    async def _terminal_result(self, state: ConversationState) -> TurnResult:
        department = state.active_agent
        if state.stage is CallStage.ESCALATED:
            text = (
                get_transfer_message(department)
                if self.agent_numbers.get(department)
                else get_voicemail_message(department)
            )
            segment = await self._say(state, text, department)
            return self._transfer_result([segment], department, state.escalation_reason)
        return TurnResult(action=TurnAction.HANGUP, department=department)

    async def _escalate(self, state: ConversationState, reason: EscalationReason) -> TurnResult:
        department = state.active_agent
        state.stage = CallStage.ESCALATED
        state.escalation_reason = reason.value
        number = self.agent_numbers.get(department)
        logger.info(
            f"[ROUTER] CallSid: {state.call_sid} escalated from {department.value} "
            f"- reason: {reason.value}, transfer to: {number or 'voicemail'}"
        )
        text = get_transfer_message(department) if number else get_voicemail_message(department)
        segment = await self._say(state, text, department)
        return self._transfer_result([segment], department, reason.value)

    async def process_turn(self, session: CallSession, utterance: str) -> TurnResult:
        """
        Handle one caller utterance.

        Escalation is checked before the dialogue engine runs. Only the
        receptionist can hand a call to a specialist, and only once. Dialogue
        failures produce the fixed apology and leave the persona unchanged.
        """
        state = session.state
        if state.is_terminal:
            logger.info(
                f"[ROUTER] CallSid: {session.call_sid} utterance after call became {state.stage.value}"
            )
            return await self._terminal_result(state)

        state.add_transcript_turn(CUSTOMER_SPEAKER, utterance)
        state.turn_count += 1
        if requests_human(utterance):
            state.escalation_requested = True
        if self.sentiment_classifier is not None and self.escalation_policy.sentiment_enabled:
            state.sentiment = await self.sentiment_classifier.classify(utterance)

        reason = self.escalation_policy.evaluate(state, utterance)
        if reason is not None:
            return await self._escalate(state, reason)

        department = state.active_agent
        try:
            reply = await self.dialogue_engine.generate_turn(state, utterance, department)
        except (ProviderError, ProtocolViolation, ToolError) as e:
            state.failed_attempts += 1
            logger.warning(
                f"[ROUTER] CallSid: {session.call_sid} dialogue failed "
                f"({state.failed_attempts} failures) - {type(e).__name__}: {e}"
            )
            return await self.apology(session)

        if department is Department.RECEPTIONIST:
            target, from_keywords = detect_handoff(reply, utterance)
            if target is not None:
                spoken = get_connect_message(target) if from_keywords else strip_signals(reply)
                return await self._handoff(state, target, spoken or get_connect_message(target))

        text = strip_signals(reply) or APOLOGY_MESSAGE
        segment = await self._say(state, text, department)

        if is_goodbye(utterance):
            state.stage = CallStage.ENDED
            logger.info(f"[ROUTER] CallSid: {session.call_sid} caller said goodbye")
            return TurnResult(action=TurnAction.HANGUP, segments=[segment], department=department)

        return TurnResult(action=TurnAction.SPEAK, segments=[segment], department=department)

    async def _handoff(
        self, state: ConversationState, target: Department, receptionist_line: str
    ) -> TurnResult:
        connect = await self._say(state, receptionist_line, Department.RECEPTIONIST)
        state.switch_agent(target)
        logger.info(f"[ROUTER] CallSid: {state.call_sid} handed off to {target.value}")
        intro = await self._say(state, get_intro_message(target), target)
        return TurnResult(action=TurnAction.SPEAK, segments=[connect, intro], department=target)
