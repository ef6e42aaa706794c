"""FastAPI dependencies."""
from functools import lru_cache

from app.core.config import settings
from app.db.database import AsyncSessionLocal
from app.services.agent.dialogue import DialogueEngine
from app.services.agent.escalation import EscalationPolicy
from app.services.agent.insights import CallSummarizer, SentimentClassifier
from app.services.agent.llm import OpenAIChatProvider
from app.services.agent.router import AgentRouter
from app.services.call_session.manager import CallSessionManager
from app.services.persistence.calls import CallAuditService
from app.services.speech.cache import SpeechSynthesisCache
from app.services.speech.tts import ElevenLabsSynthesizer
from app.services.tools.adapters import ToolAdapters
from app.services.tools.in_memory import InMemoryCatalogProvider


@lru_cache
def get_tool_adapters() -> ToolAdapters:
    """Get tool adapters backed by the in-memory catalog."""
    provider = InMemoryCatalogProvider(catalog_file=settings.catalog_file)
    return ToolAdapters(catalog=provider, orders=provider)


@lru_cache
def get_speech_cache() -> SpeechSynthesisCache:
    """Get the process-wide speech synthesis cache."""
    return SpeechSynthesisCache(synthesizer=ElevenLabsSynthesizer())


@lru_cache
def get_agent_router() -> AgentRouter:
    """Get the agent router."""
    sentiment_classifier = (
        SentimentClassifier() if settings.sentiment_escalation_enabled else None
    )
    return AgentRouter(
        dialogue_engine=DialogueEngine(OpenAIChatProvider(), get_tool_adapters()),
        speech_cache=get_speech_cache(),
        escalation_policy=EscalationPolicy(),
        sentiment_classifier=sentiment_classifier,
    )


@lru_cache
def get_session_manager() -> CallSessionManager:
    """Get call session manager."""
    summarizer = CallSummarizer() if settings.summarize_calls else None
    recorder = CallAuditService(AsyncSessionLocal, summarizer=summarizer)
    return CallSessionManager(get_agent_router(), recorder=recorder)
