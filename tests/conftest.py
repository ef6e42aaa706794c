"""Shared test fixtures and configuration."""
import asyncio
import pytest
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import Mock, AsyncMock
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "test-sid")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test-token")
os.environ.setdefault("TWILIO_PHONE_NUMBER", "+27100000000")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("COMPANY_NAME", "Audico")
os.environ.setdefault("BASE_URL", "https://voice.test")

from app.main import app
from app.db.models import Base
from app.core.dependencies import get_session_manager, get_speech_cache
from app.services.agent.dialogue import DialogueEngine
from app.services.agent.escalation import EscalationPolicy
from app.services.agent.llm import LanguageModelProvider, ModelReply
from app.services.agent.router import AgentRouter
from app.services.agent.stages import Department
from app.services.call_session import manager as manager_module
from app.services.call_session.manager import CallSessionManager, TranscriptRecorder
from app.services.call_session.models import FinalTranscript
from app.services.speech.cache import SpeechSynthesisCache
from app.services.speech.tts import SpeechSynthesizer
from app.services.tools.adapters import ToolAdapters
from app.services.tools.in_memory import InMemoryCatalogProvider


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_VOICES = {
    Department.RECEPTIONIST: "voice-reception",
    Department.SALES: "voice-sales",
    Department.SHIPPING: "voice-shipping",
    Department.SUPPORT: None,
    Department.ACCOUNTS: "voice-accounts",
}

TEST_AGENT_NUMBERS = {
    Department.RECEPTIONIST: "+27110000000",
    Department.SALES: "+27110000001",
    Department.SHIPPING: "+27110000002",
    Department.SUPPORT: None,
    Department.ACCOUNTS: None,
}


class ScriptedProvider(LanguageModelProvider):
    """Language model stub that replays queued replies."""

    def __init__(self):
        self.replies: List[Any] = []
        self.calls: List[Dict[str, Any]] = []
        self.block_on: Optional[str] = None
        self.gate = asyncio.Event()
        self.started = asyncio.Event()

    def queue(self, *replies: Any) -> None:
        """Queue ModelReply objects, plain strings or exceptions to raise."""
        self.replies.extend(replies)

    async def complete(self, system_prompt, history, tools=None, allow_tools=True) -> ModelReply:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "history": list(history),
                "tools": tools,
                "allow_tools": allow_tools,
            }
        )
        last_user = next(
            (message["content"] for message in reversed(history) if message["role"] == "user"),
            None,
        )
        if self.block_on is not None and last_user == self.block_on:
            self.started.set()
            await self.gate.wait()

        if not self.replies:
            return ModelReply(text="How can I help you with that?")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, str):
            return ModelReply(text=reply)
        return reply


class FakeSynthesizer(SpeechSynthesizer):
    """Speech provider stub that records every synthesis call."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None
        self.delay: float = 0

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        self.calls.append((text, voice_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return f"mp3:{voice_id}:{text}".encode("utf-8")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


class MemoryRecorder(TranscriptRecorder):
    """Audit recorder that keeps transcripts in a list."""

    def __init__(self):
        self.transcripts: List[FinalTranscript] = []

    async def record(self, transcript: FinalTranscript) -> None:
        self.transcripts.append(transcript)


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    """Create test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def test_catalog_path():
    """Return path to test catalog YAML file."""
    return Path(__file__).parent / "fixtures" / "test_catalog.yaml"


@pytest.fixture
def catalog_provider(test_catalog_path):
    """In-memory catalog loaded from the test fixture."""
    return InMemoryCatalogProvider(catalog_file=str(test_catalog_path))


@pytest.fixture
def tool_adapters(catalog_provider):
    return ToolAdapters(catalog=catalog_provider, orders=catalog_provider, timeout=1.0)


@pytest.fixture
def llm():
    """Scripted language model."""
    return ScriptedProvider()


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def speech_cache(synthesizer, clock):
    """Speech cache over the fake synthesizer."""
    return SpeechSynthesisCache(
        synthesizer,
        timeout=0.5,
        retention_seconds=3600,
        voices=dict(TEST_VOICES),
        clock=clock,
    )


@pytest.fixture
def dialogue_engine(llm, tool_adapters):
    return DialogueEngine(llm, tool_adapters, history_window=10, timeout=1.0)


@pytest.fixture
def escalation_policy():
    return EscalationPolicy(
        max_turns=10,
        max_failed_attempts=2,
        sentiment_enabled=False,
        sentiment_min_turns=2,
    )


@pytest.fixture
def agent_router(dialogue_engine, speech_cache, escalation_policy):
    """Agent router wired to stubs."""
    return AgentRouter(
        dialogue_engine=dialogue_engine,
        speech_cache=speech_cache,
        escalation_policy=escalation_policy,
        agent_numbers=dict(TEST_AGENT_NUMBERS),
    )


@pytest.fixture
def recorder():
    return MemoryRecorder()


@pytest.fixture
def session_manager(agent_router, recorder):
    """Call session manager with the in-memory recorder."""
    return CallSessionManager(agent_router, recorder=recorder)


@pytest.fixture(autouse=True)
def clean_call_sessions():
    """Clean up call sessions before and after tests."""
    manager_module._sessions.clear()
    manager_module._call_locks.clear()
    manager_module._inflight.clear()
    manager_module._closing.clear()
    yield
    manager_module._sessions.clear()
    manager_module._call_locks.clear()
    manager_module._inflight.clear()
    manager_module._closing.clear()


@pytest.fixture
def test_client(session_manager, speech_cache):
    """Create FastAPI test client with overrides."""
    app.dependency_overrides[get_session_manager] = lambda: session_manager
    app.dependency_overrides[get_speech_cache] = lambda: speech_cache

    client = TestClient(app)

    yield client

    # Clear overrides
    app.dependency_overrides.clear()


@pytest.fixture
def mock_openai():
    """Mock OpenAI API client returning a plain text reply."""
    mock_client = Mock()
    mock_completion = Mock()
    mock_completion.choices = [
        Mock(message=Mock(content="Test response", tool_calls=None))
    ]
    mock_client.chat.completions.create = AsyncMock(return_value=mock_completion)
    return mock_client


# Pytest configuration
def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an asyncio test"
    )
