"""Unit tests for the call session manager."""
import asyncio
import pytest
from unittest.mock import AsyncMock, Mock

from app.core.exceptions import DuplicateSessionError, SessionNotFoundError
from app.services.agent.constants import SESSION_GONE_MESSAGE
from app.services.agent.prompt import get_greeting
from app.services.agent.stages import CallStage, Department
from app.services.call_session import manager as manager_module
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.models import TurnAction


class TestSessionLifecycle:
    """Test session creation, lookup and ending."""

    @pytest.mark.asyncio
    async def test_create_session(self, session_manager):
        session = await session_manager.create_session("CA_1", caller_number="+27825550000")

        assert session.call_sid == "CA_1"
        assert session.state.router_state == "receptionist"
        assert session.state.turn_count == 0
        assert CallSessionManager.active_call_count() == 1

    @pytest.mark.asyncio
    async def test_create_duplicate_rejected(self, session_manager):
        await session_manager.create_session("CA_1")

        with pytest.raises(DuplicateSessionError):
            await session_manager.create_session("CA_1")

    @pytest.mark.asyncio
    async def test_get_unknown_session(self, session_manager):
        with pytest.raises(SessionNotFoundError):
            await session_manager.get_session("CA_missing")

    @pytest.mark.asyncio
    async def test_end_unknown_session_is_noop(self, session_manager, recorder):
        assert await session_manager.end_session("CA_missing") is None
        assert recorder.transcripts == []

    @pytest.mark.asyncio
    async def test_end_session_records_transcript(self, session_manager, recorder):
        await session_manager.start_call("CA_1", caller_number="+27825550000")
        await session_manager.handle_utterance("CA_1", "hello")

        transcript = await session_manager.end_session("CA_1", status="completed")

        assert transcript is not None
        assert transcript.status == "completed"
        assert transcript.caller_number == "+27825550000"
        assert transcript.turn_count == 1
        assert [entry.speaker for entry in transcript.entries] == [
            "AI-receptionist",
            "Customer",
            "AI-receptionist",
        ]
        assert recorder.transcripts == [transcript]
        with pytest.raises(SessionNotFoundError):
            await session_manager.get_session("CA_1")

    @pytest.mark.asyncio
    async def test_end_escalated_session_status(self, session_manager):
        await session_manager.start_call("CA_1")
        await session_manager.handle_utterance("CA_1", "operator")

        transcript = await session_manager.end_session("CA_1", status="completed")

        assert transcript.status == "escalated"
        assert transcript.escalation_reason == "explicit_request"

    @pytest.mark.asyncio
    async def test_recorder_failure_does_not_raise(self, agent_router):
        recorder = Mock()
        recorder.record = AsyncMock(side_effect=RuntimeError("database down"))
        manager = CallSessionManager(agent_router, recorder=recorder)
        await manager.create_session("CA_1")

        transcript = await manager.end_session("CA_1")

        assert transcript is not None
        recorder.record.assert_awaited_once()


class TestCallFlow:
    """Test telephony event handling through the manager."""

    @pytest.mark.asyncio
    async def test_start_call_greets(self, session_manager):
        result = await session_manager.start_call("CA_1")

        assert result.action == TurnAction.SPEAK
        assert result.text == get_greeting()

    @pytest.mark.asyncio
    async def test_duplicate_start_greets_again(self, session_manager):
        await session_manager.start_call("CA_1")

        result = await session_manager.start_call("CA_1")

        assert result.text == get_greeting()
        assert CallSessionManager.active_call_count() == 1

    @pytest.mark.asyncio
    async def test_utterance_for_unknown_call_hangs_up(self, session_manager):
        result = await session_manager.handle_utterance("CA_missing", "hello")

        assert result.action == TurnAction.HANGUP
        assert result.text == SESSION_GONE_MESSAGE
        assert CallSessionManager.active_call_count() == 0

    @pytest.mark.asyncio
    async def test_late_webhooks_leave_no_locks(self, session_manager):
        for index in range(5):
            await session_manager.handle_utterance(f"CA_gone_{index}", "hello")
            await session_manager.reprompt(f"CA_gone_{index}")

        assert manager_module._call_locks == {}

    @pytest.mark.asyncio
    async def test_live_call_keeps_its_lock(self, session_manager):
        await session_manager.start_call("CA_1")

        await session_manager.reprompt("CA_1")

        assert "CA_1" in manager_module._call_locks

    @pytest.mark.asyncio
    async def test_handoff_then_specialist_turn(self, session_manager, llm):
        await session_manager.start_call("CA_1")
        llm.queue(
            "Let me connect you to our shipping team. [[handoff:shipping]]",
            "Your order has shipped with The Courier Guy.",
        )

        first = await session_manager.handle_utterance("CA_1", "track my order 28630")
        second = await session_manager.handle_utterance("CA_1", "is it on the way")

        assert first.department == Department.SHIPPING
        assert second.department == Department.SHIPPING
        assert second.text == "Your order has shipped with The Courier Guy."
        session = await session_manager.get_session("CA_1")
        assert session.state.turn_count == 2

    @pytest.mark.asyncio
    async def test_reprompt(self, session_manager):
        await session_manager.start_call("CA_1")

        result = await session_manager.reprompt("CA_1")

        assert result.action == TurnAction.SPEAK
        session = await session_manager.get_session("CA_1")
        assert session.state.turn_count == 0

    @pytest.mark.asyncio
    async def test_unexpected_router_error_apologises(self, session_manager, agent_router):
        await session_manager.start_call("CA_1")
        agent_router.process_turn = AsyncMock(side_effect=RuntimeError("bug"))

        result = await session_manager.handle_utterance("CA_1", "hello")

        assert result.action == TurnAction.SPEAK
        assert result.text == "Sorry, I did not catch that. Could you please repeat?"


class TestConcurrency:
    """Test per-call serialisation and cancellation."""

    @pytest.mark.asyncio
    async def test_call_end_cancels_inflight_turn(self, session_manager, llm, recorder):
        await session_manager.start_call("CA_1")
        llm.block_on = "where is my order"

        turn = asyncio.create_task(session_manager.handle_utterance("CA_1", "where is my order"))
        await asyncio.wait_for(llm.started.wait(), timeout=1)

        transcript = await session_manager.end_session("CA_1")
        result = await turn

        assert result.action == TurnAction.HANGUP
        assert result.segments == []
        assert transcript.status == "completed"
        assert transcript.entries[-1].speaker == "Customer"
        assert len(recorder.transcripts) == 1
        assert CallSessionManager.active_call_count() == 0

    @pytest.mark.asyncio
    async def test_call_end_skips_queued_turn(self, session_manager, llm):
        await session_manager.start_call("CA_1")
        llm.block_on = "first"

        first = asyncio.create_task(session_manager.handle_utterance("CA_1", "first"))
        await asyncio.wait_for(llm.started.wait(), timeout=1)
        second = asyncio.create_task(session_manager.handle_utterance("CA_1", "second"))
        await asyncio.sleep(0.05)
        model_calls = len(llm.calls)

        await session_manager.end_session("CA_1")
        results = await asyncio.gather(first, second)

        assert [result.action for result in results] == [TurnAction.HANGUP, TurnAction.HANGUP]
        assert len(llm.calls) == model_calls
        assert manager_module._closing == set()
        assert manager_module._call_locks == {}

    @pytest.mark.asyncio
    async def test_calls_do_not_block_each_other(self, session_manager, llm):
        await session_manager.start_call("CA_slow")
        await session_manager.start_call("CA_fast")
        llm.block_on = "slow question"

        slow = asyncio.create_task(session_manager.handle_utterance("CA_slow", "slow question"))
        await asyncio.wait_for(llm.started.wait(), timeout=1)

        fast = await asyncio.wait_for(
            session_manager.handle_utterance("CA_fast", "quick question"), timeout=1
        )
        assert fast.action == TurnAction.SPEAK
        assert not slow.done()

        llm.gate.set()
        slow_result = await asyncio.wait_for(slow, timeout=1)
        assert slow_result.action == TurnAction.SPEAK

    @pytest.mark.asyncio
    async def test_turns_for_one_call_are_serialised(self, session_manager, llm):
        await session_manager.start_call("CA_1")
        llm.block_on = "first"

        first = asyncio.create_task(session_manager.handle_utterance("CA_1", "first"))
        await asyncio.wait_for(llm.started.wait(), timeout=1)
        second = asyncio.create_task(session_manager.handle_utterance("CA_1", "second"))
        await asyncio.sleep(0.05)

        assert not second.done()
        session = await session_manager.get_session("CA_1")
        assert session.state.turn_count == 1

        llm.gate.set()
        await asyncio.gather(first, second)

        assert session.state.turn_count == 2
        user_turns = [m["content"] for m in session.state.conversation_history if m["role"] == "user"]
        assert user_turns == ["first", "second"]

    @pytest.mark.asyncio
    async def test_ended_call_stage(self, session_manager):
        session = await session_manager.create_session("CA_1")

        await session_manager.end_session("CA_1")

        assert session.state.stage == CallStage.ENDED
