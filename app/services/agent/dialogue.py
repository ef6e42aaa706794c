"""Dialogue engine: one caller turn against the language model, with one tool round."""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import ProtocolViolation, ProviderError
from app.services.agent.llm import LanguageModelProvider, ModelReply
from app.services.agent.prompt import get_system_prompt, get_tool_definitions, get_tool_names
from app.services.agent.stages import Department
from app.services.agent.state import ConversationState
from app.services.tools.adapters import ToolAdapters

logger = logging.getLogger(__name__)


class DialogueEngine:
    """Drives the language model for a single persona turn."""

    def __init__(
        self,
        provider: LanguageModelProvider,
        tools: ToolAdapters,
        history_window: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.provider = provider
        self.tools = tools
        self.history_window = (
            history_window if history_window is not None else settings.history_window
        )
        self.timeout = timeout if timeout is not None else settings.llm_timeout_seconds

    async def _complete(
        self,
        system_prompt: str,
        state: ConversationState,
        tools: Optional[List[Dict[str, Any]]],
        allow_tools: bool,
    ) -> ModelReply:
        try:
            return await asyncio.wait_for(
                self.provider.complete(
                    system_prompt,
                    list(state.conversation_history),
                    tools=tools,
                    allow_tools=allow_tools,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(f"Language model timed out after {self.timeout}s") from e
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"Language model request failed: {type(e).__name__}: {e}") from e

    async def _run_tools(
        self, reply: ModelReply, state: ConversationState, department: Department
    ) -> None:
        """Execute requested tool calls and append the exchange to history."""
        allowed = get_tool_names(department)
        state.add_history(reply.history_record())
        for call in reply.tool_calls:
            result = await self.tools.dispatch(call.name, call.arguments, allowed=allowed)
            state.add_history(
                {
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": json.dumps(result),
                }
            )

    async def generate_turn(
        self, state: ConversationState, utterance: str, department: Department
    ) -> str:
        """
        Produce the persona's reply to a caller utterance.

        At most one round of tool results is sent back to the model. History
        is restored to its pre-turn content if the turn fails.

        Raises:
            ProviderError: the model failed, timed out or returned nothing
            ProtocolViolation: the model asked for tools again after results
        """
        snapshot = list(state.conversation_history)
        system_prompt = get_system_prompt(department)
        tools = get_tool_definitions(department)

        logger.info(
            f"[DIALOGUE] CallSid: {state.call_sid}, persona: {department.value}, "
            f"history: {len(snapshot)} messages"
        )
        state.add_history({"role": "user", "content": utterance})
        try:
            reply = await self._complete(system_prompt, state, tools, allow_tools=True)

            if reply.requests_tools:
                await self._run_tools(reply, state, department)
                reply = await self._complete(system_prompt, state, tools, allow_tools=False)
                if reply.requests_tools:
                    raise ProtocolViolation(
                        f"Model requested {len(reply.tool_calls)} more tool call(s) after results"
                    )

            text = (reply.text or "").strip()
            if not text:
                raise ProviderError("Language model returned an empty reply")
        except Exception:
            state.conversation_history = snapshot
            raise

        state.add_history({"role": "assistant", "content": text})
        state.prune_history(self.history_window)
        logger.info(f"[DIALOGUE] CallSid: {state.call_sid}, reply: '{text[:200]}'")
        return text
