"""Language model providers."""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from openai import AsyncOpenAI
from pydantic import BaseModel

from app.core.config import settings

logger = logging.getLogger(__name__)


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: str = "{}"  # Raw JSON string as produced by the model


class ModelReply(BaseModel):
    """Either final text or a set of tool calls."""

    text: Optional[str] = None
    tool_calls: List[ToolCall] = []

    @property
    def requests_tools(self) -> bool:
        return bool(self.tool_calls)

    def history_record(self) -> Dict[str, Any]:
        """Assistant message recording the tool calls, in chat-completions form."""
        return {
            "role": "assistant",
            "content": self.text,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in self.tool_calls
            ],
        }


class LanguageModelProvider(ABC):
    """Abstract base class for chat language models."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        history: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        allow_tools: bool = True,
    ) -> ModelReply:
        """Produce the next assistant message for a conversation."""
        pass


class OpenAIChatProvider(LanguageModelProvider):
    """Chat completions with function calling."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.model = model or settings.openai_model

    async def complete(
        self,
        system_prompt: str,
        history: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        allow_tools: bool = True,
    ) -> ModelReply:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}, *history],
            "temperature": 0.7,
            "max_tokens": 300,
        }
        if tools:
            # Tools stay declared on the follow-up call so earlier tool messages validate
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto" if allow_tools else "none"

        response = await self.client.chat.completions.create(**kwargs)
        message = response.choices[0].message

        tool_calls = [
            ToolCall(id=tc.id, name=tc.function.name, arguments=tc.function.arguments or "{}")
            for tc in (message.tool_calls or [])
        ]
        if tool_calls:
            logger.info(f"[LLM] Tool calls requested: {[call.name for call in tool_calls]}")
        return ModelReply(text=message.content, tool_calls=tool_calls)
