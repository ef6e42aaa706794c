"""Auxiliary model calls: caller sentiment and post-call summaries."""
import asyncio
import json
import logging
from typing import List, Optional
from openai import AsyncOpenAI

from app.core.config import settings
from app.services.agent.prompt import get_sentiment_prompt, get_summary_prompt
from app.services.agent.state import TranscriptEntry

logger = logging.getLogger(__name__)

SENTIMENTS = ("positive", "neutral", "negative")


class SentimentClassifier:
    """Classifies caller utterances for the optional sentiment escalation rule."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, timeout: Optional[float] = None):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.timeout = timeout if timeout is not None else settings.llm_timeout_seconds

    async def classify(self, utterance: str) -> Optional[str]:
        """Return positive, neutral or negative; None when classification fails."""
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=settings.openai_insights_model,
                    messages=[
                        {"role": "system", "content": get_sentiment_prompt()},
                        {"role": "user", "content": utterance},
                    ],
                    temperature=0,
                    response_format={"type": "json_object"},
                ),
                timeout=self.timeout,
            )
            content = response.choices[0].message.content
            sentiment = str(json.loads(content).get("sentiment", "")).lower()
        except Exception as e:
            logger.warning(f"[SENTIMENT] Classification failed - {type(e).__name__}: {e}")
            return None

        if sentiment not in SENTIMENTS:
            logger.warning(f"[SENTIMENT] Unexpected sentiment value: {sentiment!r}")
            return None
        return sentiment


class CallSummarizer:
    """Writes a short hand-off summary of a finished call."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, timeout: Optional[float] = None):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.timeout = timeout if timeout is not None else settings.llm_timeout_seconds * 2

    async def summarize(self, entries: List[TranscriptEntry]) -> Optional[str]:
        """Summary text, or None for an empty call."""
        if not entries:
            return None
        transcript = "\n".join(f"{entry.speaker}: {entry.text}" for entry in entries)
        response = await asyncio.wait_for(
            self.client.chat.completions.create(
                model=settings.openai_insights_model,
                messages=[
                    {"role": "system", "content": get_summary_prompt()},
                    {"role": "user", "content": transcript},
                ],
                temperature=0.3,
            ),
            timeout=self.timeout,
        )
        return (response.choices[0].message.content or "").strip() or None
