"""Text-to-speech providers."""
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from app.core.config import settings
from app.core.exceptions import ProviderError

logger = logging.getLogger(__name__)


class SpeechSynthesizer(ABC):
    """Abstract base class for speech synthesis providers."""

    @abstractmethod
    async def synthesize(self, text: str, voice_id: str) -> bytes:
        """Render text with a voice, returning MP3 bytes."""
        pass

    async def close(self) -> None:
        """Release provider resources."""
        return None


class ElevenLabsSynthesizer(SpeechSynthesizer):
    """Speech synthesis through the ElevenLabs REST API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        stability: float = 0.65,
        similarity_boost: float = 0.85,
    ):
        self.api_key = api_key if api_key is not None else settings.elevenlabs_api_key
        self.model = model or settings.elevenlabs_model
        self.base_url = (base_url or settings.elevenlabs_base_url).rstrip("/")
        self.stability = stability
        self.similarity_boost = similarity_boost
        # Reused across requests
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        """
        Synthesize speech from text using ElevenLabs.

        Args:
            text: Text to convert to speech
            voice_id: ElevenLabs voice id

        Returns:
            Audio bytes (MP3 format)
        """
        if not self.api_key:
            raise ProviderError("ElevenLabs API key is not configured")

        client = await self._get_http_client()
        try:
            response = await client.post(
                f"{self.base_url}/text-to-speech/{voice_id}",
                headers={
                    "Accept": "audio/mpeg",
                    "Content-Type": "application/json",
                    "xi-api-key": self.api_key,
                },
                json={
                    "text": text,
                    "model_id": self.model,
                    "voice_settings": {
                        "stability": self.stability,
                        "similarity_boost": self.similarity_boost,
                        "style": 0.0,
                        "use_speaker_boost": True,
                    },
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ProviderError(f"ElevenLabs synthesis failed: {e}") from e

        logger.debug(
            f"[TTS] Synthesized {len(text)} chars with voice {voice_id} "
            f"({len(response.content)} bytes)"
        )
        return response.content

    async def close(self) -> None:
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
