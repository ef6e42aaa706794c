"""Speech synthesis cache with common-phrase, on-demand and fallback tiers."""
import asyncio
import hashlib
import logging
import time
from typing import Callable, Dict, Iterable, Optional, Tuple
from enum import Enum
from pydantic import BaseModel

from app.core.config import settings
from app.services.agent.stages import Department
from app.services.speech.tts import SpeechSynthesizer

logger = logging.getLogger(__name__)


class AudioSource(str, Enum):
    """Which tier produced an audio handle."""

    COMMON = "common"  # Pre-rendered at startup
    CACHED = "cached"  # Rendered earlier, still within retention
    SYNTHESIZED = "synthesized"  # Rendered for this request
    FALLBACK = "fallback"  # Speak with the baseline telephony voice

    def __str__(self) -> str:
        return self.value


class AudioHandle(BaseModel):
    """Reference to rendered audio, or a marker to use the fallback voice."""

    text: str
    voice_id: str
    source: AudioSource
    audio_id: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.audio_id is None


def default_voices() -> Dict[Department, Optional[str]]:
    """Configured voice per department."""
    return {
        Department.RECEPTIONIST: settings.receptionist_voice_id,
        Department.SALES: settings.sales_voice_id,
        Department.SHIPPING: settings.shipping_voice_id,
        Department.SUPPORT: settings.support_voice_id,
        Department.ACCOUNTS: settings.accounts_voice_id,
    }


def _audio_id(text: str, voice_id: str) -> str:
    return hashlib.sha256(f"{voice_id}\n{text}".encode("utf-8")).hexdigest()[:32]


class SpeechSynthesisCache:
    """
    Renders agent replies to audio.

    Lookup order is fixed: common phrases rendered at startup, then recent
    on-demand renders kept for the retention window, then a fresh synthesis
    bounded by the timeout. When synthesis fails or times out the handle
    tells the telephony layer to speak the text with its baseline voice.
    """

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        timeout: Optional[float] = None,
        retention_seconds: Optional[float] = None,
        voices: Optional[Dict[Department, Optional[str]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.synthesizer = synthesizer
        self.timeout = timeout if timeout is not None else settings.tts_timeout_seconds
        self.retention_seconds = (
            retention_seconds if retention_seconds is not None else settings.audio_retention_seconds
        )
        self.voices = voices if voices is not None else default_voices()
        self._clock = clock
        self._common: Dict[Tuple[str, str], str] = {}
        self._common_audio: Dict[str, bytes] = {}
        self._renders: Dict[Tuple[str, str], str] = {}
        self._render_audio: Dict[str, Tuple[bytes, float]] = {}

    def voice_for(self, department: Department) -> str:
        """Voice for a department, falling back to the receptionist voice."""
        return self.voices.get(department) or self.voices[Department.RECEPTIONIST]

    async def _synthesize(self, text: str, voice_id: str) -> bytes:
        return await asyncio.wait_for(
            self.synthesizer.synthesize(text, voice_id), timeout=self.timeout
        )

    async def warm(self, phrases: Iterable[Tuple[str, str]]) -> int:
        """Pre-render common (text, voice) phrases. Returns how many were rendered."""
        rendered = 0
        for text, voice_id in phrases:
            key = (text, voice_id)
            if key in self._common:
                continue
            try:
                audio = await self._synthesize(text, voice_id)
            except Exception as e:
                logger.warning(
                    f"[TTS CACHE] Could not pre-render '{text[:40]}' with voice {voice_id}: "
                    f"{type(e).__name__}: {e}"
                )
                continue
            audio_id = _audio_id(text, voice_id)
            self._common[key] = audio_id
            self._common_audio[audio_id] = audio
            rendered += 1
        logger.info(f"[TTS CACHE] Pre-rendered {rendered} common phrases")
        return rendered

    def is_common(self, text: str, voice_id: str) -> bool:
        return (text, voice_id) in self._common

    def evict_expired(self) -> int:
        """Drop on-demand renders older than the retention window."""
        cutoff = self._clock() - self.retention_seconds
        expired = [
            audio_id
            for audio_id, (_, created_at) in self._render_audio.items()
            if created_at <= cutoff
        ]
        for audio_id in expired:
            del self._render_audio[audio_id]
        if expired:
            self._renders = {
                key: audio_id
                for key, audio_id in self._renders.items()
                if audio_id in self._render_audio
            }
            logger.debug(f"[TTS CACHE] Evicted {len(expired)} expired renders")
        return len(expired)

    async def render(self, text: str, voice_id: str) -> AudioHandle:
        """Resolve audio for text spoken with a voice. Never raises."""
        key = (text, voice_id)

        audio_id = self._common.get(key)
        if audio_id is not None:
            return AudioHandle(
                text=text, voice_id=voice_id, source=AudioSource.COMMON, audio_id=audio_id
            )

        self.evict_expired()
        audio_id = self._renders.get(key)
        if audio_id is not None:
            return AudioHandle(
                text=text, voice_id=voice_id, source=AudioSource.CACHED, audio_id=audio_id
            )

        try:
            audio = await self._synthesize(text, voice_id)
        except asyncio.TimeoutError:
            logger.warning(
                f"[TTS CACHE] Synthesis timed out after {self.timeout}s, using fallback voice"
            )
            return AudioHandle(text=text, voice_id=voice_id, source=AudioSource.FALLBACK)
        except Exception as e:
            logger.warning(
                f"[TTS CACHE] Synthesis failed, using fallback voice - {type(e).__name__}: {e}"
            )
            return AudioHandle(text=text, voice_id=voice_id, source=AudioSource.FALLBACK)

        audio_id = _audio_id(text, voice_id)
        self._renders[key] = audio_id
        self._render_audio[audio_id] = (audio, self._clock())
        return AudioHandle(
            text=text, voice_id=voice_id, source=AudioSource.SYNTHESIZED, audio_id=audio_id
        )

    def get_audio(self, audio_id: str) -> Optional[bytes]:
        """Audio bytes for a handle, or None once evicted."""
        audio = self._common_audio.get(audio_id)
        if audio is not None:
            return audio
        self.evict_expired()
        entry = self._render_audio.get(audio_id)
        return entry[0] if entry else None
