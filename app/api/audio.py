"""Rendered speech audio served to Twilio <Play>."""
import logging
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from app.core.dependencies import get_speech_cache
from app.services.speech.cache import SpeechSynthesisCache

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/audio/{audio_id}.mp3")
async def get_audio(
    audio_id: str,
    speech_cache: SpeechSynthesisCache = Depends(get_speech_cache),
):
    """Return cached MP3 audio for a rendered phrase."""
    audio = speech_cache.get_audio(audio_id)
    if audio is None:
        logger.warning(f"[AUDIO] Audio not found or expired - id: {audio_id}")
        raise HTTPException(status_code=404, detail="Audio not found")
    return Response(content=audio, media_type="audio/mpeg")
