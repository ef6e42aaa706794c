"""Main FastAPI application."""
import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager

from app.core.config import settings
from app.core.dependencies import get_agent_router, get_speech_cache
from app.core.logging import setup_logging
from app.db.database import init_db
from app.api import audio, calls, health
from app.api.webhooks import voice

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    speech_cache = get_speech_cache()
    if settings.elevenlabs_api_key:
        await speech_cache.warm(get_agent_router().common_phrases())
    else:
        logger.warning("ELEVENLABS_API_KEY not set, replies will use the fallback voice")
    yield
    # Shutdown
    await speech_cache.synthesizer.close()


app = FastAPI(
    title="Call Center Voice Agent",
    description="AI receptionist and department agents for inbound phone calls",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(voice.router, prefix="/webhooks", tags=["webhooks"])
app.include_router(audio.router, tags=["audio"])
app.include_router(calls.router, tags=["calls"])


@app.get("/")
async def root():
    return {
        "message": "Call Center Voice Agent API",
        "version": "0.1.0",
        "company": settings.company_name,
    }
