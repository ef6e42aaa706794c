"""Twilio voice webhook endpoints."""
import logging
from typing import Optional
from fastapi import APIRouter, Request, Form, Depends, Query
from fastapi.responses import Response

from app.core.config import settings
from app.core.dependencies import get_session_manager
from app.services.agent.constants import APOLOGY_MESSAGE
from app.services.call_session.manager import CallSessionManager
from app.services.speech.twiml import TwiMLBuilder

router = APIRouter()
logger = logging.getLogger(__name__)

# Twilio statuses that mean the call is over
FINAL_CALL_STATUSES = ["completed", "failed", "busy", "no-answer", "canceled"]


def get_base_url(request: Request) -> str:
    """
    Get the base URL for constructing absolute URLs.

    Uses BASE_URL environment variable if set (e.g. behind a tunnel or proxy),
    otherwise constructs from request.
    """
    if settings.base_url:
        return settings.base_url.rstrip("/")
    return str(request.base_url).rstrip("/")


def _twiml(content: str) -> Response:
    return Response(content=content, media_type="application/xml")


@router.post("/voice/incoming")
async def handle_incoming_call(
    request: Request,
    CallSid: str = Form(...),
    From: Optional[str] = Form(None),
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Handle incoming call from Twilio.

    Creates the call session and answers with the receptionist greeting.
    """
    logger.info(
        f"[INCOMING CALL] Received incoming call webhook - CallSid: {CallSid}, "
        f"From: {From or 'unknown'}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )
    builder = TwiMLBuilder(get_base_url(request))

    try:
        result = await session_manager.start_call(CallSid, caller_number=From)
        twiml = builder.render(result, CallSid)
        logger.info(
            f"[INCOMING CALL] Greeting sent - CallSid: {CallSid}, "
            f"TwiML length: {len(twiml)} bytes"
        )
        return _twiml(twiml)

    except Exception as e:
        logger.error(
            f"[INCOMING CALL] Error processing incoming call - CallSid: {CallSid}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        return _twiml(builder.error_response(APOLOGY_MESSAGE, CallSid))


@router.post("/voice/gather")
async def handle_gather(
    request: Request,
    CallSid: str = Query(...),
    SpeechResult: Optional[str] = Form(None),
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Handle gathered speech from Twilio.

    This endpoint is called after Twilio collects caller speech.
    """
    logger.info(
        f"[GATHER] Received speech input - CallSid: {CallSid}, "
        f"SpeechResult length: {len(SpeechResult) if SpeechResult else 0}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )
    builder = TwiMLBuilder(get_base_url(request))
    speech = (SpeechResult or "").strip()

    try:
        if speech:
            logger.debug(
                f"[GATHER] Speech text: '{speech[:200]}{'...' if len(speech) > 200 else ''}' "
                f"- CallSid: {CallSid}"
            )
            result = await session_manager.handle_utterance(CallSid, speech)
        else:
            logger.warning(f"[GATHER] No speech result provided - CallSid: {CallSid}")
            result = await session_manager.reprompt(CallSid)

        twiml = builder.render(result, CallSid)
        logger.info(
            f"[GATHER] Responded - CallSid: {CallSid}, action: {result.action.value}, "
            f"department: {result.department.value}, TwiML length: {len(twiml)} bytes"
        )
        return _twiml(twiml)

    except Exception as e:
        logger.error(
            f"[GATHER] Error processing speech input - CallSid: {CallSid}, "
            f"SpeechResult: '{speech[:100] or 'None'}', "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        return _twiml(builder.error_response(APOLOGY_MESSAGE, CallSid))


@router.post("/voice/status")
async def handle_call_status(
    request: Request,
    CallSid: str = Form(...),
    CallStatus: str = Form(...),
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Handle call status updates from Twilio.

    This endpoint is called when call status changes (completed, failed, etc.).
    """
    logger.info(
        f"[CALL STATUS] Received status update - CallSid: {CallSid}, "
        f"CallStatus: {CallStatus}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        if CallStatus in FINAL_CALL_STATUSES:
            transcript = await session_manager.finish_call(CallSid, status=CallStatus)
            if transcript is None:
                logger.info(f"[CALL STATUS] No live session for call - CallSid: {CallSid}")
            else:
                logger.info(
                    f"[CALL STATUS] Session ended - CallSid: {CallSid}, "
                    f"Final status: {transcript.status}, entries: {len(transcript.entries)}"
                )
        else:
            logger.debug(
                f"[CALL STATUS] Status update received but no action needed - "
                f"CallSid: {CallSid}, CallStatus: {CallStatus}"
            )

        return Response(content="OK", media_type="text/plain")

    except Exception as e:
        logger.error(
            f"[CALL STATUS] Error handling call status update - CallSid: {CallSid}, "
            f"CallStatus: {CallStatus}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        # Still return OK to Twilio to avoid retries
        return Response(content="OK", media_type="text/plain")
