"""Call transcript history API endpoints."""
import logging
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Request, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.services.persistence.calls import CallPersistenceService

router = APIRouter()
logger = logging.getLogger(__name__)


class TranscriptEntryResponse(BaseModel):
    """Transcript line response model."""
    timestamp: str
    speaker: str
    text: str


class CallResponse(BaseModel):
    """Call response model."""
    id: int
    call_sid: str
    caller_number: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    status: str
    final_agent: Optional[str] = None
    turn_count: int = 0
    failed_attempts: int = 0
    escalation_reason: Optional[str] = None
    summary: Optional[str] = None
    transcript: List[TranscriptEntryResponse] = []


def _to_response(call) -> CallResponse:
    return CallResponse(
        id=call.id,
        call_sid=call.call_sid,
        caller_number=call.caller_number,
        started_at=call.started_at,
        ended_at=call.ended_at,
        status=call.status,
        final_agent=call.final_agent,
        turn_count=call.turn_count or 0,
        failed_attempts=call.failed_attempts or 0,
        escalation_reason=call.escalation_reason,
        summary=call.summary,
        transcript=[TranscriptEntryResponse(**entry) for entry in (call.transcript or [])],
    )


@router.get("/api/calls", response_model=List[CallResponse])
async def list_calls(
    request: Request,
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Most recent calls with their transcripts."""
    logger.info(
        f"[CALL HISTORY] Request received - limit: {limit}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )
    calls = await CallPersistenceService(db).list_calls(limit=limit)
    logger.info(f"[CALL HISTORY] Found {len(calls)} calls in database")
    return [_to_response(call) for call in calls]


@router.get("/api/calls/{call_sid}", response_model=CallResponse)
async def get_call(call_sid: str, db: AsyncSession = Depends(get_db)):
    """A single call transcript."""
    call = await CallPersistenceService(db).get_call_by_sid(call_sid)
    if call is None:
        raise HTTPException(status_code=404, detail=f"Call {call_sid} not found")
    return _to_response(call)
