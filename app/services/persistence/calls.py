"""Call persistence service and transcript audit recorder."""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Call
from app.services.agent.insights import CallSummarizer
from app.services.call_session.manager import TranscriptRecorder
from app.services.call_session.models import FinalTranscript

logger = logging.getLogger(__name__)


class CallPersistenceService:
    """Service for persisting call data."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_call(
        self,
        call_sid: str,
        caller_number: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ) -> Call:
        """Create a new call record or return existing one."""
        existing_call = await self.get_call_by_sid(call_sid)
        if existing_call:
            return existing_call

        call = Call(
            call_sid=call_sid,
            caller_number=caller_number,
            started_at=started_at or datetime.utcnow(),
            status="in_progress",
        )
        self.db.add(call)
        await self.db.commit()
        await self.db.refresh(call)
        return call

    async def get_call_by_sid(self, call_sid: str) -> Optional[Call]:
        """Get call by Twilio call SID."""
        result = await self.db.execute(
            select(Call).where(Call.call_sid == call_sid)
        )
        return result.scalar_one_or_none()

    async def list_calls(self, limit: int = 20) -> List[Call]:
        """Most recent calls first."""
        result = await self.db.execute(
            select(Call).order_by(desc(Call.started_at)).limit(limit)
        )
        return list(result.scalars().all())

    async def update_call_status(
        self, call_sid: str, status: str, ended_at: Optional[datetime] = None
    ) -> Optional[Call]:
        """Update call status."""
        call = await self.get_call_by_sid(call_sid)
        if call:
            call.status = status
            if ended_at:
                call.ended_at = ended_at
            await self.db.commit()
            await self.db.refresh(call)
        return call

    async def update_call_transcript(
        self, call_sid: str, transcript: List[Dict[str, Any]]
    ) -> Optional[Call]:
        """Update call transcript."""
        call = await self.get_call_by_sid(call_sid)
        if call:
            call.transcript = transcript
            await self.db.commit()
            await self.db.refresh(call)
        return call

    async def save_final_transcript(
        self, transcript: FinalTranscript, summary: Optional[str] = None
    ) -> Call:
        """Write everything known about a finished call."""
        call = await self.create_call(
            transcript.call_sid,
            caller_number=transcript.caller_number,
            started_at=transcript.started_at,
        )
        call.ended_at = transcript.ended_at
        call.status = transcript.status
        call.final_agent = transcript.final_agent.value
        call.turn_count = transcript.turn_count
        call.failed_attempts = transcript.failed_attempts
        call.escalation_reason = transcript.escalation_reason
        call.transcript = [entry.model_dump(mode="json") for entry in transcript.entries]
        call.summary = summary
        await self.db.commit()
        await self.db.refresh(call)
        return call


class CallAuditService(TranscriptRecorder):
    """Records finished calls in the database, with an optional summary."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        summarizer: Optional[CallSummarizer] = None,
    ):
        self.session_factory = session_factory
        self.summarizer = summarizer

    async def _summarize(self, transcript: FinalTranscript) -> Optional[str]:
        if self.summarizer is None:
            return None
        try:
            return await self.summarizer.summarize(transcript.entries)
        except Exception as e:
            logger.warning(
                f"[AUDIT] Summary failed - CallSid: {transcript.call_sid}, "
                f"Error: {type(e).__name__}: {e}"
            )
            return None

    async def record(self, transcript: FinalTranscript) -> None:
        summary = await self._summarize(transcript)
        async with self.session_factory() as db:
            call = await CallPersistenceService(db).save_final_transcript(transcript, summary)
        logger.info(
            f"[AUDIT] Call recorded - CallSid: {transcript.call_sid}, id: {call.id}, "
            f"entries: {len(transcript.entries)}, summary: {'yes' if summary else 'no'}"
        )
