"""Database models."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Call(Base):
    """Finished call with its transcript, written when the call ends."""

    __tablename__ = "calls"

    id = Column(Integer, primary_key=True, index=True)
    call_sid = Column(String, unique=True, index=True, nullable=False)
    caller_number = Column(String, nullable=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    status = Column(String, default="in_progress", nullable=False)  # completed, escalated, failed, busy, no-answer
    final_agent = Column(String, nullable=True)  # receptionist, sales, shipping, support, accounts
    turn_count = Column(Integer, default=0, nullable=False)
    failed_attempts = Column(Integer, default=0, nullable=False)
    escalation_reason = Column(String, nullable=True)
    transcript = Column(JSON, nullable=True)  # List of {timestamp, speaker, text}
    summary = Column(Text, nullable=True)
