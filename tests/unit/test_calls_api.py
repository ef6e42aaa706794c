"""Unit tests for the call history API."""
import httpx
import pytest
from datetime import datetime, timedelta

from app.db.database import get_db
from app.main import app
from app.services.agent.stages import Department
from app.services.agent.state import TranscriptEntry
from app.services.call_session.models import FinalTranscript
from app.services.persistence.calls import CallPersistenceService


@pytest.fixture
async def api_client(test_db):
    """Async client sharing the test database session."""
    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def seed_call(db, call_sid: str, started_at: datetime, status: str = "completed"):
    transcript = FinalTranscript(
        call_sid=call_sid,
        caller_number="+27825550000",
        started_at=started_at,
        ended_at=started_at + timedelta(minutes=2),
        status=status,
        final_agent=Department.SALES,
        turn_count=2,
        entries=[
            TranscriptEntry(timestamp=started_at, speaker="Customer", text="Do you have Denon receivers?"),
        ],
    )
    return await CallPersistenceService(db).save_final_transcript(transcript, summary="Sales enquiry.")


class TestCallsAPI:
    """Test call history endpoints."""

    @pytest.mark.asyncio
    async def test_list_calls(self, api_client, test_db):
        await seed_call(test_db, "CA_first", datetime(2024, 11, 4, 9, 0))
        await seed_call(test_db, "CA_second", datetime(2024, 11, 4, 10, 0), status="escalated")

        response = await api_client.get("/api/calls")

        assert response.status_code == 200
        data = response.json()
        assert [call["call_sid"] for call in data] == ["CA_second", "CA_first"]
        assert data[0]["status"] == "escalated"
        assert data[0]["final_agent"] == "sales"
        assert data[0]["summary"] == "Sales enquiry."
        assert data[0]["transcript"][0]["speaker"] == "Customer"

    @pytest.mark.asyncio
    async def test_list_calls_limit(self, api_client, test_db):
        await seed_call(test_db, "CA_first", datetime(2024, 11, 4, 9, 0))
        await seed_call(test_db, "CA_second", datetime(2024, 11, 4, 10, 0))

        response = await api_client.get("/api/calls", params={"limit": 1})

        assert len(response.json()) == 1

    @pytest.mark.asyncio
    async def test_list_calls_invalid_limit(self, api_client):
        response = await api_client.get("/api/calls", params={"limit": 0})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_call(self, api_client, test_db):
        await seed_call(test_db, "CA_first", datetime(2024, 11, 4, 9, 0))

        response = await api_client.get("/api/calls/CA_first")

        assert response.status_code == 200
        data = response.json()
        assert data["turn_count"] == 2
        assert data["transcript"][0]["text"] == "Do you have Denon receivers?"

    @pytest.mark.asyncio
    async def test_get_call_not_found(self, api_client):
        response = await api_client.get("/api/calls/CA_missing")
        assert response.status_code == 404
