"""Tests for the AI doctor chat and scan endpoints.

The doctor service is replaced by one wrapping a mocked OpenAI client.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from openai import APIConnectionError

from bloodwork.config import settings
from bloodwork.main import app
from bloodwork.routes.ai import get_doctor
from bloodwork.schemas.ai import ExtractedBloodValue, ScanResult
from bloodwork.services.doctor import DoctorService
from conftest import TEST_USER_ID

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


@pytest.fixture
def mock_openai() -> AsyncMock:
    mock_client = AsyncMock()

    chat_response = MagicMock()
    chat_response.output_text = "Ihre Werte sehen gut aus."
    mock_client.responses.create = AsyncMock(return_value=chat_response)

    scan_response = MagicMock()
    scan_response.output_parsed = ScanResult(
        date="2026-02-01",
        lab_name="Labor Nord",
        values=[
            ExtractedBloodValue(name="GFR", value=95.0),
            ExtractedBloodValue(name="Lipase", value=30.0, unit="U/l"),
        ],
    )
    mock_client.responses.parse = AsyncMock(return_value=scan_response)
    return mock_client


@pytest_asyncio.fixture
async def ai_client(client, mock_openai):
    """Test client with the doctor dependency backed by the mocked client."""
    app.dependency_overrides[get_doctor] = lambda: DoctorService(client=mock_openai)
    yield client
    app.dependency_overrides.pop(get_doctor, None)


class TestChat:
    @pytest.mark.asyncio
    async def test_chat_persists_both_messages(self, ai_client, store):
        response = await ai_client.post("/api/ai/chat", json={"message": "Wie ist mein Ferritin?"})
        assert response.status_code == 200
        data = response.json()
        assert data["message"]["role"] == "assistant"
        assert data["message"]["content"] == "Ihre Werte sehen gut aus."
        assert data["user_message"]["content"] == "Wie ist mein Ferritin?"

        history = (await ai_client.get("/api/ai/history")).json()
        assert [m["role"] for m in history["messages"]] == ["user", "assistant"]
        assert store.get_chat_history(TEST_USER_ID).messages[0].content == "Wie ist mein Ferritin?"

    @pytest.mark.asyncio
    async def test_history_sent_to_model(self, ai_client, mock_openai):
        await ai_client.post("/api/ai/chat", json={"message": "Erste Frage"})
        await ai_client.post("/api/ai/chat", json={"message": "Zweite Frage"})

        input_messages = mock_openai.responses.create.call_args.kwargs["input"]
        assert [m["role"] for m in input_messages] == ["system", "user", "assistant", "user"]
        assert "Kontext - Aktuelle Nutzerdaten" in input_messages[0]["content"]

    @pytest.mark.asyncio
    async def test_clear_history(self, ai_client):
        await ai_client.post("/api/ai/chat", json={"message": "Hallo"})
        assert (await ai_client.delete("/api/ai/history")).status_code == 204
        assert (await ai_client.get("/api/ai/history")).json()["messages"] == []

    @pytest.mark.asyncio
    async def test_message_too_long(self, ai_client):
        response = await ai_client.post("/api/ai/chat", json={"message": "x" * 4001})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_rate_limited(self, ai_client, monkeypatch):
        monkeypatch.setattr(settings, "ai_daily_limit", 1)
        assert (await ai_client.post("/api/ai/chat", json={"message": "eins"})).status_code == 200
        response = await ai_client.post("/api/ai/chat", json={"message": "zwei"})
        assert response.status_code == 429

    @pytest.mark.asyncio
    async def test_llm_error_is_503_and_not_persisted(self, ai_client, mock_openai, store):
        request = httpx.Request("POST", "https://api.openai.com/v1/responses")
        mock_openai.responses.create.side_effect = APIConnectionError(request=request)
        response = await ai_client.post("/api/ai/chat", json={"message": "Hallo"})
        assert response.status_code == 503
        assert store.get_chat_history(TEST_USER_ID).messages == []

    @pytest.mark.asyncio
    async def test_not_configured_is_503(self, client, monkeypatch):
        from bloodwork.services.doctor import get_doctor_service

        get_doctor_service.cache_clear()
        monkeypatch.setattr(settings, "openai_api_key", "")
        response = await client.post("/api/ai/chat", json={"message": "Hallo"})
        assert response.status_code == 503
        get_doctor_service.cache_clear()


class TestScan:
    @pytest.mark.asyncio
    async def test_scan_resolves_values(self, ai_client):
        response = await ai_client.post(
            "/api/ai/scan",
            files={"file": ("befund.png", PNG_BYTES, "image/png")},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["lab_name"] == "Labor Nord"
        gfr, lipase = data["values"]
        assert gfr["ref_id"] == "egfr"
        assert gfr["unit"] == "ml/min"
        assert lipase["ref_id"] is None

    @pytest.mark.asyncio
    async def test_wrong_type(self, ai_client):
        response = await ai_client.post(
            "/api/ai/scan",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_too_large(self, ai_client):
        big = b"\x00" * (10 * 1024 * 1024 + 1)
        response = await ai_client.post(
            "/api/ai/scan",
            files={"file": ("big.pdf", big, "application/pdf")},
        )
        assert response.status_code == 413

    @pytest.mark.asyncio
    async def test_unreadable_report(self, ai_client, mock_openai):
        mock_openai.responses.parse.return_value.output_parsed = None
        mock_openai.responses.parse.return_value.output_text = ""
        response = await ai_client.post(
            "/api/ai/scan",
            files={"file": ("befund.jpg", b"\xff\xd8\xff", "image/jpeg")},
        )
        assert response.status_code == 422
