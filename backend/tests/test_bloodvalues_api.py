"""Tests for blood value entry endpoints."""

import pytest

from bloodwork.schemas.user import UserData
from conftest import TEST_USER_ID


def _entry_payload(date: str = "2026-02-01", **values: float) -> dict:
    values = values or {"Ferritin": 42.0}
    return {
        "date": date,
        "lab_name": "Labor Nord",
        "values": [
            {"name": name, "value": value, "unit": "x", "category": "Test"}
            for name, value in values.items()
        ],
    }


class TestEntryCrud:
    @pytest.mark.asyncio
    async def test_create_and_get(self, client, store):
        response = await client.post("/api/bloodvalues", json=_entry_payload())
        assert response.status_code == 201
        entry = response.json()
        assert entry["id"]
        assert entry["values"][0]["name"] == "Ferritin"

        response = await client.get(f"/api/bloodvalues/{entry['id']}")
        assert response.status_code == 200
        assert store.get_user_data(TEST_USER_ID).entries[0].id == entry["id"]

    @pytest.mark.asyncio
    async def test_list_newest_first_without_tokens(self, client):
        await client.post("/api/bloodvalues", json=_entry_payload("2026-01-01"))
        await client.post("/api/bloodvalues", json=_entry_payload("2026-03-01"))

        response = await client.get("/api/bloodvalues")
        data = response.json()
        assert [e["date"] for e in data["entries"]] == ["2026-03-01", "2026-01-01"]
        assert "api_tokens" not in data
        assert "shares_given" not in data

    @pytest.mark.asyncio
    async def test_replace(self, client):
        entry = (await client.post("/api/bloodvalues", json=_entry_payload())).json()
        response = await client.put(
            f"/api/bloodvalues/{entry['id']}", json=_entry_payload("2026-02-02", TSH=2.1)
        )
        assert response.status_code == 200
        assert response.json()["id"] == entry["id"]
        assert response.json()["values"][0]["name"] == "TSH"

    @pytest.mark.asyncio
    async def test_delete(self, client):
        entry = (await client.post("/api/bloodvalues", json=_entry_payload())).json()
        assert (await client.delete(f"/api/bloodvalues/{entry['id']}")).status_code == 204
        assert (await client.get(f"/api/bloodvalues/{entry['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_entry(self, client):
        assert (await client.get("/api/bloodvalues/nope")).status_code == 404
        assert (await client.put("/api/bloodvalues/nope", json=_entry_payload())).status_code == 404
        assert (await client.delete("/api/bloodvalues/nope")).status_code == 404

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"date": "01.02.2026", "values": [{"name": "A", "value": 1, "unit": "x", "category": "T"}]},
            {"date": "2026-02-01", "values": []},
            {"date": "2026-02-01", "values": [{"name": "A", "value": "NaN", "unit": "x", "category": "T"}]},
        ],
    )
    async def test_invalid_payload(self, client, payload):
        response = await client.post("/api/bloodvalues", json=payload)
        assert response.status_code == 422


class TestDerivedViews:
    @pytest.mark.asyncio
    async def test_history(self, client):
        await client.post("/api/bloodvalues", json=_entry_payload("2026-03-01", Ferritin=60.0))
        await client.post("/api/bloodvalues", json=_entry_payload("2026-01-01", Ferritin=20.0))

        response = await client.get("/api/bloodvalues/history/ferritin")
        assert response.status_code == 200
        assert [p["value"] for p in response.json()["history"]] == [20.0, 60.0]

    @pytest.mark.asyncio
    async def test_summary_uses_profile_gender(self, client, store):
        store.save_user_data(UserData(user_id=TEST_USER_ID, gender="female"))
        await client.post("/api/bloodvalues", json=_entry_payload(Ferritin=200.0, CRP=1.0, Lipase=3.0))

        response = await client.get("/api/bloodvalues/summary")
        data = response.json()
        assert data["total"] == 3
        assert data["abnormal"] == 1
        assert data["items"][0]["name"] == "Ferritin"
        assert data["items"][0]["status"] == "high"

    @pytest.mark.asyncio
    async def test_export_csv(self, client):
        await client.post("/api/bloodvalues", json=_entry_payload(Ferritin=150.0))

        response = await client.get("/api/bloodvalues/export.csv")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        text = response.content.decode("utf-8")
        assert text.startswith("\ufeff")
        assert '"2026-02-01","Labor Nord","Ferritin","150","x","Test","normal"' in text
