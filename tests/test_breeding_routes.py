"""HTTP tests for the breeding and health routes."""

from unittest.mock import AsyncMock

from breeding_backend.errors import GENERIC_RETRY_MESSAGE
from breeding_backend.services import auth_service

FARMER = {"X-User-Key": "farmer-1"}


def inseminate(client, cattle_id, when):
    return client.post(
        f"/breeding/{cattle_id}/events",
        json={"type": "Inseminate", "occurredAt": when},
        headers=FARMER,
    )


class TestHealth:
    def test_health_without_database(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "database": "memory"}


class TestInitialize:
    def test_initialize_then_conflict(self, client):
        response = client.post("/breeding/5/initialize", json={"initialParity": 1}, headers=FARMER)
        assert response.status_code == 201
        aggregate = response.json()["aggregate"]
        assert aggregate["version"] == 1
        assert aggregate["currentStatus"]["type"] == "NotBreeding"
        assert aggregate["currentStatus"]["parity"] == 1

        response = client.post("/breeding/5/initialize", json={}, headers=FARMER)
        assert response.status_code == 409
        assert response.json()["detail"]["type"] == "Conflict"

    def test_requires_identity(self, client):
        response = client.post("/breeding/5/initialize", json={})
        assert response.status_code == 401

    def test_negative_parity(self, client):
        response = client.post("/breeding/5/initialize", json={"initialParity": -2}, headers=FARMER)
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "initialParity"


class TestRecordEvent:
    def test_records_and_auto_initializes(self, client):
        response = inseminate(client, 5, "2024-01-10T00:00:00Z")
        assert response.status_code == 201
        aggregate = response.json()["aggregate"]
        assert aggregate["version"] == 2
        assert aggregate["history"] == [
            {"type": "Inseminate", "timestamp": "2024-01-10T00:00:00+00:00", "memo": None},
        ]

    def test_invalid_transition(self, client):
        response = client.post(
            "/breeding/6/events", json={"type": "Calve", "isDifficultBirth": False}, headers=FARMER,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == {
            "type": "ValidationError",
            "message": "Invalid transition from NotBreeding with event Calve",
        }

    def test_future_event(self, client):
        response = inseminate(client, 5, "2024-01-20T00:00:00Z")
        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Event timestamp cannot be in the future"

    def test_missing_expected_calving_date(self, client):
        inseminate(client, 5, "2024-01-01T00:00:00Z")
        response = client.post("/breeding/5/events", json={"type": "ConfirmPregnancy"}, headers=FARMER)
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "event.expectedCalvingDate"


class TestReads:
    def test_status_not_found(self, client):
        response = client.get("/breeding/99", headers=FARMER)
        assert response.status_code == 404
        assert response.json()["detail"] == "Breeding aggregate not found"

    def test_details_use_cache(self, client):
        inseminate(client, 5, "2024-01-10T00:00:00Z")

        first = client.get("/breeding/5/details", headers=FARMER).json()
        assert first["status"]["daysAfterInsemination"] == 5
        assert first["needsAttention"] is False
        assert first["cacheHit"] is False
        assert first["performanceRating"] == "Poor"
        assert first["calculatedAt"] == "2024-01-15T00:00:00+00:00"

        second = client.get("/breeding/5/details", headers=FARMER).json()
        assert second["cacheHit"] is True

        forced = client.get("/breeding/5/details", params={"force": "true"}, headers=FARMER).json()
        assert forced["cacheHit"] is False

    def test_details_not_found(self, client):
        response = client.get("/breeding/99/details", headers=FARMER)
        assert response.status_code == 404
        assert response.json()["detail"]["type"] == "NotFound"

    def test_cycle(self, client):
        inseminate(client, 5, "2024-01-10T00:00:00Z")
        body = client.get("/breeding/5/cycle", headers=FARMER).json()
        assert body["cycle"]["phase"] == "Inseminated"
        assert body["cycle"]["nextExpectedAction"] == "Pregnancy check"
        assert body["recommendedAction"]["action"] == "Observe"

    def test_events_window(self, client):
        inseminate(client, 5, "2023-12-01T00:00:00Z")
        inseminate(client, 5, "2024-01-10T00:00:00Z")
        body = client.get(
            "/breeding/5/events", params={"start": "2024-01-01T00:00:00Z"}, headers=FARMER,
        ).json()
        assert body["count"] == 1
        assert body["events"][0]["timestamp"] == "2024-01-10T00:00:00+00:00"

    def test_attention_and_statistics(self, client, services):
        services.repository.register_cattle(5, "farmer-1")
        services.repository.register_cattle(6, "farmer-2")
        inseminate(client, 5, "2023-12-20T00:00:00Z")
        inseminate(client, 6, "2023-12-20T00:00:00Z")

        body = client.get("/breeding/attention", headers=FARMER).json()
        assert body == {"count": 1, "cattleIds": [5]}

        stats = client.get("/breeding/statistics", headers=FARMER).json()["statistics"]
        assert stats["totalInseminations"] == 1
        assert stats["averagePregnancyRate"] == 0

    def test_repository_outage_is_503(self, client, services, monkeypatch):
        monkeypatch.setattr(
            services.repository, "find_by_cattle_id", AsyncMock(side_effect=ConnectionError("db down")),
        )
        response = client.get("/breeding/5", headers=FARMER)
        assert response.status_code == 503
        assert response.json()["detail"] == {"type": "InfraError", "message": GENERIC_RETRY_MESSAGE}


class TestBatch:
    def test_requires_admin_secret(self, client, monkeypatch):
        monkeypatch.setattr(auth_service, "ADMIN_SECRET", "s3cret")
        response = client.post("/breeding/batch/recalculate", headers={"X-Admin-Secret": "wrong"})
        assert response.status_code == 403

    def test_disabled_without_configured_secret(self, client, monkeypatch):
        monkeypatch.setattr(auth_service, "ADMIN_SECRET", "")
        response = client.post("/breeding/batch/recalculate", headers={"X-Admin-Secret": ""})
        assert response.status_code == 403

    def test_runs_batch(self, client, monkeypatch):
        monkeypatch.setattr(auth_service, "ADMIN_SECRET", "s3cret")
        inseminate(client, 5, "2024-01-10T00:00:00Z")
        response = client.post(
            "/breeding/batch/recalculate",
            params={"limit": 10, "force": "true"},
            headers={"X-Admin-Secret": "s3cret"},
        )
        assert response.status_code == 200
        assert response.json() == {"processedCount": 1, "updatedCount": 1, "errors": []}
