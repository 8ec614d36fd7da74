"""
HTTP API tests - routes, actor header, error mapping and null reads.
"""

import pytest
from fastapi.testclient import TestClient

from src.api.main import app, get_registry

OWNER = "deployer"
USER1 = "wallet_1"

FP1_HEX = "01" * 32
FP2_HEX = "02" * 32


def _headers(actor):
    return {"X-Actor-Id": actor}


class TestRegistryAPI:
    """Test cases for the registry endpoints."""

    @pytest.fixture
    def client(self, registry):
        """Test client bound to the per-test registry."""
        app.dependency_overrides[get_registry] = lambda: registry
        with TestClient(app) as test_client:
            yield test_client
        app.dependency_overrides.clear()

    @pytest.fixture
    def record_id(self, client):
        """Register one record through the API as OWNER."""
        response = client.post("/records", json={
            "fingerprint": FP1_HEX,
            "volume": 1000,
            "method": "DAC",
            "location": "Site A",
            "metadata": "Metadata details",
        }, headers=_headers(OWNER))
        assert response.status_code == 201
        return response.json()["record_id"]

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["db_health"] is True
        assert data["record_count"] == 0

    def test_register_and_read(self, client, record_id):
        assert record_id == 1

        response = client.get("/records/1")
        assert response.status_code == 200
        data = response.json()
        assert data["fingerprint"] == FP1_HEX
        assert data["owner"] == OWNER
        assert data["volume"] == 1000

        by_fp = client.get(f"/records/by-fingerprint/{FP1_HEX}").json()
        assert by_fp["id"] == 1

        assert client.get("/records/next-id").json() == {"next_id": 2}

    def test_absent_reads_are_null(self, client):
        assert client.get("/records/9").json() is None
        assert client.get(f"/records/by-fingerprint/{FP2_HEX}").json() is None
        assert client.get("/records/by-fingerprint/zz").json() is None
        assert client.get("/records/9/status").json() is None
        assert client.get("/records/9/tags").json() is None
        assert client.get("/records/9/revisions/1").json() is None
        assert client.get(f"/records/9/collaborators/{USER1}").json() is None

    def test_duplicate_is_conflict(self, client, record_id):
        response = client.post("/records", json={
            "fingerprint": FP1_HEX, "volume": 5, "method": "CCS", "location": "Site B",
        }, headers=_headers(USER1))
        assert response.status_code == 409
        data = response.json()
        assert data["error_type"] == "AlreadyRegistered"
        assert data["details"]["code"] == 100
        assert data["details"]["record_id"] == record_id

    def test_validation_error_is_bad_request(self, client):
        response = client.post("/records", json={
            "fingerprint": FP1_HEX, "volume": 0, "method": "DAC", "location": "Site A",
        }, headers=_headers(OWNER))
        assert response.status_code == 400
        assert response.json()["details"]["code"] == 104

    def test_non_hex_fingerprint(self, client):
        response = client.post("/records", json={
            "fingerprint": "not-hex", "volume": 1, "method": "DAC", "location": "Site A",
        }, headers=_headers(OWNER))
        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidFingerprint"

    def test_missing_actor_header(self, client):
        response = client.post("/records", json={
            "fingerprint": FP1_HEX, "volume": 1, "method": "DAC", "location": "Site A",
        })
        assert response.status_code == 422

    def test_revision_flow(self, client, record_id):
        response = client.post(f"/records/{record_id}/revisions", json={
            "fingerprint": FP2_HEX, "notes": "Updated data",
        }, headers=_headers(OWNER))
        assert response.status_code == 201
        assert response.json() == {"record_id": record_id, "revision": 1}

        revisions = client.get(f"/records/{record_id}/revisions").json()["revisions"]
        assert [r["fingerprint"] for r in revisions] == [FP2_HEX]
        assert client.get(f"/records/{record_id}/revisions/1").json()["notes"] == "Updated data"

    def test_revision_errors(self, client, record_id):
        missing = client.post("/records/9/revisions", json={"fingerprint": FP2_HEX}, headers=_headers(OWNER))
        assert missing.status_code == 404

        stranger = client.post(f"/records/{record_id}/revisions", json={"fingerprint": FP2_HEX},
                               headers=_headers(USER1))
        assert stranger.status_code == 403

        for _ in range(5):
            client.post(f"/records/{record_id}/revisions", json={"fingerprint": FP2_HEX},
                        headers=_headers(OWNER))
        full = client.post(f"/records/{record_id}/revisions", json={"fingerprint": FP2_HEX},
                           headers=_headers(OWNER))
        assert full.status_code == 409
        assert full.json()["error_type"] == "MaxVersionsReached"

    def test_collaborator_flow(self, client, record_id):
        response = client.post(f"/records/{record_id}/collaborators", json={
            "collaborator": USER1, "role": "auditor", "permissions": ["verify", "update"],
        }, headers=_headers(OWNER))
        assert response.status_code == 201

        grant = client.get(f"/records/{record_id}/collaborators/{USER1}").json()
        assert grant["role"] == "auditor"
        assert grant["permissions"] == ["verify", "update"]

        authorized = client.get(f"/records/{record_id}/authorized",
                                params={"actor": USER1, "permission": "update"}).json()
        assert authorized["authorized"] is True

        listed = client.get(f"/records/{record_id}/collaborators").json()["collaborators"]
        assert [g["collaborator"] for g in listed] == [USER1]

    def test_tags_and_status(self, client, record_id):
        response = client.put(f"/records/{record_id}/tags", json={"tags": ["industrial"]},
                              headers=_headers(OWNER))
        assert response.status_code == 200
        assert client.get(f"/records/{record_id}/tags").json()["tags"] == ["industrial"]

        response = client.put(f"/records/{record_id}/status", json={"status": "verified", "visible": False},
                              headers=_headers(OWNER))
        assert response.status_code == 200
        status = client.get(f"/records/{record_id}/status").json()
        assert status["status"] == "verified"
        assert status["visible"] is False

    def test_status_errors(self, client, record_id):
        invalid = client.put(f"/records/{record_id}/status", json={"status": "approved"},
                             headers=_headers(OWNER))
        assert invalid.status_code == 400
        assert invalid.json()["details"]["code"] == 108

        # Missing record reports Unauthorized
        missing = client.put("/records/9/status", json={"status": "verified"}, headers=_headers(OWNER))
        assert missing.status_code == 403

    def test_list_records_and_events(self, client, record_id):
        records = client.get("/records", params={"owner": OWNER}).json()["records"]
        assert [r["id"] for r in records] == [record_id]

        events = client.get("/events", params={"record_id": record_id}).json()["events"]
        assert events[0]["action"] == "register"
        assert events[0]["payload"]["fingerprint"] == FP1_HEX

    def test_out_of_range_id_reads_null(self, client, record_id):
        huge = 2**63
        assert client.get(f"/records/{huge}").status_code == 200
        assert client.get(f"/records/{huge}").json() is None
        assert client.get(f"/records/{huge}/status").json() is None

        response = client.put(f"/records/{huge}/tags", json={"tags": ["x"]}, headers=_headers(OWNER))
        assert response.status_code == 403

    def test_missing_record_reported_before_bad_hex(self, client):
        response = client.post("/records/9/revisions", json={"fingerprint": "zz"}, headers=_headers(OWNER))
        assert response.status_code == 404
        assert response.json()["error_type"] == "NotFound"

    def test_bad_hex_revision_on_existing_record(self, client, record_id):
        response = client.post(f"/records/{record_id}/revisions", json={"fingerprint": "zz"},
                               headers=_headers(OWNER))
        assert response.status_code == 400
        data = response.json()
        assert data["error_type"] == "InvalidFingerprint"
        assert data["details"]["code"] == 102
