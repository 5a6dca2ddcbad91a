"""Tests for the HTTP API."""

import json
import time
import zipfile

import pytest
from fastapi.testclient import TestClient

from conftest import certificate_doc, endpoint_doc, partner_doc

from b2b_migrator.api.main import create_app
from b2b_migrator.models.artifact import ArtifactType


@pytest.fixture()
def client(orchestrator):
    with TestClient(create_app(orchestrator)) as test_client:
        yield test_client


def _wait_for_extraction(client, job_id):
    for _ in range(50):
        job = client.get(f"/api/extractions/{job_id}").json()
        if job["status"] != "in_progress":
            return job
        time.sleep(0.1)
    pytest.fail(f"Extraction {job_id} did not finish")


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


class TestArtifactRoutes:
    """Tests for artifact review endpoints."""

    def test_list_and_filter(self, client, add_artifact, add_pending):
        add_artifact(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")
        add_pending(ArtifactType.ENDPOINT, endpoint_doc("E1"), "E1")

        everything = client.get("/api/artifacts").json()
        pending = client.get("/api/artifacts", params={"status": "pending"}).json()
        certs = client.get("/api/artifacts", params={"type": "certificate"}).json()

        assert everything["total"] == 2
        assert [a["original_id"] for a in pending["artifacts"]] == ["E1"]
        assert [a["original_id"] for a in certs["artifacts"]] == ["C1"]

    def test_invalid_filter_value(self, client):
        assert client.get("/api/artifacts", params={"status": "archived"}).status_code == 422

    def test_get_artifact(self, client, add_pending):
        artifact = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        body = client.get(f"/api/artifacts/{artifact.id}").json()

        assert body["status"] == "pending"
        assert body["transformed_data"]["certificate"]["id"] == "C1"

    def test_unknown_artifact(self, client):
        response = client.get("/api/artifacts/99")

        assert response.status_code == 404
        assert "99" in response.json()["detail"]

    def test_reject_requires_error_state(self, client, add_pending):
        artifact = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        assert client.post(f"/api/artifacts/{artifact.id}/reject").status_code == 409

    def test_reject_failed_artifact(self, client, add_pending, fake_loader):
        artifact = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")
        fake_loader.reject("C1")
        client.post(f"/api/migrate/{artifact.id}")

        response = client.post(f"/api/artifacts/{artifact.id}/reject")

        assert response.status_code == 200
        assert response.json()["status"] == "new"
        assert response.json()["transformed_data"] is None

    def test_force_remigration(self, client, add_pending):
        artifact = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")
        client.post(f"/api/migrate/{artifact.id}")

        response = client.post(f"/api/artifacts/{artifact.id}/force-remigration")

        assert response.json()["status"] == "new"


class TestPipelineRoutes:
    """Tests for extraction, transformation and migration endpoints."""

    def test_extract_then_poll(self, client, tmp_path):
        path = tmp_path / "export.json"
        path.write_text(json.dumps([{"originalId": "C1", "document": certificate_doc("C1")}]))

        response = client.post("/api/extract", json={"path": str(path)})

        assert response.status_code == 202
        job = _wait_for_extraction(client, response.json()["id"])
        assert job["status"] == "completed"
        assert job["artifact_count"] == 1
        assert len(client.get("/api/extractions").json()) == 1

    def test_extract_csx_archive(self, client, tmp_path):
        path = tmp_path / "export.zip"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("Certificate.xml", "<Certificate><id>C1</id></Certificate>")

        response = client.post("/api/extract", json={"path": str(path), "format": "csx"})

        job = _wait_for_extraction(client, response.json()["id"])
        assert job["method"] == "csx_export"
        assert job["status"] == "completed"
        assert job["artifact_count"] == 1

    def test_extract_unknown_format(self, client, tmp_path):
        response = client.post("/api/extract", json={"path": str(tmp_path), "format": "xml"})

        assert response.status_code == 422

    def test_failed_extraction_is_visible(self, client, tmp_path):
        response = client.post("/api/extract", json={"path": str(tmp_path / "missing.json")})

        job = _wait_for_extraction(client, response.json()["id"])
        assert job["status"] == "failed"
        assert "not found" in job["metadata"]["error"]

    def test_unknown_extraction(self, client):
        assert client.get("/api/extractions/12").status_code == 404

    def test_transform_all(self, client, add_artifact):
        add_artifact(ArtifactType.TRADING_PARTNER, partner_doc("P1"), "P1")
        add_artifact(ArtifactType.MAP, {}, "M1")

        body = client.post("/api/transform").json()

        assert body["operation"] == "transform"
        assert body["succeeded"] == 1
        assert body["failed"] == 1

    def test_transform_one_in_wrong_state(self, client, add_pending):
        artifact = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        assert client.post(f"/api/transform/{artifact.id}").status_code == 409

    def test_migrate_one(self, client, add_pending):
        artifact = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        body = client.post(f"/api/migrate/{artifact.id}").json()

        assert body["succeeded_ids"] == [artifact.id]
        assert body["results"][0]["status"] == "succeeded"
        assert body["results"][0]["remote_id"] == "remote-C1"

    def test_migrate_all_with_body_credentials(self, client, add_pending, fake_loader):
        add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        body = client.post("/api/migrate", json={"clientId": "body-client", "clientSecret": "s"}).json()

        assert body["succeeded"] == 1
        assert fake_loader.auth_clients == ["body-client"]

    def test_migrate_one_with_body_credentials(self, client, add_pending, fake_loader):
        artifact = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        response = client.post(
            f"/api/migrate/{artifact.id}", json={"clientId": "body-client", "clientSecret": "s"}
        )

        assert response.json()["succeeded_ids"] == [artifact.id]
        assert fake_loader.auth_clients == ["body-client"]

    def test_migrate_without_body_uses_configured_credentials(self, client, add_pending, fake_loader):
        add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        client.post("/api/migrate")

        assert fake_loader.auth_clients == ["client-1"]

    def test_migrate_body_needs_both_values(self, client):
        assert client.post("/api/migrate", json={"clientId": "body-client"}).status_code == 422

    def test_migrate_new_artifact_conflicts(self, client, add_artifact):
        artifact = add_artifact(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        response = client.post(f"/api/migrate/{artifact.id}")

        assert response.status_code == 409
        assert "new" in response.json()["detail"]

    def test_migrate_unknown_artifact(self, client):
        assert client.post("/api/migrate/404").status_code == 404

    def test_migrate_all_reports_failures(self, client, add_pending, fake_loader):
        add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")
        failed = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C2"), "C2")
        fake_loader.reject("C2")

        body = client.post("/api/migrate").json()

        assert body["succeeded"] == 1
        assert body["failed"] == 1
        assert "duplicate name" in body["failures"][str(failed.id)]

    def test_migrate_all_authentication_failure(self, client, add_pending, fake_loader):
        add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")
        fake_loader.auth_error = RuntimeError("token endpoint down")

        body = client.post("/api/migrate").json()

        assert body["cancelled"] == 1
        assert body["batch_error_type"] == "AuthenticationError"

    def test_migration_history(self, client, add_pending):
        artifact = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")
        client.post(f"/api/migrate/{artifact.id}")

        all_attempts = client.get("/api/migrations").json()
        filtered = client.get("/api/migrations", params={"artifact_id": artifact.id}).json()

        assert all_attempts["total"] == 1
        assert filtered["attempts"][0]["status"] == "success"
        assert filtered["attempts"][0]["remote_response"]["remote_id"] == "remote-C1"

    def test_dashboard(self, client, add_artifact, add_pending):
        add_artifact(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")
        add_pending(ArtifactType.CERTIFICATE, certificate_doc("C2"), "C2")

        body = client.get("/api/dashboard").json()

        assert body["artifact_count"] == 2
        assert body["new_count"] == 1
        assert body["pending_count"] == 1
        assert body["last_extracted"] is not None
