"""Tests for the pipeline orchestrator."""

import json
import threading
from unittest.mock import MagicMock

import pytest

from conftest import FakeLoader, certificate_doc, endpoint_doc, partner_doc

from b2b_migrator.exceptions import ArtifactNotFoundError, InvalidStateError, MigratorError
from b2b_migrator.extractors import JsonExportExtractor
from b2b_migrator.extractors.base import BaseExtractor, ExtractedItem
from b2b_migrator.models.artifact import ArtifactStatus, ArtifactType, ExtractionStatus
from b2b_migrator.models.config import PipelineConfig, TargetCredentials
from b2b_migrator.orchestrator import PipelineOrchestrator
from b2b_migrator.services.ledger import InMemoryLedger, JsonFileLedger
from b2b_migrator.services.transformer import CanonicalTransformer


class StaticExtractor(BaseExtractor):
    method = "static"

    def __init__(self, items=None, error=None, gate=None):
        super().__init__()
        self.items = items or []
        self.error = error
        self.gate = gate

    def extract(self):
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error:
            raise self.error
        self.add_warning("static source")
        return self.get_extraction_result(list(self.items))


def _export(tmp_path, entries):
    path = tmp_path / "export.json"
    path.write_text(json.dumps(entries))
    return str(path)


class TestExtraction:
    """Tests for extraction jobs."""

    def test_run_extraction_creates_new_artifacts(self, orchestrator, tmp_path):
        path = _export(tmp_path, [
            {"originalId": "TP1", "document": partner_doc("TP1")},
            {"originalId": "C1", "document": certificate_doc("C1")},
        ])

        job = orchestrator.run_extraction(JsonExportExtractor(path))

        assert job.status == ExtractionStatus.COMPLETED
        assert job.artifact_count == 2
        assert job.metadata["source"] == path
        artifacts = orchestrator.list_artifacts()
        assert [a.original_id for a in artifacts] == ["TP1", "C1"]
        assert all(a.status == ArtifactStatus.NEW for a in artifacts)
        assert all(a.extraction_job_id == job.id for a in artifacts)
        assert artifacts[0].name == "Partner TP1"

    def test_start_extraction_returns_in_progress_job(self, orchestrator):
        gate = threading.Event()
        job, future = orchestrator.start_extraction(StaticExtractor(gate=gate))

        assert job.status == ExtractionStatus.IN_PROGRESS
        assert orchestrator.list_extractions()[0].status == ExtractionStatus.IN_PROGRESS
        gate.set()
        finished = future.result(timeout=5)
        assert finished.status == ExtractionStatus.COMPLETED
        assert orchestrator.list_extractions()[0].status == ExtractionStatus.COMPLETED

    def test_item_errors_are_kept_on_job(self, orchestrator, tmp_path):
        path = _export(tmp_path, [{"originalId": "X"}, {"originalId": "C1", "document": certificate_doc("C1")}])

        job = orchestrator.run_extraction(JsonExportExtractor(path))

        assert job.status == ExtractionStatus.COMPLETED
        assert job.artifact_count == 1
        assert "missing document" in job.metadata["errors"][0]["message"]

    def test_failed_extraction_is_recorded(self, orchestrator):
        job = orchestrator.run_extraction(StaticExtractor(error=MigratorError("source offline")))

        assert job.status == ExtractionStatus.FAILED
        assert job.metadata["error"] == "source offline"
        assert job.artifact_count == 0
        assert orchestrator.list_artifacts() == []

    def test_warnings_are_kept_on_job(self, orchestrator):
        item = ExtractedItem("C1", ArtifactType.CERTIFICATE, certificate_doc("C1"))

        job = orchestrator.run_extraction(StaticExtractor([item]))

        assert job.metadata["warnings"] == ["static source"]


class TestTransformation:
    """Tests for transforming new artifacts."""

    def test_transform_all(self, orchestrator, add_artifact, ledger):
        good = add_artifact(ArtifactType.TRADING_PARTNER, partner_doc("TP1", endpoints=["E1", "E2"]), "TP1")
        bad = add_artifact(ArtifactType.MAP, {"Partner": [{"id": ["TP9"]}]}, "M1")

        batch = orchestrator.transform_all()

        assert batch.operation == "transform"
        assert batch.succeeded == 1
        assert batch.failed == 1
        stored = ledger.get_artifact(good.id)
        assert stored.status == ArtifactStatus.PENDING
        assert len(stored.transformed_data["references"]) == 2
        failed = ledger.get_artifact(bad.id)
        assert failed.status == ArtifactStatus.ERROR
        assert "missing <Map> element" in failed.error_message

    def test_transform_only_touches_new_artifacts(self, orchestrator, add_pending, ledger):
        pending = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        batch = orchestrator.transform_one(pending.id)

        assert batch.get(pending.id).error_type == "InvalidStateError"
        assert ledger.get_artifact(pending.id) == pending

    def test_transform_unknown_artifact(self, orchestrator):
        with pytest.raises(ArtifactNotFoundError):
            orchestrator.transform_one(42)

    def test_unexpected_transform_error_is_recorded(self, ledger, fake_loader, add_artifact):
        transformer = MagicMock(spec=CanonicalTransformer)
        transformer.transform.side_effect = KeyError("id")
        orchestrator = PipelineOrchestrator(ledger=ledger, loader=fake_loader, transformer=transformer)
        artifact = add_artifact(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        batch = orchestrator.transform_one(artifact.id)

        assert batch.get(artifact.id).error_type == "KeyError"
        assert ledger.get_artifact(artifact.id).error_message.startswith("KeyError")
        orchestrator.close()


class TestMigration:
    """Tests for migration entry points."""

    def test_migrate_one_uses_configured_credentials(self, orchestrator, add_pending, fake_loader):
        cert = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        batch = orchestrator.migrate_one(cert.id)

        assert batch.succeeded == 1
        assert fake_loader.auth_calls == 1

    def test_migrate_one_new_artifact(self, orchestrator, add_artifact, ledger):
        artifact = add_artifact(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        batch = orchestrator.migrate_one(artifact.id)

        assert batch.get(artifact.id).error_type == "InvalidStateError"
        assert ledger.get_artifact(artifact.id).status == ArtifactStatus.NEW

    def test_migrate_one_unknown_artifact(self, orchestrator):
        with pytest.raises(ArtifactNotFoundError):
            orchestrator.migrate_one(7)

    def test_environment_credentials_take_precedence(self, orchestrator, add_pending, fake_loader, monkeypatch):
        monkeypatch.setenv("B2B_MIGRATOR_CLIENT_ID", "env-client")
        monkeypatch.setenv("B2B_MIGRATOR_CLIENT_SECRET", "env-secret")
        cert = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        orchestrator.migrate_one(cert.id)

        assert fake_loader.auth_clients == ["env-client"]

    def test_explicit_credentials(self, orchestrator, add_pending, fake_loader):
        cert = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        orchestrator.migrate_one(cert.id, TargetCredentials("other-client", "s"))

        assert fake_loader.auth_clients == ["other-client"]

    def test_migrate_all_orders_pending_artifacts(self, orchestrator, add_pending, fake_loader):
        add_pending(ArtifactType.TRADING_PARTNER, partner_doc("P1", endpoints=["E1"]), "P1")
        add_pending(ArtifactType.ENDPOINT, endpoint_doc("E1"), "E1")

        batch = orchestrator.migrate_all()

        assert batch.succeeded == 2
        assert fake_loader.pushed == ["endpoint:E1", "trading_partner:P1"]

    def test_full_pipeline(self, orchestrator, tmp_path):
        path = _export(tmp_path, [
            {"originalId": "P1", "document": partner_doc("P1", endpoints=["E1"])},
            {"originalId": "E1", "document": endpoint_doc("E1")},
            {"originalId": "C1", "document": certificate_doc("C1")},
        ])

        orchestrator.run_extraction(JsonExportExtractor(path))
        orchestrator.transform_all()
        batch = orchestrator.migrate_all()

        assert batch.succeeded == 3
        assert orchestrator.dashboard_stats()["migrated_count"] == 3


class TestOperatorActions:
    def test_reject_then_retransform(self, orchestrator, add_pending, fake_loader, ledger):
        cert = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")
        fake_loader.reject("C1")
        orchestrator.migrate_one(cert.id)

        rejected = orchestrator.reject(cert.id)
        batch = orchestrator.transform_one(cert.id)

        assert rejected.status == ArtifactStatus.NEW
        assert batch.succeeded == 1
        assert ledger.get_artifact(cert.id).status == ArtifactStatus.PENDING

    def test_reject_requires_error(self, orchestrator, add_pending):
        cert = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        with pytest.raises(InvalidStateError):
            orchestrator.reject(cert.id)

    def test_force_remigration(self, orchestrator, add_pending):
        cert = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")
        orchestrator.migrate_one(cert.id)

        artifact = orchestrator.force_remigration(cert.id)

        assert artifact.status == ArtifactStatus.NEW
        assert artifact.transformed_data is not None


class TestQueries:
    """Tests for history and dashboard statistics."""

    def test_history(self, orchestrator, add_pending, fake_loader):
        first = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")
        second = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C2"), "C2")
        fake_loader.reject("C2")
        orchestrator.migrate_one(first.id)
        orchestrator.migrate_one(second.id)

        history = orchestrator.history()

        assert [a.artifact_id for a in history] == [second.id, first.id]
        assert [a.artifact_id for a in orchestrator.history(first.id)] == [first.id]

    def test_history_unknown_artifact(self, orchestrator):
        with pytest.raises(ArtifactNotFoundError):
            orchestrator.history(5)

    def test_dashboard_stats(self, orchestrator, add_artifact, add_pending, fake_loader):
        add_artifact(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")
        migrated = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C2"), "C2")
        failed = add_pending(ArtifactType.CERTIFICATE, certificate_doc("C3"), "C3")
        add_pending(ArtifactType.CERTIFICATE, certificate_doc("C4"), "C4")
        fake_loader.reject("C3")
        orchestrator.migrate_one(migrated.id)
        orchestrator.migrate_one(failed.id)

        stats = orchestrator.dashboard_stats()

        assert stats["artifact_count"] == 4
        assert stats["new_count"] == 1
        assert stats["pending_count"] == 1
        assert stats["migrated_count"] == 1
        assert stats["error_count"] == 1
        assert stats["last_extracted"] is not None

    def test_dashboard_empty_ledger(self, orchestrator):
        stats = orchestrator.dashboard_stats()

        assert stats["artifact_count"] == 0
        assert stats["last_extracted"] is None


class TestConfiguration:
    def test_reports_written_when_enabled(self, ledger, fake_loader, add_artifact, tmp_path):
        config = PipelineConfig(output_dir=str(tmp_path), save_reports=True)
        orchestrator = PipelineOrchestrator(config=config, ledger=ledger, loader=fake_loader)
        add_artifact(ArtifactType.CERTIFICATE, certificate_doc("C1"), "C1")

        orchestrator.transform_all()
        orchestrator.close()

        reports = list((tmp_path / "reports").glob("transform_report_*.json"))
        assert len(reports) == 1
        report = json.loads(reports[0].read_text())
        assert report["succeeded"] == 1

    def test_ledger_chosen_from_config(self, tmp_path):
        config = PipelineConfig(ledger_path=str(tmp_path / "ledger.json"))
        orchestrator = PipelineOrchestrator(config=config, loader=FakeLoader())

        assert isinstance(orchestrator.ledger, JsonFileLedger)
        orchestrator.close()

    def test_in_memory_ledger_by_default(self):
        orchestrator = PipelineOrchestrator(loader=FakeLoader())

        assert isinstance(orchestrator.ledger, InMemoryLedger)
        orchestrator.close()
