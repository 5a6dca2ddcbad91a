"""Shared test fixtures for the b2b_migrator test suite."""

import threading
from typing import Any, Dict, List, Optional

import pytest

from b2b_migrator.exceptions import RemoteRejectionError
from b2b_migrator.loaders.base import BaseLoader, PushResponse, Token
from b2b_migrator.models.artifact import ArtifactType
from b2b_migrator.models.config import PipelineConfig, TargetCredentials
from b2b_migrator.models.record import CanonicalRecord
from b2b_migrator.orchestrator import PipelineOrchestrator
from b2b_migrator.services.ledger import InMemoryLedger

# ---------------------------------------------------------------------------
# Source document builders (nested-list export shape)
# ---------------------------------------------------------------------------


def partner_doc(
    partner_id: str,
    endpoints: Optional[List[str]] = None,
    identifiers: Optional[List[Dict[str, str]]] = None,
) -> Dict[str, Any]:
    partner: Dict[str, Any] = {
        "id": [partner_id],
        "name": [f"Partner {partner_id}"],
        "status": ["active"],
    }
    if identifiers:
        partner["Identifiers"] = [{
            "Identifier": [
                {key: [value] for key, value in ident.items()} for ident in identifiers
            ]
        }]
    if endpoints:
        partner["Endpoints"] = [{"Endpoint": [{"id": [e]} for e in endpoints]}]
    return {"Partner": [partner]}


def endpoint_doc(
    endpoint_id: str,
    partner_id: Optional[str] = None,
    channel_id: Optional[str] = None,
) -> Dict[str, Any]:
    endpoint: Dict[str, Any] = {
        "id": [endpoint_id],
        "name": [f"Endpoint {endpoint_id}"],
        "type": ["AS2"],
        "url": [f"https://edi.example.com/{endpoint_id}"],
    }
    if partner_id:
        endpoint["partnerId"] = [partner_id]
    if channel_id:
        endpoint["channelId"] = [channel_id]
    return {"Endpoint": [endpoint]}


def certificate_doc(cert_id: str) -> Dict[str, Any]:
    return {"Certificate": [{
        "id": [cert_id],
        "name": [f"Certificate {cert_id}"],
        "data": ["-----BEGIN CERTIFICATE-----"],
    }]}


def channel_doc(channel_id: str, certificate: Optional[str] = None) -> Dict[str, Any]:
    channel: Dict[str, Any] = {
        "id": [channel_id],
        "name": [f"Channel {channel_id}"],
        "protocol": ["AS2"],
        "direction": ["outbound"],
    }
    if certificate:
        channel["Security"] = [{"type": ["certificate"], "certificate": [certificate]}]
    return {"Channel": [channel]}


# ---------------------------------------------------------------------------
# Fake target loader
# ---------------------------------------------------------------------------


class FakeLoader(BaseLoader):
    """In-memory loader recording every call."""

    def __init__(self):
        super().__init__("fake")
        self.auth_calls = 0
        self.auth_clients: List[str] = []
        self.auth_error: Optional[Exception] = None
        self.pushed: List[str] = []  # "type:id" in push order
        self.failures: Dict[str, Exception] = {}  # Source id -> error raised by push
        self._lock = threading.Lock()

    def reject(self, source_id: str) -> None:
        """Answer pushes of ``source_id`` with a 400 rejection."""
        self.failures[source_id] = RemoteRejectionError(
            f"Target rejected {source_id} with status 400: duplicate name",
            status_code=400,
            detail="duplicate name",
        )

    def authenticate(self, credentials: TargetCredentials) -> Token:
        with self._lock:
            self.auth_calls += 1
            self.auth_clients.append(credentials.client_id)
        if self.auth_error is not None:
            raise self.auth_error
        return Token(access_token=f"token-{credentials.client_id}", expires_in=3600)

    def push(self, record: CanonicalRecord, token: Token, original_id: str = "") -> PushResponse:
        with self._lock:
            self.pushed.append(f"{record.type.value}:{record.id}")
        if record.id in self.failures:
            raise self.failures[record.id]
        return PushResponse(remote_id=f"remote-{record.id}", status_code=201, body={"id": f"remote-{record.id}"})


# ---------------------------------------------------------------------------
# Pipeline fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def credentials():
    return TargetCredentials(client_id="client-1", client_secret="secret-1")


@pytest.fixture()
def ledger():
    return InMemoryLedger()


@pytest.fixture()
def fake_loader():
    return FakeLoader()


@pytest.fixture()
def orchestrator(ledger, fake_loader, credentials, tmp_path):
    config = PipelineConfig(target_credentials=credentials, output_dir=str(tmp_path))
    orch = PipelineOrchestrator(config=config, ledger=ledger, loader=fake_loader)
    yield orch
    orch.close()


@pytest.fixture()
def add_artifact(ledger):
    """Create an artifact in the ledger under a shared extraction job."""
    job = ledger.create_extraction_job("test")

    def _add(artifact_type: ArtifactType, document: Dict[str, Any], original_id: str = ""):
        return ledger.create_artifact(
            extraction_job_id=job.id,
            original_id=original_id or "x",
            artifact_type=artifact_type,
            original_data=document,
        )

    return _add


@pytest.fixture()
def add_pending(add_artifact, orchestrator):
    """Create an artifact and transform it to pending."""
    def _add(artifact_type: ArtifactType, document: Dict[str, Any], original_id: str = ""):
        artifact = add_artifact(artifact_type, document, original_id)
        batch = orchestrator.transform_one(artifact.id)
        assert batch.succeeded == 1, batch.failures
        return orchestrator.get_artifact(artifact.id)

    return _add
