"""Extraction, transformation and migration endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_orchestrator
from ..models import (
    BatchResultResponse,
    DashboardResponse,
    ExtractionJobResponse,
    ExtractRequest,
    MigrateRequest,
    MigrationAttemptListResponse,
    MigrationAttemptResponse,
)
from ...exceptions import MigratorError
from ...extractors import create_extractor
from ...models.config import TargetCredentials
from ...models.record import BatchResult
from ...orchestrator import PipelineOrchestrator

router = APIRouter()


def _single_item_response(batch: BatchResult) -> BatchResultResponse:
    """Batch response for a one-artifact call; invalid state maps to 409."""
    result = batch.results[0] if batch.results else None
    if result is not None and result.error_type == "InvalidStateError":
        raise HTTPException(status_code=409, detail=result.error)
    return BatchResultResponse(**batch.to_dict())


@router.post("/extract", response_model=ExtractionJobResponse, status_code=202)
def start_extraction(data: ExtractRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Start an extraction job; poll ``/extractions/{id}`` for completion."""
    extractor = create_extractor(data.path, data.format, pattern=data.pattern)
    job, _ = orchestrator.start_extraction(extractor)
    return ExtractionJobResponse(**job.to_dict())


@router.get("/extractions", response_model=List[ExtractionJobResponse])
def list_extractions(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """List all extraction jobs."""
    return [ExtractionJobResponse(**job.to_dict()) for job in orchestrator.list_extractions()]


@router.get("/extractions/{job_id}", response_model=ExtractionJobResponse)
def get_extraction(job_id: int, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Get a specific extraction job."""
    try:
        job = orchestrator.ledger.get_extraction_job(job_id)
    except MigratorError:
        raise HTTPException(status_code=404, detail="Extraction not found")
    return ExtractionJobResponse(**job.to_dict())


@router.post("/transform", response_model=BatchResultResponse)
def transform_all(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Transform all new artifacts."""
    return BatchResultResponse(**orchestrator.transform_all().to_dict())


@router.post("/transform/{artifact_id}", response_model=BatchResultResponse)
def transform_one(artifact_id: int, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Transform one artifact."""
    return _single_item_response(orchestrator.transform_one(artifact_id))


def _request_credentials(data: Optional[MigrateRequest]) -> Optional[TargetCredentials]:
    """Credentials from the request body; None falls back to configured ones."""
    if data is None:
        return None
    return TargetCredentials(client_id=data.clientId, client_secret=data.clientSecret)


@router.post("/migrate", response_model=BatchResultResponse)
def migrate_all(
    data: Optional[MigrateRequest] = None,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Migrate all pending artifacts."""
    return BatchResultResponse(**orchestrator.migrate_all(_request_credentials(data)).to_dict())


@router.post("/migrate/{artifact_id}", response_model=BatchResultResponse)
def migrate_one(
    artifact_id: int,
    data: Optional[MigrateRequest] = None,
    force: bool = False,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Migrate one artifact; ``force`` re-pushes a migrated one."""
    batch = orchestrator.migrate_one(artifact_id, _request_credentials(data), force=force)
    return _single_item_response(batch)


@router.get("/migrations", response_model=MigrationAttemptListResponse)
def list_migrations(
    artifact_id: Optional[int] = None,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Migration attempts, newest first."""
    attempts = orchestrator.history(artifact_id)
    return MigrationAttemptListResponse(
        attempts=[MigrationAttemptResponse(**a.to_dict()) for a in attempts],
        total=len(attempts),
    )


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Artifact counts by status and last extraction time."""
    return DashboardResponse(**orchestrator.dashboard_stats())
