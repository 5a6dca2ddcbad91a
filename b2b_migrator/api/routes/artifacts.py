"""Artifact review endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..dependencies import get_orchestrator
from ..models import ArtifactListResponse, ArtifactResponse
from ...models.artifact import ArtifactStatus, ArtifactType
from ...orchestrator import PipelineOrchestrator

router = APIRouter()


@router.get("", response_model=ArtifactListResponse)
def list_artifacts(
    status: Optional[ArtifactStatus] = None,
    artifact_type: Optional[ArtifactType] = Query(None, alias="type"),
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """List artifacts, optionally filtered by status and type."""
    artifacts = orchestrator.list_artifacts(status=status, artifact_type=artifact_type)
    return ArtifactListResponse(
        artifacts=[ArtifactResponse(**a.to_dict()) for a in artifacts],
        total=len(artifacts),
    )


@router.get("/{artifact_id}", response_model=ArtifactResponse)
def get_artifact(artifact_id: int, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Get a specific artifact."""
    return ArtifactResponse(**orchestrator.get_artifact(artifact_id).to_dict())


@router.post("/{artifact_id}/reject", response_model=ArtifactResponse)
def reject_artifact(artifact_id: int, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Send an errored artifact back to new."""
    return ArtifactResponse(**orchestrator.reject(artifact_id).to_dict())


@router.post("/{artifact_id}/force-remigration", response_model=ArtifactResponse)
def force_remigration(artifact_id: int, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Send a migrated artifact back to new."""
    return ArtifactResponse(**orchestrator.force_remigration(artifact_id).to_dict())
