"""Pydantic models for API requests and responses."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ..models.artifact import ArtifactStatus, ArtifactType, AttemptStatus, ExtractionStatus


# Request Models
class ExtractRequest(BaseModel):
    path: str
    pattern: str = "*.json"
    format: Optional[Literal["json", "csx"]] = None


class MigrateRequest(BaseModel):
    """Target credentials for one migration call; field names follow the wire format."""
    clientId: str = Field(..., min_length=1)
    clientSecret: str = Field(..., min_length=1)


# Response Models
class ArtifactResponse(BaseModel):
    id: int
    original_id: str
    name: str = ""
    type: ArtifactType
    status: ArtifactStatus
    original_data: Dict[str, Any] = Field(default_factory=dict)
    transformed_data: Optional[Dict[str, Any]] = None
    remote_id: Optional[str] = None
    error_message: Optional[str] = None
    extraction_job_id: int
    created_at: datetime
    last_modified: datetime


class ArtifactListResponse(BaseModel):
    artifacts: List[ArtifactResponse]
    total: int


class MigrationAttemptResponse(BaseModel):
    id: int
    artifact_id: int
    status: AttemptStatus
    timestamp: datetime
    remote_response: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    error_type: Optional[str] = None


class MigrationAttemptListResponse(BaseModel):
    attempts: List[MigrationAttemptResponse]
    total: int


class ExtractionJobResponse(BaseModel):
    id: int
    method: str
    status: ExtractionStatus
    artifact_count: int = 0
    timestamp: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ItemResult(BaseModel):
    artifact_id: int
    status: Optional[str] = None  # Migration results only
    success: Optional[bool] = None  # Transform results only
    remote_id: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    attempt_id: Optional[int] = None
    completed_at: Optional[datetime] = None


class BatchResultResponse(BaseModel):
    operation: str
    attempted: int
    succeeded: int
    failed: int
    cancelled: int = 0
    succeeded_ids: List[int] = Field(default_factory=list)
    failures: Dict[str, str] = Field(default_factory=dict)
    batch_error: Optional[str] = None
    batch_error_type: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    results: List[ItemResult] = Field(default_factory=list)


class DashboardResponse(BaseModel):
    artifact_count: int
    new_count: int
    pending_count: int
    migrated_count: int
    error_count: int
    last_extracted: Optional[datetime] = None
