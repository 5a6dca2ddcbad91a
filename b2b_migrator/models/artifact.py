"""Artifact, extraction job and migration attempt models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from dateutil import parser as date_parser


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return date_parser.isoparse(str(value))


class ArtifactType(str, Enum):
    """Closed set of configuration artifact types."""
    TRADING_PARTNER = "trading_partner"
    CHANNEL = "channel"
    CERTIFICATE = "certificate"
    MAP = "map"
    ENDPOINT = "endpoint"
    SCHEMA = "schema"
    OTHER = "other"


class ArtifactStatus(str, Enum):
    """Lifecycle status of an artifact."""
    NEW = "new"
    PENDING = "pending"  # Transformed, awaiting migration
    MIGRATED = "migrated"
    ERROR = "error"


class ExtractionStatus(str, Enum):
    """Status of an extraction run."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class AttemptStatus(str, Enum):
    """Outcome of a single migration attempt."""
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class Artifact:
    """A unit of configuration to migrate."""
    id: int
    original_id: str
    type: ArtifactType
    original_data: Dict[str, Any]
    extraction_job_id: int
    name: str = ""
    status: ArtifactStatus = ArtifactStatus.NEW
    transformed_data: Optional[Dict[str, Any]] = None
    remote_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    last_modified: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "original_id": self.original_id,
            "name": self.name,
            "type": self.type.value,
            "status": self.status.value,
            "original_data": self.original_data,
            "transformed_data": self.transformed_data,
            "remote_id": self.remote_id,
            "error_message": self.error_message,
            "extraction_job_id": self.extraction_job_id,
            "created_at": self.created_at.isoformat(),
            "last_modified": self.last_modified.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Artifact":
        """Create from dictionary representation."""
        return cls(
            id=int(data["id"]),
            original_id=data["original_id"],
            name=data.get("name", ""),
            type=ArtifactType(data["type"]),
            status=ArtifactStatus(data.get("status", "new")),
            original_data=data.get("original_data") or {},
            transformed_data=data.get("transformed_data"),
            remote_id=data.get("remote_id"),
            error_message=data.get("error_message"),
            extraction_job_id=int(data.get("extraction_job_id", 0)),
            created_at=_parse_datetime(data.get("created_at")) or utcnow(),
            last_modified=_parse_datetime(data.get("last_modified")) or utcnow(),
        )


@dataclass
class ExtractionJob:
    """One extraction run."""
    id: int
    method: str
    status: ExtractionStatus = ExtractionStatus.IN_PROGRESS
    artifact_count: int = 0
    timestamp: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "method": self.method,
            "status": self.status.value,
            "artifact_count": self.artifact_count,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractionJob":
        """Create from dictionary representation."""
        return cls(
            id=int(data["id"]),
            method=data.get("method", ""),
            status=ExtractionStatus(data.get("status", "in_progress")),
            artifact_count=data.get("artifact_count", 0),
            timestamp=_parse_datetime(data.get("timestamp")) or utcnow(),
            metadata=data.get("metadata") or {},
        )


@dataclass
class MigrationAttempt:
    """Append-only audit record of one push to the target system."""
    id: int
    artifact_id: int
    status: AttemptStatus
    timestamp: datetime = field(default_factory=utcnow)
    remote_response: Optional[Dict[str, Any]] = None  # Present on success
    error_message: Optional[str] = None  # Present on failure
    error_type: Optional[str] = None

    @property
    def remote_id(self) -> Optional[str]:
        """Identifier assigned by the target, if this attempt succeeded."""
        if self.status != AttemptStatus.SUCCESS or not self.remote_response:
            return None
        return self.remote_response.get("remote_id")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "artifact_id": self.artifact_id,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "remote_response": self.remote_response,
            "error_message": self.error_message,
            "error_type": self.error_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationAttempt":
        """Create from dictionary representation."""
        return cls(
            id=int(data["id"]),
            artifact_id=int(data["artifact_id"]),
            status=AttemptStatus(data["status"]),
            timestamp=_parse_datetime(data.get("timestamp")) or utcnow(),
            remote_response=data.get("remote_response"),
            error_message=data.get("error_message"),
            error_type=data.get("error_type"),
        )
