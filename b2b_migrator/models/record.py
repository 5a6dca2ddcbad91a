"""Canonical record and pipeline result models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .artifact import ArtifactType, utcnow


@dataclass(frozen=True)
class EntityRef:
    """Reference from one canonical record to another artifact."""
    type: ArtifactType
    id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "id": self.id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EntityRef":
        return cls(type=ArtifactType(data["type"]), id=str(data["id"]))

    def __str__(self) -> str:
        return f"{self.type.value}:{self.id}"


# Root key of the type-specific body inside a canonical record
BODY_KEYS = {
    ArtifactType.TRADING_PARTNER: "partner",
    ArtifactType.CHANNEL: "channel",
    ArtifactType.CERTIFICATE: "certificate",
    ArtifactType.MAP: "map",
    ArtifactType.ENDPOINT: "endpoint",
    ArtifactType.SCHEMA: "schema",
    ArtifactType.OTHER: "generic",
}


@dataclass
class CanonicalRecord:
    """Normalized, source-independent representation of an artifact."""
    type: ArtifactType
    id: Optional[str]
    name: Optional[str]
    body: Dict[str, Any] = field(default_factory=dict)
    references: List[EntityRef] = field(default_factory=list)

    @property
    def body_key(self) -> str:
        return BODY_KEYS[self.type]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON-shaped form stored on the artifact."""
        return {
            "type": self.type.value,
            "id": self.id,
            "name": self.name,
            self.body_key: self.body,
            "references": [ref.to_dict() for ref in self.references],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanonicalRecord":
        """Create from the stored JSON-shaped form."""
        artifact_type = ArtifactType(data["type"])
        return cls(
            type=artifact_type,
            id=data.get("id"),
            name=data.get("name"),
            body=data.get(BODY_KEYS[artifact_type]) or {},
            references=[EntityRef.from_dict(r) for r in data.get("references", [])],
        )


@dataclass
class TransformResult:
    """Outcome of transforming one artifact."""
    artifact_id: int
    success: bool = False
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def attempted(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "artifact_id": self.artifact_id,
            "success": self.success,
            "error": self.error,
            "error_type": self.error_type,
        }


class ResultStatus(str, Enum):
    """Per-item outcome of a migration batch."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNCHANGED = "unchanged"  # Already migrated, cached result returned
    CANCELLED = "cancelled"  # Batch aborted before this item was pushed


@dataclass
class MigrationResult:
    """Result of attempting to migrate one artifact."""
    artifact_id: int
    status: ResultStatus = ResultStatus.FAILED
    remote_id: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    response_data: Optional[Dict[str, Any]] = None
    attempt_id: Optional[int] = None  # Ledger attempt appended for this item
    completed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.status in (ResultStatus.SUCCEEDED, ResultStatus.UNCHANGED)

    @property
    def attempted(self) -> bool:
        """True when this batch appended an attempt for the artifact."""
        return self.attempt_id is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "artifact_id": self.artifact_id,
            "status": self.status.value,
            "remote_id": self.remote_id,
            "error": self.error,
            "error_type": self.error_type,
            "attempt_id": self.attempt_id,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class BatchResult:
    """Aggregated outcome of one pipeline call."""
    operation: str
    results: List[Union[TransformResult, MigrationResult]] = field(default_factory=list)
    batch_error: Optional[str] = None
    batch_error_type: Optional[str] = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def attempted(self) -> int:
        return sum(1 for r in self.results if r.attempted)

    @property
    def succeeded(self) -> int:
        return len(self.succeeded_ids)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def cancelled(self) -> int:
        return sum(
            1 for r in self.results
            if getattr(r, "status", None) == ResultStatus.CANCELLED
        )

    @property
    def succeeded_ids(self) -> List[int]:
        return [r.artifact_id for r in self.results if r.success]

    @property
    def failures(self) -> Dict[int, str]:
        """Failed artifact ids with their reasons."""
        return {
            r.artifact_id: r.error or "unknown error"
            for r in self.results
            if not r.success and getattr(r, "status", None) != ResultStatus.CANCELLED
        }

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def get(self, artifact_id: int) -> Optional[Union[TransformResult, MigrationResult]]:
        """Get the result for an artifact."""
        for result in self.results:
            if result.artifact_id == artifact_id:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "operation": self.operation,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "succeeded_ids": self.succeeded_ids,
            "failures": {str(k): v for k, v in self.failures.items()},
            "batch_error": self.batch_error,
            "batch_error_type": self.batch_error_type,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "results": [r.to_dict() for r in self.results],
        }
