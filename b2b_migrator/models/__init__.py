"""Data models for the migration pipeline."""

from .artifact import (
    Artifact,
    ArtifactType,
    ArtifactStatus,
    ExtractionJob,
    ExtractionStatus,
    MigrationAttempt,
    AttemptStatus,
)
from .record import (
    EntityRef,
    CanonicalRecord,
    TransformResult,
    MigrationResult,
    ResultStatus,
    BatchResult,
)
from .config import (
    PipelineConfig,
    TargetConfig,
    TargetCredentials,
)

__all__ = [
    "Artifact",
    "ArtifactType",
    "ArtifactStatus",
    "ExtractionJob",
    "ExtractionStatus",
    "MigrationAttempt",
    "AttemptStatus",
    "EntityRef",
    "CanonicalRecord",
    "TransformResult",
    "MigrationResult",
    "ResultStatus",
    "BatchResult",
    "PipelineConfig",
    "TargetConfig",
    "TargetCredentials",
]
