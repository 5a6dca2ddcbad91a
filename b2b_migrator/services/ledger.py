"""Persistence for artifacts, extraction jobs and migration attempts."""

import copy
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..exceptions import ArtifactNotFoundError, MigratorError
from ..models.artifact import (
    Artifact,
    ArtifactStatus,
    ArtifactType,
    AttemptStatus,
    ExtractionJob,
    MigrationAttempt,
    utcnow,
)

logger = logging.getLogger(__name__)


class Ledger(ABC):
    """
    Storage capability used by the pipeline.

    Implementations must be safe to call from several worker threads and must
    hand out copies, so callers never mutate stored state in place.
    """

    @abstractmethod
    def create_extraction_job(self, method: str, metadata: Optional[Dict[str, Any]] = None) -> ExtractionJob:
        pass

    @abstractmethod
    def save_extraction_job(self, job: ExtractionJob) -> None:
        pass

    @abstractmethod
    def get_extraction_job(self, job_id: int) -> ExtractionJob:
        pass

    @abstractmethod
    def list_extraction_jobs(self) -> List[ExtractionJob]:
        pass

    @abstractmethod
    def create_artifact(
        self,
        extraction_job_id: int,
        original_id: str,
        artifact_type: ArtifactType,
        original_data: Dict[str, Any],
        name: str = ""
    ) -> Artifact:
        pass

    @abstractmethod
    def get_artifact(self, artifact_id: int) -> Artifact:
        """Get an artifact, raising ArtifactNotFoundError if unknown."""
        pass

    @abstractmethod
    def save_artifact(self, artifact: Artifact) -> None:
        pass

    @abstractmethod
    def list_artifacts(
        self,
        status: Optional[ArtifactStatus] = None,
        artifact_type: Optional[ArtifactType] = None
    ) -> List[Artifact]:
        """List artifacts in ascending id order."""
        pass

    @abstractmethod
    def append_attempt(
        self,
        artifact_id: int,
        status: AttemptStatus,
        remote_response: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
        error_type: Optional[str] = None
    ) -> MigrationAttempt:
        pass

    @abstractmethod
    def list_attempts(self, artifact_id: Optional[int] = None) -> List[MigrationAttempt]:
        """List attempts, newest first."""
        pass

    def latest_attempt(self, artifact_id: int) -> Optional[MigrationAttempt]:
        attempts = self.list_attempts(artifact_id)
        return attempts[0] if attempts else None

    def save_with_attempt(
        self,
        artifact: Artifact,
        attempt: Optional[Dict[str, Any]] = None
    ) -> Optional[MigrationAttempt]:
        """
        Store an artifact together with a new attempt for it.

        Args:
            artifact: Artifact to store
            attempt: Keyword arguments for ``append_attempt``, if any

        Returns:
            The recorded attempt, or None
        """
        recorded = None
        if attempt is not None:
            recorded = self.append_attempt(artifact.id, **attempt)
        self.save_artifact(artifact)
        return recorded


class InMemoryLedger(Ledger):
    """Thread-safe ledger held in process memory."""

    def __init__(self):
        self._lock = threading.RLock()
        self._jobs: Dict[int, ExtractionJob] = {}
        self._artifacts: Dict[int, Artifact] = {}
        self._attempts: List[MigrationAttempt] = []
        self._next_ids = {"job": 1, "artifact": 1, "attempt": 1}

    def _next_id(self, kind: str) -> int:
        value = self._next_ids[kind]
        self._next_ids[kind] = value + 1
        return value

    def _changed(self) -> None:
        """Called under the lock after every write."""

    # Extraction jobs

    def create_extraction_job(self, method: str, metadata: Optional[Dict[str, Any]] = None) -> ExtractionJob:
        with self._lock:
            job = ExtractionJob(id=self._next_id("job"), method=method, metadata=dict(metadata or {}))
            self._jobs[job.id] = job
            self._changed()
            return copy.deepcopy(job)

    def save_extraction_job(self, job: ExtractionJob) -> None:
        with self._lock:
            if job.id not in self._jobs:
                raise MigratorError(f"Extraction job {job.id} not found")
            self._jobs[job.id] = copy.deepcopy(job)
            self._changed()

    def get_extraction_job(self, job_id: int) -> ExtractionJob:
        with self._lock:
            if job_id not in self._jobs:
                raise MigratorError(f"Extraction job {job_id} not found")
            return copy.deepcopy(self._jobs[job_id])

    def list_extraction_jobs(self) -> List[ExtractionJob]:
        with self._lock:
            return [copy.deepcopy(self._jobs[k]) for k in sorted(self._jobs)]

    # Artifacts

    def create_artifact(
        self,
        extraction_job_id: int,
        original_id: str,
        artifact_type: ArtifactType,
        original_data: Dict[str, Any],
        name: str = ""
    ) -> Artifact:
        with self._lock:
            artifact = Artifact(
                id=self._next_id("artifact"),
                original_id=original_id,
                type=ArtifactType(artifact_type),
                original_data=copy.deepcopy(original_data),
                extraction_job_id=extraction_job_id,
                name=name or "",
            )
            self._artifacts[artifact.id] = artifact
            self._changed()
            return copy.deepcopy(artifact)

    def get_artifact(self, artifact_id: int) -> Artifact:
        with self._lock:
            if artifact_id not in self._artifacts:
                raise ArtifactNotFoundError(f"Artifact {artifact_id} not found")
            return copy.deepcopy(self._artifacts[artifact_id])

    def save_artifact(self, artifact: Artifact) -> None:
        with self._lock:
            if artifact.id not in self._artifacts:
                raise ArtifactNotFoundError(f"Artifact {artifact.id} not found")
            self._artifacts[artifact.id] = copy.deepcopy(artifact)
            self._changed()

    def list_artifacts(
        self,
        status: Optional[ArtifactStatus] = None,
        artifact_type: Optional[ArtifactType] = None
    ) -> List[Artifact]:
        with self._lock:
            return [
                copy.deepcopy(artifact)
                for _, artifact in sorted(self._artifacts.items())
                if (status is None or artifact.status == status)
                and (artifact_type is None or artifact.type == artifact_type)
            ]

    # Migration attempts

    def append_attempt(
        self,
        artifact_id: int,
        status: AttemptStatus,
        remote_response: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
        error_type: Optional[str] = None
    ) -> MigrationAttempt:
        with self._lock:
            attempt = self._add_attempt(artifact_id, status, remote_response, error_message, error_type)
            self._changed()
            return copy.deepcopy(attempt)

    def save_with_attempt(
        self,
        artifact: Artifact,
        attempt: Optional[Dict[str, Any]] = None
    ) -> Optional[MigrationAttempt]:
        """Store the artifact and attempt under one lock hold and one write."""
        with self._lock:
            if artifact.id not in self._artifacts:
                raise ArtifactNotFoundError(f"Artifact {artifact.id} not found")
            recorded = None
            if attempt is not None:
                recorded = self._add_attempt(artifact.id, **attempt)
            self._artifacts[artifact.id] = copy.deepcopy(artifact)
            self._changed()
            return copy.deepcopy(recorded)

    def _add_attempt(
        self,
        artifact_id: int,
        status: AttemptStatus,
        remote_response: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
        error_type: Optional[str] = None
    ) -> MigrationAttempt:
        if artifact_id not in self._artifacts:
            raise ArtifactNotFoundError(f"Artifact {artifact_id} not found")
        attempt = MigrationAttempt(
            id=self._next_id("attempt"),
            artifact_id=artifact_id,
            status=AttemptStatus(status),
            timestamp=utcnow(),
            remote_response=copy.deepcopy(remote_response),
            error_message=error_message,
            error_type=error_type,
        )
        self._attempts.append(attempt)
        return attempt

    def list_attempts(self, artifact_id: Optional[int] = None) -> List[MigrationAttempt]:
        with self._lock:
            attempts = [
                a for a in self._attempts
                if artifact_id is None or a.artifact_id == artifact_id
            ]
            # Ids ascend with append order
            return [copy.deepcopy(a) for a in reversed(attempts)]

    # Serialization

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "next_ids": dict(self._next_ids),
                "extraction_jobs": [self._jobs[k].to_dict() for k in sorted(self._jobs)],
                "artifacts": [self._artifacts[k].to_dict() for k in sorted(self._artifacts)],
                "attempts": [a.to_dict() for a in self._attempts],
            }

    def _load_dict(self, data: Dict[str, Any]) -> None:
        with self._lock:
            self._jobs = {
                job.id: job
                for job in (ExtractionJob.from_dict(j) for j in data.get("extraction_jobs", []))
            }
            self._artifacts = {
                artifact.id: artifact
                for artifact in (Artifact.from_dict(a) for a in data.get("artifacts", []))
            }
            self._attempts = [MigrationAttempt.from_dict(a) for a in data.get("attempts", [])]
            self._next_ids = {
                "job": max(self._jobs, default=0) + 1,
                "artifact": max(self._artifacts, default=0) + 1,
                "attempt": max((a.id for a in self._attempts), default=0) + 1,
            }
            self._next_ids.update(data.get("next_ids", {}))


class JsonFileLedger(InMemoryLedger):
    """
    Ledger persisted to a single JSON file.

    The whole ledger is rewritten after each write through a temporary file
    and an atomic replace, so a crash never leaves a half-written file. The
    file is read once at startup and there is no cross-process lock: only one
    process may use a ledger file at a time.
    """

    def __init__(self, path: str):
        super().__init__()
        self.path = Path(path)

        if self.path.exists():
            try:
                with open(self.path) as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                raise MigratorError(f"Ledger file {self.path} is corrupt: {e}") from e
            self._load_dict(data)
            logger.debug(
                f"Loaded ledger from {self.path}: {len(self._artifacts)} artifacts, "
                f"{len(self._attempts)} attempts"
            )

    def _changed(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".ledger-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(self.to_dict(), f, indent=2, default=str)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
