"""Artifact lifecycle state machine."""

import logging
import threading
from typing import Any, Callable, Dict, Optional, Tuple

from ..exceptions import InvalidStateError
from ..models.artifact import (
    Artifact,
    ArtifactStatus,
    AttemptStatus,
    MigrationAttempt,
    utcnow,
)
from .ledger import Ledger

logger = logging.getLogger(__name__)

# (from, to) -> trigger
TRANSITIONS = {
    (ArtifactStatus.NEW, ArtifactStatus.PENDING): "transform success",
    (ArtifactStatus.NEW, ArtifactStatus.ERROR): "transform failure",
    (ArtifactStatus.PENDING, ArtifactStatus.MIGRATED): "push success",
    (ArtifactStatus.PENDING, ArtifactStatus.ERROR): "push failure",
    (ArtifactStatus.ERROR, ArtifactStatus.NEW): "operator reject",
    (ArtifactStatus.MIGRATED, ArtifactStatus.NEW): "operator forced re-migration",
}


class ArtifactLifecycle:
    """
    Applies lifecycle transitions to artifacts held in a ledger.

    Every transition is checked against the transition table before anything
    is written; an invalid one raises InvalidStateError and leaves the ledger
    untouched. Migration outcomes append exactly one attempt.
    """

    def __init__(self, ledger: Ledger):
        self.ledger = ledger
        self._lock = threading.Lock()

    @staticmethod
    def can_transition(current: ArtifactStatus, target: ArtifactStatus) -> bool:
        return (current, target) in TRANSITIONS

    def _transition(
        self,
        artifact_id: int,
        source: ArtifactStatus,
        target: ArtifactStatus,
        mutate: Callable[[Artifact], None],
        attempt: Optional[Dict[str, Any]] = None
    ) -> Tuple[Artifact, Optional[MigrationAttempt]]:
        with self._lock:
            artifact = self.ledger.get_artifact(artifact_id)
            current = artifact.status

            if current != source or not self.can_transition(current, target):
                raise InvalidStateError(
                    f"Artifact {artifact_id} is {current.value}; "
                    f"{TRANSITIONS[(source, target)]} requires {source.value}"
                )

            mutate(artifact)
            if target == ArtifactStatus.MIGRATED and not artifact.remote_id:
                raise InvalidStateError(f"Artifact {artifact_id} cannot be migrated without a remote id")

            artifact.status = target
            artifact.last_modified = utcnow()
            recorded = self.ledger.save_with_attempt(artifact, attempt)

        logger.info(
            f"Artifact {artifact_id} ({artifact.type.value} {artifact.original_id}): "
            f"{current.value} -> {target.value} [{TRANSITIONS[(current, target)]}]"
        )
        return artifact, recorded

    # Transformation

    def record_transform_success(self, artifact_id: int, transformed_data: Dict[str, Any]) -> Artifact:
        """Store the canonical record and move ``new -> pending``."""
        if not transformed_data:
            raise InvalidStateError(f"Artifact {artifact_id} needs a canonical record to become pending")

        def mutate(artifact: Artifact) -> None:
            artifact.transformed_data = transformed_data
            artifact.error_message = None
            if transformed_data.get("name") and not artifact.name:
                artifact.name = str(transformed_data["name"])

        artifact, _ = self._transition(artifact_id, ArtifactStatus.NEW, ArtifactStatus.PENDING, mutate)
        return artifact

    def record_transform_failure(self, artifact_id: int, message: str) -> Artifact:
        """Move ``new -> error`` with the failure reason."""
        def mutate(artifact: Artifact) -> None:
            artifact.error_message = message

        artifact, _ = self._transition(artifact_id, ArtifactStatus.NEW, ArtifactStatus.ERROR, mutate)
        return artifact

    # Migration

    def record_migration_success(
        self,
        artifact_id: int,
        remote_response: Dict[str, Any]
    ) -> Tuple[Artifact, MigrationAttempt]:
        """
        Move ``pending -> migrated`` and append a success attempt.

        Args:
            artifact_id: Artifact that was pushed
            remote_response: Response summary; must carry ``remote_id``

        Returns:
            Updated artifact and the appended attempt
        """
        def mutate(artifact: Artifact) -> None:
            artifact.remote_id = remote_response.get("remote_id")
            artifact.error_message = None

        return self._transition(
            artifact_id,
            ArtifactStatus.PENDING,
            ArtifactStatus.MIGRATED,
            mutate,
            attempt={"status": AttemptStatus.SUCCESS, "remote_response": remote_response},
        )

    def record_migration_failure(
        self,
        artifact_id: int,
        message: str,
        error_type: str
    ) -> Tuple[Artifact, MigrationAttempt]:
        """Move ``pending -> error`` and append a failed attempt."""
        def mutate(artifact: Artifact) -> None:
            artifact.remote_id = None
            artifact.error_message = message

        return self._transition(
            artifact_id,
            ArtifactStatus.PENDING,
            ArtifactStatus.ERROR,
            mutate,
            attempt={
                "status": AttemptStatus.FAILED,
                "error_message": message,
                "error_type": error_type,
            },
        )

    # Operator actions

    def reject(self, artifact_id: int) -> Artifact:
        """Send an errored artifact back to ``new`` for re-transformation."""
        def mutate(artifact: Artifact) -> None:
            artifact.transformed_data = None
            artifact.remote_id = None
            artifact.error_message = None

        artifact, _ = self._transition(artifact_id, ArtifactStatus.ERROR, ArtifactStatus.NEW, mutate)
        return artifact

    def force_remigration(self, artifact_id: int) -> Artifact:
        """Move a migrated artifact back to ``new``, keeping its canonical record."""
        def mutate(artifact: Artifact) -> None:
            artifact.remote_id = None

        artifact, _ = self._transition(artifact_id, ArtifactStatus.MIGRATED, ArtifactStatus.NEW, mutate)
        return artifact
