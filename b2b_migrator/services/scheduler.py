"""Dependency-aware migration scheduler."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from ..exceptions import (
    AuthenticationError,
    CycleDetectedError,
    InvalidStateError,
    MigratorError,
    TransformationError,
    UnresolvedReferenceError,
)
from ..loaders.base import BaseLoader, Token
from ..loaders.token_cache import TokenCache
from ..models.artifact import Artifact, ArtifactStatus, utcnow
from ..models.config import TargetCredentials
from ..models.record import BatchResult, CanonicalRecord, MigrationResult, ResultStatus
from .dependency_graph import DependencyGraph, DependencyGraphBuilder, RecordKey
from .ledger import Ledger
from .lifecycle import ArtifactLifecycle

logger = logging.getLogger(__name__)


def record_key(artifact: Artifact) -> RecordKey:
    """Key other records use to reference this artifact."""
    data = artifact.transformed_data or {}
    return artifact.type, str(data.get("id") or artifact.original_id)


class MigrationScheduler:
    """
    Pushes batches of pending artifacts to the target system.

    A batch is ordered by its reference graph and pushed wave by wave, each
    wave on a bounded thread pool. Every artifact gets its own result; only an
    authentication failure stops the batch, and then the unpushed artifacts
    stay pending.
    """

    def __init__(
        self,
        ledger: Ledger,
        loader: BaseLoader,
        token_cache: Optional[TokenCache] = None,
        lifecycle: Optional[ArtifactLifecycle] = None,
        max_workers: int = 4
    ):
        """
        Initialize the scheduler.

        Args:
            ledger: Artifact and attempt storage
            loader: Target-system loader
            token_cache: Token cache shared across batches
            lifecycle: Lifecycle bound to the same ledger
            max_workers: Concurrent pushes per wave
        """
        self.ledger = ledger
        self.loader = loader
        self.token_cache = token_cache or TokenCache(loader.authenticate)
        self.lifecycle = lifecycle or ArtifactLifecycle(ledger)
        self.max_workers = max_workers
        self.graph_builder = DependencyGraphBuilder()

    def migrate_batch(
        self,
        artifacts: Iterable[Union[int, Artifact]],
        credentials: Optional[TargetCredentials],
        force: bool = False
    ) -> BatchResult:
        """
        Migrate a batch of artifacts.

        Args:
            artifacts: Artifacts or artifact ids; duplicates share one result
            credentials: Target credentials
            force: Re-push artifacts that are already migrated

        Returns:
            BatchResult with one MigrationResult per distinct artifact
        """
        batch = BatchResult(operation="migrate")
        ids = self._distinct_ids(artifacts)
        results: Dict[int, MigrationResult] = {}

        logger.info(f"Starting migration batch of {len(ids)} artifact(s) (force={force})")

        candidates: Dict[int, Artifact] = {}
        for artifact_id in ids:
            try:
                artifact = self.ledger.get_artifact(artifact_id)
            except MigratorError as e:
                results[artifact_id] = self._rejected(artifact_id, e)
                continue

            if artifact.status == ArtifactStatus.MIGRATED and not force:
                results[artifact_id] = self._unchanged(artifact)
            elif artifact.status == ArtifactStatus.MIGRATED:
                candidates[artifact_id] = artifact
            elif artifact.status != ArtifactStatus.PENDING:
                results[artifact_id] = self._rejected(artifact_id, InvalidStateError(
                    f"Artifact {artifact_id} is {artifact.status.value}; only pending artifacts can be migrated"
                ))
            elif not artifact.transformed_data:
                results[artifact_id] = self._rejected(artifact_id, InvalidStateError(
                    f"Artifact {artifact_id} has no transformed data"
                ))
            else:
                candidates[artifact_id] = artifact

        records = self._prepare(candidates, results)

        if records:
            self._run(records, candidates, credentials, results, batch)

        batch.results = [results[artifact_id] for artifact_id in ids]
        batch.completed_at = utcnow()

        log = logger.error if batch.batch_error else logger.info
        log(
            f"Migration batch finished: {batch.succeeded} succeeded, {batch.failed} failed, "
            f"{batch.cancelled} cancelled"
            + (f" ({batch.batch_error})" if batch.batch_error else "")
        )
        return batch

    @staticmethod
    def _distinct_ids(artifacts: Iterable[Union[int, Artifact]]) -> List[int]:
        ids = []
        seen: Set[int] = set()
        for item in artifacts:
            artifact_id = item.id if isinstance(item, Artifact) else int(item)
            if artifact_id not in seen:
                seen.add(artifact_id)
                ids.append(artifact_id)
        return ids

    def _prepare(
        self,
        candidates: Dict[int, Artifact],
        results: Dict[int, MigrationResult]
    ) -> Dict[int, CanonicalRecord]:
        """Re-queue forced artifacts and load canonical records."""
        records = {}
        for artifact_id, artifact in candidates.items():
            if artifact.status == ArtifactStatus.MIGRATED:
                logger.info(f"Forcing re-migration of artifact {artifact_id}")
                self.lifecycle.force_remigration(artifact_id)
                self.lifecycle.record_transform_success(artifact_id, artifact.transformed_data)

            try:
                records[artifact_id] = CanonicalRecord.from_dict(artifact.transformed_data)
            except (KeyError, ValueError, TypeError) as e:
                results[artifact_id] = self._fail(
                    artifact_id,
                    TransformationError(f"Stored canonical record is unreadable: {e}"),
                )
        return records

    def _run(
        self,
        records: Dict[int, CanonicalRecord],
        artifacts: Dict[int, Artifact],
        credentials: Optional[TargetCredentials],
        results: Dict[int, MigrationResult],
        batch: BatchResult
    ) -> None:
        migrated = [
            record_key(a) for a in self.ledger.list_artifacts(status=ArtifactStatus.MIGRATED)
            if a.id not in records
        ]
        graph = self.graph_builder.build(records, migrated)

        self._fail_blocked(graph, results)

        order = graph.order
        if not order:
            return

        token, error = self._acquire_token(credentials)
        if error is not None:
            self._cancel(order, error, results, batch)
            return

        cancelled = threading.Event()
        auth_errors: List[AuthenticationError] = []
        succeeded: Set[int] = set()

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            for number, wave in enumerate(graph.waves, start=1):
                if cancelled.is_set():
                    self._cancel(wave, auth_errors[0], results, batch)
                    continue

                logger.debug(f"Pushing wave {number}/{len(graph.waves)}: {wave}")
                futures = {}
                for artifact_id in wave:
                    missing = sorted(d for d in graph.dependencies(artifact_id) if d not in succeeded)
                    if missing:
                        results[artifact_id] = self._fail(artifact_id, UnresolvedReferenceError(
                            f"Prerequisite artifact(s) {missing} were not migrated",
                            references=[str(records[d].id) for d in missing],
                        ))
                        continue
                    futures[artifact_id] = executor.submit(
                        self._push_one,
                        artifacts[artifact_id],
                        records[artifact_id],
                        token,
                        cancelled,
                        auth_errors,
                    )

                # Whole wave completes before the next is released
                for artifact_id, future in futures.items():
                    result = future.result()
                    results[artifact_id] = result
                    if result.status == ResultStatus.SUCCEEDED:
                        succeeded.add(artifact_id)

                if cancelled.is_set():
                    self.token_cache.invalidate(credentials)
                    batch.batch_error = str(auth_errors[0])
                    batch.batch_error_type = type(auth_errors[0]).__name__

    def _fail_blocked(self, graph: DependencyGraph, results: Dict[int, MigrationResult]) -> None:
        """Fail cycle members and records with unresolved references."""
        for cycle in graph.cycles:
            for member in cycle:
                results[member] = self._fail(member, CycleDetectedError(
                    f"Artifact {member} is part of a reference cycle: {cycle}",
                    members=cycle,
                ))

        for artifact_id, refs in sorted(graph.unresolved.items()):
            if artifact_id in results:
                continue
            names = [str(ref) for ref in refs]
            results[artifact_id] = self._fail(artifact_id, UnresolvedReferenceError(
                f"Unresolved references: {', '.join(names)}",
                references=names,
            ))

    def _acquire_token(
        self,
        credentials: Optional[TargetCredentials]
    ) -> Tuple[Optional[Token], Optional[AuthenticationError]]:
        if credentials is None:
            return None, AuthenticationError("No target credentials configured")
        try:
            return self.token_cache.get(credentials), None
        except AuthenticationError as e:
            logger.error(f"Authentication failed, aborting batch: {e}")
            return None, e

    def _push_one(
        self,
        artifact: Artifact,
        record: CanonicalRecord,
        token: Token,
        cancelled: threading.Event,
        auth_errors: List[AuthenticationError]
    ) -> MigrationResult:
        """Push one artifact and record the outcome. Runs on a worker thread."""
        if cancelled.is_set():
            return self._cancelled(artifact.id, auth_errors[0])

        try:
            response = self.loader.push(record, token, artifact.original_id)
        except AuthenticationError as e:
            logger.error(f"Authentication rejected while pushing artifact {artifact.id}: {e}")
            auth_errors.append(e)
            cancelled.set()
            return self._cancelled(artifact.id, e)
        except MigratorError as e:
            return self._fail(artifact.id, e)
        except Exception as e:
            logger.exception(f"Unexpected error pushing artifact {artifact.id}")
            return self._fail(artifact.id, e)

        _, attempt = self.lifecycle.record_migration_success(artifact.id, response.to_dict())
        return MigrationResult(
            artifact_id=artifact.id,
            status=ResultStatus.SUCCEEDED,
            remote_id=response.remote_id,
            response_data=response.body,
            attempt_id=attempt.id,
            completed_at=attempt.timestamp,
        )

    def _fail(self, artifact_id: int, error: Exception) -> MigrationResult:
        """Record a failed attempt and move the artifact to error."""
        error_type = type(error).__name__
        logger.warning(f"Artifact {artifact_id} failed to migrate [{error_type}]: {error}")
        _, attempt = self.lifecycle.record_migration_failure(artifact_id, str(error), error_type)
        return MigrationResult(
            artifact_id=artifact_id,
            status=ResultStatus.FAILED,
            error=str(error),
            error_type=error_type,
            attempt_id=attempt.id,
            completed_at=attempt.timestamp,
        )

    @staticmethod
    def _rejected(artifact_id: int, error: MigratorError) -> MigrationResult:
        """Failure that touched neither the ledger nor the network."""
        logger.warning(f"Artifact {artifact_id} not migrated: {error}")
        return MigrationResult(
            artifact_id=artifact_id,
            status=ResultStatus.FAILED,
            error=str(error),
            error_type=type(error).__name__,
            completed_at=utcnow(),
        )

    def _unchanged(self, artifact: Artifact) -> MigrationResult:
        latest = self.ledger.latest_attempt(artifact.id)
        return MigrationResult(
            artifact_id=artifact.id,
            status=ResultStatus.UNCHANGED,
            remote_id=artifact.remote_id,
            response_data=latest.remote_response if latest else None,
            completed_at=latest.timestamp if latest else None,
        )

    @staticmethod
    def _cancelled(artifact_id: int, error: Exception) -> MigrationResult:
        return MigrationResult(
            artifact_id=artifact_id,
            status=ResultStatus.CANCELLED,
            error=f"Not attempted: {error}",
            error_type=type(error).__name__,
        )

    def _cancel(
        self,
        artifact_ids: Iterable[int],
        error: AuthenticationError,
        results: Dict[int, MigrationResult],
        batch: BatchResult
    ) -> None:
        """Leave the artifacts pending and report the batch-level failure."""
        for artifact_id in artifact_ids:
            results[artifact_id] = self._cancelled(artifact_id, error)
        batch.batch_error = str(error)
        batch.batch_error_type = type(error).__name__
