"""Pipeline orchestrator - composes extraction, transformation and migration."""

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import InvalidStateError, TransformationError
from .extractors.base import BaseExtractor
from .loaders.base import BaseLoader
from .loaders.partner_manager_loader import PartnerManagerLoader
from .loaders.token_cache import TokenCache
from .models.artifact import (
    Artifact,
    ArtifactStatus,
    ArtifactType,
    ExtractionJob,
    ExtractionStatus,
    MigrationAttempt,
    utcnow,
)
from .models.config import PipelineConfig, TargetCredentials
from .models.record import BatchResult, TransformResult
from .services.ledger import InMemoryLedger, JsonFileLedger, Ledger
from .services.lifecycle import ArtifactLifecycle
from .services.scheduler import MigrationScheduler
from .services.transformer import CanonicalTransformer

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """
    Entry points of the migration pipeline.

    Handles:
    - Extraction jobs, run in the background
    - Transformation of new artifacts
    - Migration of pending artifacts through the scheduler
    - Operator actions (reject, forced re-migration)
    - History, dashboard statistics and batch reports
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        ledger: Optional[Ledger] = None,
        loader: Optional[BaseLoader] = None,
        transformer: Optional[CanonicalTransformer] = None,
        token_cache: Optional[TokenCache] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Pipeline configuration
            ledger: Storage; defaults to the one named by ``config.ledger_path``
            loader: Target loader; defaults to the partner-management API
            transformer: Canonical transformer
            token_cache: Token cache; defaults to one over ``loader.authenticate``
        """
        self.config = config or PipelineConfig()
        self.ledger = ledger or self._create_ledger()
        self.loader = loader or PartnerManagerLoader(self.config.target)
        self.transformer = transformer or CanonicalTransformer()
        self.lifecycle = ArtifactLifecycle(self.ledger)
        self.token_cache = token_cache or TokenCache(
            self.loader.authenticate,
            expiry_margin=self.config.token_expiry_margin,
        )
        self.scheduler = MigrationScheduler(
            ledger=self.ledger,
            loader=self.loader,
            token_cache=self.token_cache,
            lifecycle=self.lifecycle,
            max_workers=self.config.max_workers,
        )
        self._extraction_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="extraction")

    def _create_ledger(self) -> Ledger:
        if self.config.ledger_path:
            logger.debug(f"Using ledger file {self.config.ledger_path}")
            return JsonFileLedger(self.config.ledger_path)
        return InMemoryLedger()

    # Extraction

    def start_extraction(self, extractor: BaseExtractor) -> Tuple[ExtractionJob, Future]:
        """
        Start an extraction job in the background.

        Args:
            extractor: Source extractor to run

        Returns:
            The in-progress job, and a future resolving to the finalized job
        """
        job = self.ledger.create_extraction_job(extractor.method)
        logger.info(f"=== EXTRACTION {job.id} STARTED ({extractor.method}) ===")
        future = self._extraction_executor.submit(self._run_extraction_job, job, extractor)
        return job, future

    def run_extraction(self, extractor: BaseExtractor) -> ExtractionJob:
        """Run an extraction job and wait for it to finish."""
        _, future = self.start_extraction(extractor)
        return future.result()

    def _run_extraction_job(self, job: ExtractionJob, extractor: BaseExtractor) -> ExtractionJob:
        created = 0
        try:
            result = extractor.extract()

            for item in result.items:
                self.ledger.create_artifact(
                    extraction_job_id=job.id,
                    original_id=item.original_id,
                    artifact_type=item.type,
                    original_data=item.document,
                    name=item.name,
                )
                created += 1

            job.status = ExtractionStatus.COMPLETED
            job.metadata.update(result.metadata)
            if result.errors:
                job.metadata["errors"] = result.errors
            if result.warnings:
                job.metadata["warnings"] = result.warnings
            logger.info(f"Extraction {job.id} completed: {created} artifacts")

        except Exception as e:
            logger.error(f"Extraction {job.id} failed: {e}")
            job.status = ExtractionStatus.FAILED
            job.metadata["error"] = str(e)

        finally:
            job.artifact_count = created
            self.ledger.save_extraction_job(job)

        return job

    # Transformation

    def transform_one(self, artifact_id: int) -> BatchResult:
        """
        Transform one artifact.

        Raises:
            ArtifactNotFoundError: If the artifact is unknown
        """
        self.ledger.get_artifact(artifact_id)
        batch = BatchResult(operation="transform")
        batch.results = [self._transform_artifact(artifact_id)]
        return self._finish(batch)

    def transform_all(self) -> BatchResult:
        """Transform every new artifact concurrently."""
        ids = [a.id for a in self.ledger.list_artifacts(status=ArtifactStatus.NEW)]
        logger.info(f"=== TRANSFORMATION: {len(ids)} new artifact(s) ===")

        batch = BatchResult(operation="transform")
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            batch.results = list(executor.map(self._transform_artifact, ids))
        return self._finish(batch)

    def _transform_artifact(self, artifact_id: int) -> TransformResult:
        artifact = self.ledger.get_artifact(artifact_id)
        result = TransformResult(artifact_id=artifact_id)

        if artifact.status != ArtifactStatus.NEW:
            error = InvalidStateError(
                f"Artifact {artifact_id} is {artifact.status.value}; only new artifacts can be transformed"
            )
            logger.warning(str(error))
            result.error = str(error)
            result.error_type = type(error).__name__
            return result

        try:
            record = self.transformer.transform(artifact.type, artifact.original_data)
        except TransformationError as e:
            logger.warning(f"Failed to transform artifact {artifact_id}: {e}")
            self.lifecycle.record_transform_failure(artifact_id, str(e))
            result.error = str(e)
            result.error_type = type(e).__name__
            return result
        except Exception as e:
            logger.exception(f"Unexpected error transforming artifact {artifact_id}")
            message = f"{type(e).__name__}: {e}"
            self.lifecycle.record_transform_failure(artifact_id, message)
            result.error = message
            result.error_type = type(e).__name__
            return result

        self.lifecycle.record_transform_success(artifact_id, record.to_dict())
        result.success = True
        return result

    # Migration

    def migrate_one(
        self,
        artifact_id: int,
        credentials: Optional[TargetCredentials] = None,
        force: bool = False
    ) -> BatchResult:
        """
        Migrate one artifact as a singleton batch.

        Raises:
            ArtifactNotFoundError: If the artifact is unknown
        """
        self.ledger.get_artifact(artifact_id)
        batch = self.scheduler.migrate_batch(
            [artifact_id],
            credentials or self.config.resolve_credentials(),
            force=force,
        )
        return self._finish(batch)

    def migrate_all(self, credentials: Optional[TargetCredentials] = None) -> BatchResult:
        """Migrate every pending artifact in one batch."""
        ids = [a.id for a in self.ledger.list_artifacts(status=ArtifactStatus.PENDING)]
        logger.info(f"=== MIGRATION: {len(ids)} pending artifact(s) ===")
        batch = self.scheduler.migrate_batch(ids, credentials or self.config.resolve_credentials())
        return self._finish(batch)

    # Operator actions

    def reject(self, artifact_id: int) -> Artifact:
        """Send an errored artifact back to new."""
        return self.lifecycle.reject(artifact_id)

    def force_remigration(self, artifact_id: int) -> Artifact:
        """Send a migrated artifact back to new."""
        return self.lifecycle.force_remigration(artifact_id)

    # Queries

    def get_artifact(self, artifact_id: int) -> Artifact:
        return self.ledger.get_artifact(artifact_id)

    def list_artifacts(
        self,
        status: Optional[ArtifactStatus] = None,
        artifact_type: Optional[ArtifactType] = None
    ) -> List[Artifact]:
        return self.ledger.list_artifacts(status=status, artifact_type=artifact_type)

    def list_extractions(self) -> List[ExtractionJob]:
        return self.ledger.list_extraction_jobs()

    def history(self, artifact_id: Optional[int] = None) -> List[MigrationAttempt]:
        """Migration attempts, newest first, optionally for one artifact."""
        if artifact_id is not None:
            self.ledger.get_artifact(artifact_id)
        return self.ledger.list_attempts(artifact_id)

    def dashboard_stats(self) -> Dict[str, Any]:
        """Artifact counts by status and the time of the last extraction."""
        artifacts = self.ledger.list_artifacts()
        jobs = self.ledger.list_extraction_jobs()

        def count(status: ArtifactStatus) -> int:
            return sum(1 for a in artifacts if a.status == status)

        last = max((job.timestamp for job in jobs), default=None)
        return {
            "artifact_count": len(artifacts),
            "new_count": count(ArtifactStatus.NEW),
            "pending_count": count(ArtifactStatus.PENDING),
            "migrated_count": count(ArtifactStatus.MIGRATED),
            "error_count": count(ArtifactStatus.ERROR),
            "last_extracted": last.isoformat() if last else None,
        }

    # Reporting

    def _finish(self, batch: BatchResult) -> BatchResult:
        if batch.completed_at is None:
            batch.completed_at = utcnow()
        logger.info(
            f"{batch.operation.capitalize()} finished: {batch.attempted} attempted, "
            f"{batch.succeeded} succeeded, {batch.failed} failed"
        )
        if self.config.save_reports:
            self._save_report(batch)
        return batch

    def _save_report(self, batch: BatchResult):
        """Save the batch report."""
        reports_dir = self.config.reports_dir
        reports_dir.mkdir(parents=True, exist_ok=True)
        filepath = reports_dir / f"{batch.operation}_report_{batch.started_at.strftime('%Y%m%d_%H%M%S_%f')}.json"
        with open(filepath, 'w') as f:
            json.dump(batch.to_dict(), f, indent=2, default=str)
        logger.info(f"Saved {batch.operation} report to {filepath}")

    def close(self) -> None:
        """Stop background work and release connections."""
        self._extraction_executor.shutdown(wait=True)
        self.loader.close()
