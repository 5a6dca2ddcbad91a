"""Command-line interface for the migration pipeline."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .exceptions import MigratorError
from .extractors import EXPORT_FORMATS, create_extractor
from .models.artifact import ArtifactStatus, ArtifactType
from .models.config import PipelineConfig
from .models.record import BatchResult
from .orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Path to pipeline config file")
    common.add_argument("--ledger", help="Path to ledger file (overrides config)")
    common.add_argument("--dry-run", action="store_true", help="Simulate pushes without changes")
    common.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    parser = argparse.ArgumentParser(
        description="B2B Configuration Migrator - Move partner configuration to a new platform"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Extract
    extract_parser = subparsers.add_parser("extract", parents=[common], help="Extract artifacts from an export")
    extract_parser.add_argument("--path", required=True, help="Export file or directory")
    extract_parser.add_argument("--pattern", default="*.json", help="File pattern inside a directory")
    extract_parser.add_argument(
        "--format", dest="export_format", choices=EXPORT_FORMATS,
        help="Export format (default: csx for .csx files, json otherwise)"
    )

    # Transform
    transform_parser = subparsers.add_parser("transform", parents=[common], help="Transform new artifacts")
    transform_parser.add_argument("--id", type=int, help="Transform only this artifact")

    # Migrate
    migrate_parser = subparsers.add_parser("migrate", parents=[common], help="Migrate pending artifacts")
    migrate_parser.add_argument("--id", type=int, help="Migrate only this artifact")
    migrate_parser.add_argument("--force", action="store_true", help="Re-push an already migrated artifact")

    # Reject
    reject_parser = subparsers.add_parser("reject", parents=[common], help="Send an errored artifact back to new")
    reject_parser.add_argument("id", type=int, help="Artifact id")

    # Status
    status_parser = subparsers.add_parser("status", parents=[common], help="Show artifacts and counts")
    status_parser.add_argument("--status", choices=[s.value for s in ArtifactStatus], help="Filter by status")
    status_parser.add_argument("--type", choices=[t.value for t in ArtifactType], help="Filter by type")

    # History
    history_parser = subparsers.add_parser("history", parents=[common], help="Show migration attempts")
    history_parser.add_argument("--id", type=int, help="Only attempts for this artifact")

    return parser


def create_orchestrator(args) -> PipelineOrchestrator:
    """Create an orchestrator from command-line options."""
    config = PipelineConfig.from_json_file(args.config) if args.config else PipelineConfig()

    # The CLI always persists, so separate invocations share state
    config.ledger_path = args.ledger or config.ledger_path or str(Path(config.output_dir) / "ledger.json")
    if args.dry_run:
        config.target.dry_run = True

    return PipelineOrchestrator(config)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    commands = {
        "extract": run_extract,
        "transform": run_transform,
        "migrate": run_migrate,
        "reject": run_reject,
        "status": run_status,
        "history": run_history,
    }

    if args.command not in commands:
        parser.print_help()
        return 2

    try:
        orchestrator = create_orchestrator(args)
    except MigratorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        return commands[args.command](orchestrator, args)
    except MigratorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        orchestrator.close()


def _print_batch(title: str, batch: BatchResult):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)
    print(f"Attempted: {batch.attempted}")
    print(f"Succeeded: {batch.succeeded}")
    print(f"Failed: {batch.failed}")
    if batch.cancelled:
        print(f"Cancelled: {batch.cancelled}")
    for artifact_id, reason in sorted(batch.failures.items()):
        print(f"  - artifact {artifact_id}: {reason}")
    if batch.batch_error:
        print(f"Batch error: {batch.batch_error}")
    if batch.duration_seconds is not None:
        print(f"Duration: {batch.duration_seconds:.2f} seconds")


def run_extract(orchestrator: PipelineOrchestrator, args) -> int:
    """Extract artifacts from a JSON export or CSX archive."""
    extractor = create_extractor(args.path, args.export_format, pattern=args.pattern)
    job = orchestrator.run_extraction(extractor)

    print("\n" + "=" * 60)
    print("EXTRACTION COMPLETE")
    print("=" * 60)
    print(f"Job: {job.id}")
    print(f"Status: {job.status.value}")
    print(f"Artifacts: {job.artifact_count}")
    if job.metadata.get("error"):
        print(f"Error: {job.metadata['error']}")
    for error in job.metadata.get("errors", []):
        print(f"  - skipped: {error['message']}")

    return 0 if job.status.value == "completed" else 1


def run_transform(orchestrator: PipelineOrchestrator, args) -> int:
    """Transform one or all new artifacts."""
    if args.id is not None:
        batch = orchestrator.transform_one(args.id)
    else:
        batch = orchestrator.transform_all()

    _print_batch("TRANSFORMATION COMPLETE", batch)
    return 0 if batch.failed == 0 else 1


def run_migrate(orchestrator: PipelineOrchestrator, args) -> int:
    """Migrate one or all pending artifacts."""
    if args.id is not None:
        batch = orchestrator.migrate_one(args.id, force=args.force)
    else:
        batch = orchestrator.migrate_all()

    _print_batch("MIGRATION COMPLETE", batch)
    return 0 if batch.failed == 0 and not batch.batch_error else 1


def run_reject(orchestrator: PipelineOrchestrator, args) -> int:
    """Reject an errored artifact."""
    artifact = orchestrator.reject(args.id)
    print(f"Artifact {artifact.id} is now {artifact.status.value}")
    return 0


def run_status(orchestrator: PipelineOrchestrator, args) -> int:
    """Show artifacts and dashboard counts."""
    artifacts = orchestrator.list_artifacts(
        status=ArtifactStatus(args.status) if args.status else None,
        artifact_type=ArtifactType(args.type) if args.type else None,
    )

    print(f"\n{'ID':>5}  {'TYPE':<16} {'STATUS':<9} {'ORIGINAL ID':<20} NAME")
    for artifact in artifacts:
        print(
            f"{artifact.id:>5}  {artifact.type.value:<16} {artifact.status.value:<9} "
            f"{artifact.original_id:<20} {artifact.name}"
        )
        if artifact.error_message:
            print(f"       error: {artifact.error_message}")

    print("\n=== Summary ===")
    print(json.dumps(orchestrator.dashboard_stats(), indent=2))
    return 0


def run_history(orchestrator: PipelineOrchestrator, args) -> int:
    """Show migration attempts, newest first."""
    attempts = orchestrator.history(args.id)
    if not attempts:
        print("No migration attempts recorded")
        return 0

    for attempt in attempts:
        line = f"{attempt.timestamp.isoformat()}  artifact {attempt.artifact_id}  {attempt.status.value}"
        if attempt.remote_id:
            line += f"  remote_id={attempt.remote_id}"
        if attempt.error_message:
            line += f"  [{attempt.error_type}] {attempt.error_message}"
        print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
