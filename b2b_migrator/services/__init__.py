"""Service layer for the migration pipeline."""

from .transformer import CanonicalTransformer, infer_artifact_type
from .dependency_graph import DependencyGraph, DependencyGraphBuilder
from .ledger import Ledger, InMemoryLedger, JsonFileLedger
from .lifecycle import ArtifactLifecycle
from .scheduler import MigrationScheduler

__all__ = [
    "CanonicalTransformer",
    "infer_artifact_type",
    "DependencyGraph",
    "DependencyGraphBuilder",
    "Ledger",
    "InMemoryLedger",
    "JsonFileLedger",
    "ArtifactLifecycle",
    "MigrationScheduler",
]
