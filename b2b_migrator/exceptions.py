"""Exception hierarchy for the migration pipeline."""

from typing import List, Optional


class MigratorError(Exception):
    """Base exception for all pipeline errors."""


class ConfigError(MigratorError):
    """Raised when configuration is invalid or missing."""


class ArtifactNotFoundError(MigratorError):
    """Raised when an artifact id is unknown to the ledger."""


class TransformationError(MigratorError):
    """Raised when a source document is malformed for its declared type."""


class InvalidStateError(MigratorError):
    """Raised when an operation is attempted in the wrong lifecycle state."""


class UnresolvedReferenceError(MigratorError):
    """Raised when a referenced artifact is neither in the batch nor migrated."""

    def __init__(self, message: str, references: Optional[List[str]] = None):
        super().__init__(message)
        self.references = references or []


class CycleDetectedError(MigratorError):
    """Raised for every member of a circular reference chain in a batch."""

    def __init__(self, message: str, members: Optional[List[int]] = None):
        super().__init__(message)
        self.members = members or []


class AuthenticationError(MigratorError):
    """Raised when the target-system credential exchange fails."""


class RemoteRejectionError(MigratorError):
    """Raised when the target system does not accept a push."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        detail: Optional[str] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
