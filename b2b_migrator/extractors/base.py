"""Base extractor interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from ..models.artifact import ArtifactType, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ExtractedItem:
    """One artifact as delivered by the source export."""
    original_id: str
    type: ArtifactType
    document: Dict[str, Any]
    name: str = ""


@dataclass
class ExtractionResult:
    """Result of an extraction operation."""
    method: str
    items: List[ExtractedItem] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_extracted(self) -> int:
        return len(self.items)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def success(self) -> bool:
        """True when no item was skipped."""
        return len(self.errors) == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "method": self.method,
            "total_extracted": self.total_extracted,
            "errors": self.errors,
            "warnings": self.warnings,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "metadata": self.metadata,
        }


class BaseExtractor(ABC):
    """
    Base class for source-system extractors.

    Extractors pull configuration out of the source system and deliver a flat
    list of items. Malformed items are recorded as errors and skipped; a
    failure of the whole run is raised.
    """

    method: str = "unknown"

    def __init__(self):
        self._errors: List[Dict[str, Any]] = []
        self._warnings: List[str] = []

    @abstractmethod
    def extract(self) -> ExtractionResult:
        """
        Extract all artifacts from the source.

        Returns:
            ExtractionResult containing all extracted items

        Raises:
            MigratorError: If the source cannot be read at all
        """
        pass

    def reset(self) -> None:
        self._errors = []
        self._warnings = []

    def add_error(
        self,
        message: str,
        original_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """Add an item error to the extraction."""
        error = {
            "message": message,
            "original_id": original_id,
            "timestamp": utcnow().isoformat(),
        }
        if details:
            error.update(details)
        self._errors.append(error)
        logger.warning(f"Extraction error: {message}")

    def add_warning(self, message: str) -> None:
        self._warnings.append(message)

    def get_extraction_result(self, items: List[ExtractedItem]) -> ExtractionResult:
        return ExtractionResult(
            method=self.method,
            items=items,
            errors=list(self._errors),
            warnings=list(self._warnings),
        )
