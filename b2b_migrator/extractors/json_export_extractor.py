"""Extractor for JSON export files."""

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

from .base import BaseExtractor, ExtractedItem, ExtractionResult
from ..exceptions import MigratorError
from ..models.artifact import ArtifactType, utcnow
from ..services.transformer import child, infer_artifact_type, scalar

logger = logging.getLogger(__name__)


class JsonExportExtractor(BaseExtractor):
    """
    Reads export items from a JSON file or a directory of JSON files.

    Each file holds a list of ``{originalId, type, document, name?}`` objects
    (or an object with that list under ``artifacts``). When ``type`` is absent
    it is inferred from the document's root element.
    """

    method = "json_export"

    def __init__(self, path: str, pattern: str = "*.json"):
        """
        Initialize the extractor.

        Args:
            path: Export file, or directory containing export files
            pattern: Glob for files inside a directory
        """
        super().__init__()
        self.path = Path(path)
        self.pattern = pattern

    def _get_files(self) -> List[Path]:
        if self.path.is_dir():
            return sorted(self.path.glob(self.pattern))
        if self.path.is_file():
            return [self.path]
        raise MigratorError(f"Export path not found: {self.path}")

    def extract(self) -> ExtractionResult:
        """Extract all items from the export files."""
        self.reset()
        started_at = utcnow()
        items: List[ExtractedItem] = []

        files = self._get_files()
        if not files:
            self.add_warning(f"No files found matching: {self.path / self.pattern}")

        for file_path in files:
            logger.info(f"Processing file: {file_path}")
            for position, entry in enumerate(self._read_entries(file_path)):
                item = self._parse_entry(entry, f"{file_path.name}[{position}]")
                if item is not None:
                    items.append(item)

        result = self.get_extraction_result(items)
        result.started_at = started_at
        result.completed_at = utcnow()
        result.metadata = {
            "source": str(self.path),
            "files": [str(f) for f in files],
        }

        logger.info(f"Extracted {len(items)} artifacts from {len(files)} file(s)")
        return result

    def _read_entries(self, file_path: Path) -> List[Any]:
        try:
            with open(file_path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise MigratorError(f"Export file {file_path} is not valid JSON: {e}") from e
        except OSError as e:
            raise MigratorError(f"Cannot read export file {file_path}: {e}") from e

        if isinstance(data, dict) and isinstance(data.get("artifacts"), list):
            return data["artifacts"]
        if isinstance(data, list):
            return data
        raise MigratorError(f"Export file {file_path} must contain a list of artifacts")

    def _parse_entry(self, entry: Any, location: str) -> Optional[ExtractedItem]:
        """Validate one entry, recording an error and returning None if malformed."""
        if not isinstance(entry, dict):
            self.add_error(f"{location}: entry is not an object")
            return None

        original_id = entry.get("originalId")
        document = entry.get("document")

        if original_id is None or original_id == "":
            self.add_error(f"{location}: missing originalId")
            return None

        if not isinstance(document, dict):
            self.add_error(f"{location}: missing document", original_id=str(original_id))
            return None

        declared = entry.get("type")
        if declared:
            try:
                artifact_type = ArtifactType(declared)
            except ValueError:
                self.add_error(f"{location}: unknown artifact type '{declared}'", original_id=str(original_id))
                return None
        else:
            artifact_type = infer_artifact_type(document)

        name = entry.get("name")
        if not name and document:
            name = scalar(child(document, next(iter(document))), "name")

        return ExtractedItem(
            original_id=str(original_id),
            type=artifact_type,
            document=document,
            name=str(name) if name else "",
        )
