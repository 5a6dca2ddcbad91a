"""Extractors for source-system exports."""

from typing import Optional

from .base import BaseExtractor, ExtractedItem, ExtractionResult
from .csx_export_extractor import CsxExportExtractor
from .json_export_extractor import JsonExportExtractor
from ..exceptions import MigratorError

EXPORT_FORMATS = ("json", "csx")


def create_extractor(path: str, export_format: Optional[str] = None, pattern: str = "*.json") -> BaseExtractor:
    """Build the extractor for an export; without a format, ``.csx`` files are read as CSX archives."""
    if export_format is None:
        export_format = "csx" if path.lower().endswith(".csx") else "json"
    if export_format == "csx":
        return CsxExportExtractor(path)
    if export_format == "json":
        return JsonExportExtractor(path, pattern=pattern)
    raise MigratorError(f"Unknown export format: {export_format}")


__all__ = [
    "BaseExtractor",
    "CsxExportExtractor",
    "EXPORT_FORMATS",
    "ExtractedItem",
    "ExtractionResult",
    "JsonExportExtractor",
    "create_extractor",
]
