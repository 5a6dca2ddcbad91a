"""Extractor for CSX archives exported by the source system's command-line tool."""

import logging
import xml.etree.ElementTree as ET
import zipfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from .base import BaseExtractor, ExtractedItem, ExtractionResult
from ..exceptions import MigratorError
from ..models.artifact import ArtifactType, utcnow
from ..services.transformer import child, infer_artifact_type, scalar

logger = logging.getLogger(__name__)

# Checked in order against the entry name; first match wins
ENTRY_NAME_TYPES = [
    (("Partner",), ArtifactType.TRADING_PARTNER),
    (("Channel", "Connection"), ArtifactType.CHANNEL),
    (("Certificate",), ArtifactType.CERTIFICATE),
    (("Map",), ArtifactType.MAP),
    (("Endpoint",), ArtifactType.ENDPOINT),
    (("Schema",), ArtifactType.SCHEMA),
]


def _local_name(tag: str) -> str:
    return tag.split("}", 1)[-1]


def element_to_node(element: ET.Element) -> Any:
    """
    Convert an XML element to the nested-list document shape.

    Child elements are grouped by tag into lists, attributes go under ``$``
    and text under ``_``. An element with only text becomes that string.
    """
    node: Dict[str, Any] = {}
    if element.attrib:
        node["$"] = {_local_name(k): v for k, v in element.attrib.items()}
    for sub in element:
        node.setdefault(_local_name(sub.tag), []).append(element_to_node(sub))

    text = (element.text or "").strip()
    if not node:
        return text
    if text:
        node["_"] = text
    return node


def parse_document(content: bytes) -> Dict[str, Any]:
    """Parse one XML entry into ``{RootTag: node}``."""
    root = ET.fromstring(content)
    return {_local_name(root.tag): element_to_node(root)}


def artifact_type_for_entry(entry_name: str, document: Dict[str, Any]) -> ArtifactType:
    """Artifact type from the entry name, else from the document's root element."""
    for markers, artifact_type in ENTRY_NAME_TYPES:
        if any(marker in entry_name for marker in markers):
            return artifact_type
    return infer_artifact_type(document)


class CsxExportExtractor(BaseExtractor):
    """
    Reads artifacts from a CSX archive.

    A CSX file is a zip archive with one XML document per artifact. Every
    ``.xml`` entry becomes one item; entries that fail to parse are recorded
    as errors and skipped.
    """

    method = "csx_export"

    def __init__(self, path: str):
        super().__init__()
        self.path = Path(path)

    def extract(self) -> ExtractionResult:
        """Extract all XML entries from the archive."""
        self.reset()
        started_at = utcnow()

        if not self.path.is_file():
            raise MigratorError(f"Export path not found: {self.path}")

        items: List[ExtractedItem] = []
        entries: List[str] = []
        try:
            with zipfile.ZipFile(self.path) as archive:
                for info in archive.infolist():
                    if info.is_dir() or not info.filename.lower().endswith(".xml"):
                        continue
                    entries.append(info.filename)
                    item = self._parse_entry(info.filename, archive.read(info))
                    if item is not None:
                        items.append(item)
        except (zipfile.BadZipFile, OSError) as e:
            raise MigratorError(f"Failed to process CSX file {self.path}: {e}") from e

        if not entries:
            self.add_warning(f"No XML entries found in {self.path}")

        result = self.get_extraction_result(items)
        result.started_at = started_at
        result.completed_at = utcnow()
        result.metadata = {
            "source": str(self.path),
            "entries": entries,
        }

        logger.info(f"Extracted {len(items)} artifacts from {len(entries)} CSX entry(ies)")
        return result

    def _parse_entry(self, entry_name: str, content: bytes) -> Optional[ExtractedItem]:
        logger.debug(f"Parsing CSX entry: {entry_name}")
        try:
            document = parse_document(content)
        except ET.ParseError as e:
            logger.warning(f"Skipping {entry_name}: {e}")
            self.add_error(f"{entry_name}: not well-formed XML: {e}", original_id=entry_name)
            return None

        root = child(document, next(iter(document)))
        original_id = scalar(root, "id")
        name = scalar(root, "name")

        return ExtractedItem(
            original_id=str(original_id) if original_id is not None else entry_name,
            type=artifact_type_for_entry(entry_name, document),
            document=document,
            name=str(name) if name is not None else entry_name,
        )
