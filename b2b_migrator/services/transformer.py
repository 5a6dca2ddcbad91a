"""Canonical transformation of exported source documents."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from dateutil import parser as date_parser

from ..exceptions import TransformationError
from ..models.artifact import ArtifactType
from ..models.record import CanonicalRecord, EntityRef

logger = logging.getLogger(__name__)

# Root element of each artifact type in the export document
ROOT_ELEMENTS = {
    ArtifactType.TRADING_PARTNER: "Partner",
    ArtifactType.CHANNEL: "Channel",
    ArtifactType.CERTIFICATE: "Certificate",
    ArtifactType.MAP: "Map",
    ArtifactType.ENDPOINT: "Endpoint",
    ArtifactType.SCHEMA: "Schema",
}

# Fills date parts a timestamp leaves out, so output never depends on today
TIMESTAMP_DEFAULT = datetime(1970, 1, 1)

Mapper = Callable[[Dict[str, Any]], CanonicalRecord]


def infer_artifact_type(document: Any) -> ArtifactType:
    """Guess an artifact type from the document's root element."""
    if isinstance(document, dict):
        for artifact_type, root in ROOT_ELEMENTS.items():
            if root in document:
                return artifact_type
    return ArtifactType.OTHER


def scalar(node: Any, prop: str) -> Any:
    """
    Read a scalar property from a nested-list node.

    Exported documents wrap every value in a list (``{"id": ["TP1"]}``) and
    text nodes that carry attributes as ``{"_": "text", "$": {...}}``. Both are
    unwrapped; absent or empty values become None.
    """
    if not isinstance(node, dict) or prop not in node:
        return None
    return _unwrap(node[prop])


def _unwrap(value: Any) -> Any:
    if isinstance(value, list):
        if not value:
            return None
        value = value[0]
    if isinstance(value, dict) and "_" in value:
        value = value["_"]
    if isinstance(value, str) and value == "":
        return None
    return value


def child(node: Any, prop: str) -> Optional[Dict[str, Any]]:
    """Get the first child element named ``prop``."""
    if not isinstance(node, dict):
        return None
    value = node.get(prop)
    if isinstance(value, list):
        value = value[0] if value else None
    return value if isinstance(value, dict) else None


def children(node: Any, prop: str) -> List[Any]:
    """Get all child elements named ``prop``."""
    if not isinstance(node, dict):
        return []
    value = node.get(prop)
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def normalize_timestamp(value: Any) -> Any:
    """Normalize a timestamp to ISO-8601, leaving unparseable values as-is."""
    if value is None:
        return None
    try:
        return date_parser.parse(str(value), default=TIMESTAMP_DEFAULT).isoformat()
    except (ValueError, OverflowError):
        return value


class CanonicalTransformer:
    """
    Transforms exported documents into canonical records.

    Dispatch is by declared artifact type through a registry of pure mapping
    functions. Types without a registered mapping fall back to a generic
    passthrough with no references.
    """

    def __init__(self):
        """Initialize the transformer."""
        self._mappers: Dict[ArtifactType, Mapper] = self._register_builtin_mappers()

    def _register_builtin_mappers(self) -> Dict[ArtifactType, Mapper]:
        """Register all built-in type mappings."""
        return {
            ArtifactType.TRADING_PARTNER: self._transform_trading_partner,
            ArtifactType.CHANNEL: self._transform_channel,
            ArtifactType.CERTIFICATE: self._transform_certificate,
            ArtifactType.MAP: self._transform_map,
            ArtifactType.ENDPOINT: self._transform_endpoint,
            ArtifactType.SCHEMA: self._transform_schema,
        }

    def register_mapper(self, artifact_type: ArtifactType, func: Mapper) -> None:
        """Register or replace the mapping for a type."""
        self._mappers[artifact_type] = func

    def transform(self, artifact_type: ArtifactType, original_data: Any) -> CanonicalRecord:
        """
        Transform a source document to its canonical record.

        Args:
            artifact_type: Declared type of the artifact
            original_data: Exported document

        Returns:
            Canonical record for the document

        Raises:
            TransformationError: If the document is malformed for its type
        """
        if not isinstance(original_data, dict):
            raise TransformationError(
                f"Source document must be a mapping, got {type(original_data).__name__}"
            )

        artifact_type = ArtifactType(artifact_type)
        mapper = self._mappers.get(artifact_type, self._transform_generic)
        record = mapper(original_data)
        record.references = self._dedupe(record.references)
        return record

    def _root(self, document: Dict[str, Any], artifact_type: ArtifactType) -> Dict[str, Any]:
        """Get the root element for a type, requiring its id."""
        root_name = ROOT_ELEMENTS[artifact_type]
        root = child(document, root_name)
        if root is None:
            raise TransformationError(
                f"Invalid {artifact_type.value} data: missing <{root_name}> element"
            )
        if scalar(root, "id") is None:
            raise TransformationError(
                f"Invalid {artifact_type.value} data: <{root_name}> has no id"
            )
        return root

    @staticmethod
    def _dedupe(references: List[EntityRef]) -> List[EntityRef]:
        seen = set()
        result = []
        for ref in references:
            if ref not in seen:
                seen.add(ref)
                result.append(ref)
        return result

    @staticmethod
    def _timestamps(node: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "created": normalize_timestamp(scalar(node, "created")),
            "modified": normalize_timestamp(scalar(node, "modified")),
        }

    # Type mappings

    def _transform_trading_partner(self, document: Dict[str, Any]) -> CanonicalRecord:
        """Trading partner with contact, identifiers and endpoint references."""
        partner = self._root(document, ArtifactType.TRADING_PARTNER)

        endpoint_ids = self._endpoint_refs(child(partner, "Endpoints"))
        body = {
            "id": str(scalar(partner, "id")),
            "name": scalar(partner, "name"),
            "status": scalar(partner, "status") or "active",
            "contact": self._contact(child(partner, "Contact")),
            "identifiers": self._identifiers(child(partner, "Identifiers")),
            "endpoints": endpoint_ids,
            **self._timestamps(partner),
        }

        return CanonicalRecord(
            type=ArtifactType.TRADING_PARTNER,
            id=body["id"],
            name=body["name"],
            body=body,
            references=[EntityRef(ArtifactType.ENDPOINT, ep) for ep in endpoint_ids],
        )

    def _contact(self, contact: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if contact is None:
            return None
        return {
            "name": scalar(contact, "name"),
            "email": scalar(contact, "email"),
            "phone": scalar(contact, "phone"),
        }

    def _identifiers(self, identifiers: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [
            {
                "type": scalar(ident, "type") or "custom",
                "value": scalar(ident, "value"),
                "name": scalar(ident, "name"),
            }
            for ident in children(identifiers, "Identifier")
        ]

    def _endpoint_refs(self, endpoints: Optional[Dict[str, Any]]) -> List[str]:
        refs = []
        for endpoint in children(endpoints, "Endpoint"):
            # <Endpoint><id>..</id></Endpoint>, a bare <Endpoint>id</Endpoint>, or one with attributes
            if isinstance(endpoint, dict) and "id" in endpoint:
                endpoint_id = scalar(endpoint, "id")
            else:
                endpoint_id = _unwrap(endpoint)
            if endpoint_id is not None and not isinstance(endpoint_id, dict):
                refs.append(str(endpoint_id))
        return refs

    def _transform_channel(self, document: Dict[str, Any]) -> CanonicalRecord:
        """Channel with properties and security block."""
        channel = self._root(document, ArtifactType.CHANNEL)

        security = self._security(child(channel, "Security"))
        body = {
            "id": str(scalar(channel, "id")),
            "name": scalar(channel, "name"),
            "type": scalar(channel, "type"),
            "protocol": scalar(channel, "protocol"),
            "direction": scalar(channel, "direction"),
            "properties": self._properties(child(channel, "Properties")),
            "security": security,
            **self._timestamps(channel),
        }

        references = []
        if security and security["certificate"]:
            references.append(EntityRef(ArtifactType.CERTIFICATE, str(security["certificate"])))

        return CanonicalRecord(
            type=ArtifactType.CHANNEL,
            id=body["id"],
            name=body["name"],
            body=body,
            references=references,
        )

    def _properties(self, properties: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        result = {}
        for prop in children(properties, "Property"):
            name = scalar(prop, "name")
            if name is not None and isinstance(prop, dict) and "value" in prop:
                result[str(name)] = scalar(prop, "value")
        return result

    def _security(self, security: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if security is None:
            return None
        return {
            "type": scalar(security, "type"),
            "certificate": scalar(security, "certificate"),
            "username": scalar(security, "username"),
            "password": scalar(security, "password"),
        }

    def _transform_certificate(self, document: Dict[str, Any]) -> CanonicalRecord:
        """Certificate material and validity window."""
        cert = self._root(document, ArtifactType.CERTIFICATE)

        body = {
            "id": str(scalar(cert, "id")),
            "name": scalar(cert, "name"),
            "type": scalar(cert, "type") or "x509",
            "format": scalar(cert, "format") or "PEM",
            "data": scalar(cert, "data"),
            "fingerprint": scalar(cert, "fingerprint"),
            "issuer": scalar(cert, "issuer"),
            "subject": scalar(cert, "subject"),
            "valid_from": normalize_timestamp(scalar(cert, "validFrom")),
            "valid_to": normalize_timestamp(scalar(cert, "validTo")),
            **self._timestamps(cert),
        }

        return CanonicalRecord(
            type=ArtifactType.CERTIFICATE,
            id=body["id"],
            name=body["name"],
            body=body,
        )

    def _transform_map(self, document: Dict[str, Any]) -> CanonicalRecord:
        map_node = self._root(document, ArtifactType.MAP)

        body = {
            "id": str(scalar(map_node, "id")),
            "name": scalar(map_node, "name"),
            "type": scalar(map_node, "type") or "EDI",
            "source_format": scalar(map_node, "sourceFormat"),
            "target_format": scalar(map_node, "targetFormat"),
            "transformation": scalar(map_node, "transformation"),
            **self._timestamps(map_node),
        }

        return CanonicalRecord(
            type=ArtifactType.MAP,
            id=body["id"],
            name=body["name"],
            body=body,
        )

    def _transform_endpoint(self, document: Dict[str, Any]) -> CanonicalRecord:
        """Endpoint bound to a channel and a partner."""
        endpoint = self._root(document, ArtifactType.ENDPOINT)

        channel_id = scalar(endpoint, "channelId")
        partner_id = scalar(endpoint, "partnerId")
        body = {
            "id": str(scalar(endpoint, "id")),
            "name": scalar(endpoint, "name"),
            "type": scalar(endpoint, "type"),
            "url": scalar(endpoint, "url"),
            "properties": self._properties(child(endpoint, "Properties")),
            "channel_id": str(channel_id) if channel_id is not None else None,
            "partner_id": str(partner_id) if partner_id is not None else None,
            **self._timestamps(endpoint),
        }

        references = []
        if body["channel_id"]:
            references.append(EntityRef(ArtifactType.CHANNEL, body["channel_id"]))
        if body["partner_id"]:
            references.append(EntityRef(ArtifactType.TRADING_PARTNER, body["partner_id"]))

        return CanonicalRecord(
            type=ArtifactType.ENDPOINT,
            id=body["id"],
            name=body["name"],
            body=body,
            references=references,
        )

    def _transform_schema(self, document: Dict[str, Any]) -> CanonicalRecord:
        schema = self._root(document, ArtifactType.SCHEMA)

        body = {
            "id": str(scalar(schema, "id")),
            "name": scalar(schema, "name"),
            "type": scalar(schema, "type"),
            "standard": scalar(schema, "standard"),
            "version": scalar(schema, "version"),
            "format": scalar(schema, "format"),
            "content": scalar(schema, "content"),
            **self._timestamps(schema),
        }

        return CanonicalRecord(
            type=ArtifactType.SCHEMA,
            id=body["id"],
            name=body["name"],
            body=body,
        )

    def _transform_generic(self, document: Dict[str, Any]) -> CanonicalRecord:
        """Wrap an unrecognized document in the standard envelope."""
        if not document:
            raise TransformationError("Invalid data structure: document has no root element")

        root_name = next(iter(document))
        entity = child(document, root_name) or {}
        entity_id = scalar(entity, "id")

        body = {
            "type": ArtifactType.OTHER.value,
            "original_type": root_name,
            "id": str(entity_id) if entity_id is not None else None,
            "name": scalar(entity, "name"),
            "data": document[root_name],
            **self._timestamps(entity),
        }

        return CanonicalRecord(
            type=ArtifactType.OTHER,
            id=body["id"],
            name=body["name"],
            body=body,
        )
