"""Loader for the partner-management REST API."""

import logging
import threading
import time
import uuid
from typing import Any, Callable, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import BaseLoader, PushResponse, Token
from ..exceptions import AuthenticationError, RemoteRejectionError
from ..models.artifact import ArtifactType
from ..models.config import DEFAULT_ENDPOINTS, TargetConfig, TargetCredentials
from ..models.record import CanonicalRecord

logger = logging.getLogger(__name__)


def _partner_payload(body: Dict[str, Any], original_id: str) -> Dict[str, Any]:
    identifiers = body.get("identifiers") or []
    first = identifiers[0] if identifiers else {}
    return {
        "name": body.get("name"),
        "identifier": {
            "type": first.get("type") or "custom",
            "value": first.get("value") or body.get("id"),
        },
        "attributes": {
            "originalId": original_id or body.get("id"),
        },
    }


def _channel_payload(body: Dict[str, Any], original_id: str) -> Dict[str, Any]:
    return {
        "name": body.get("name"),
        "protocol": body.get("protocol"),
        "direction": body.get("direction"),
    }


def _certificate_payload(body: Dict[str, Any], original_id: str) -> Dict[str, Any]:
    return {
        "name": body.get("name"),
        "type": body.get("type"),
        "content": body.get("data"),
    }


def _map_payload(body: Dict[str, Any], original_id: str) -> Dict[str, Any]:
    return {
        "name": body.get("name"),
        "sourceFormat": body.get("source_format"),
        "targetFormat": body.get("target_format"),
    }


def _endpoint_payload(body: Dict[str, Any], original_id: str) -> Dict[str, Any]:
    return {
        "name": body.get("name"),
        "type": body.get("type"),
        "url": body.get("url"),
    }


def _schema_payload(body: Dict[str, Any], original_id: str) -> Dict[str, Any]:
    return {
        "name": body.get("name"),
        "type": body.get("type"),
        "standard": body.get("standard"),
        "version": body.get("version"),
        "content": body.get("content"),
    }


PAYLOAD_BUILDERS: Dict[ArtifactType, Callable[[Dict[str, Any], str], Dict[str, Any]]] = {
    ArtifactType.TRADING_PARTNER: _partner_payload,
    ArtifactType.CHANNEL: _channel_payload,
    ArtifactType.CERTIFICATE: _certificate_payload,
    ArtifactType.MAP: _map_payload,
    ArtifactType.ENDPOINT: _endpoint_payload,
    ArtifactType.SCHEMA: _schema_payload,
}


def build_payload(record: CanonicalRecord, original_id: str = "") -> Dict[str, Any]:
    """
    Map a canonical record to the target API's request body.

    Raises:
        RemoteRejectionError: If the type has no creation call
    """
    builder = PAYLOAD_BUILDERS.get(record.type)
    if builder is None:
        raise RemoteRejectionError(f"Target system has no creation call for {record.type.value} artifacts")
    return builder(record.body, original_id)


class PartnerManagerLoader(BaseLoader):
    """
    Pushes canonical records to the partner-management API.

    Authenticates with the OAuth2 client-credentials grant and creates one
    resource per record on the type-specific endpoint. Safe to share between
    worker threads: the session is thread-safe for requests and the rate limit
    is guarded by a lock.
    """

    def __init__(
        self,
        config: Optional[TargetConfig] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the loader.

        Args:
            config: Target connection settings
            session: Optional pre-built session (used by tests)
        """
        self.config = config or TargetConfig()
        super().__init__("partner_manager", dry_run=self.config.dry_run)
        self.base_url = self.config.base_url.rstrip("/")
        self.rate_limit = self.config.rate_limit
        self._rate_lock = threading.Lock()
        self._last_request_time = 0.0
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        retry_config = self.config.retry_config
        retries = Retry(
            total=retry_config.get("max_retries", 3),
            backoff_factor=retry_config.get("backoff_factor", 2.0),
            status_forcelist=[429, 500, 502, 503, 504],
            raise_on_status=False,
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        session.headers["Content-Type"] = "application/json"

        return session

    def _rate_limit_wait(self):
        """Wait to respect rate limits."""
        with self._rate_lock:
            if self.rate_limit > 0:
                elapsed = time.time() - self._last_request_time
                wait_time = (1.0 / self.rate_limit) - elapsed
                if wait_time > 0:
                    time.sleep(wait_time)
            self._last_request_time = time.time()

    def _get_endpoint(self, artifact_type: ArtifactType) -> Optional[str]:
        """Get the API endpoint for an artifact type."""
        if artifact_type.value in self.config.endpoints:
            return self.config.endpoints[artifact_type.value]
        return DEFAULT_ENDPOINTS.get(artifact_type.value)

    def authenticate(self, credentials: TargetCredentials) -> Token:
        """Exchange client credentials for an access token."""
        if self.dry_run:
            return Token(access_token="dry-run", expires_in=3600)

        try:
            # Not retried: a failed exchange aborts the batch
            response = requests.post(
                self.config.token_url,
                json={
                    "client_id": credentials.client_id,
                    "client_secret": credentials.client_secret,
                    "grant_type": "client_credentials",
                },
                headers={"Content-Type": "application/json"},
                timeout=self.config.request_timeout,
            )
        except requests.exceptions.RequestException as e:
            raise AuthenticationError(f"Token request failed: {e}") from e

        if response.status_code != 200:
            raise AuthenticationError(
                f"Token request rejected with status {response.status_code}: {self._error_detail(response)}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AuthenticationError("Token response is not valid JSON") from e

        access_token = data.get("access_token")
        if not access_token:
            raise AuthenticationError("Token response has no access_token")

        return Token(
            access_token=access_token,
            expires_in=float(data.get("expires_in", 3600)),
            token_type=data.get("token_type", "Bearer").capitalize(),
        )

    def push(self, record: CanonicalRecord, token: Token, original_id: str = "") -> PushResponse:
        """Create one record on its type's endpoint."""
        endpoint = self._get_endpoint(record.type)
        if not endpoint:
            raise RemoteRejectionError(f"Target system has no creation call for {record.type.value} artifacts")

        payload = build_payload(record, original_id)
        url = f"{self.base_url}{endpoint}"

        if self.dry_run:
            logger.info(f"[dry run] POST {url} for {record.type.value} {record.id}")
            return PushResponse(remote_id=f"dry-run-{uuid.uuid4().hex[:12]}", status_code=201, body=payload)

        self._rate_limit_wait()

        try:
            response = self._session.post(
                url,
                json=payload,
                headers={"Authorization": token.authorization_header},
                timeout=self.config.request_timeout,
            )
        except requests.exceptions.Timeout as e:
            raise RemoteRejectionError(f"Request to {url} timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            raise RemoteRejectionError(f"Request to {url} failed: {e}") from e

        if response.status_code == 401:
            raise AuthenticationError(f"Target rejected the access token for {url}")

        if not 200 <= response.status_code < 300:
            detail = self._error_detail(response)
            raise RemoteRejectionError(
                f"Target rejected {record.type.value} {record.id} with status {response.status_code}: {detail}",
                status_code=response.status_code,
                detail=detail,
            )

        try:
            response_data = response.json() if response.text else {}
        except ValueError:
            response_data = {}

        remote_id = None
        if isinstance(response_data, dict):
            nested = response_data.get("data")
            remote_id = response_data.get("id") or (nested.get("id") if isinstance(nested, dict) else None)

        if not remote_id:
            raise RemoteRejectionError(
                f"Target accepted {record.type.value} {record.id} but returned no id",
                status_code=response.status_code,
            )

        logger.debug(f"Created {record.type.value} {record.id} as {remote_id}")
        return PushResponse(remote_id=str(remote_id), status_code=response.status_code, body=response_data)

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        """Extract a readable message from an error response."""
        try:
            error_data = response.json()
        except ValueError:
            return response.text or response.reason or ""
        if isinstance(error_data, dict):
            return str(error_data.get("message") or error_data.get("error") or error_data)
        return str(error_data)

    def close(self) -> None:
        self._session.close()
