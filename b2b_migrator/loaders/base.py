"""Base loader interface for target systems."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ..models.artifact import utcnow
from ..models.config import TargetCredentials
from ..models.record import CanonicalRecord


@dataclass
class Token:
    """Bearer token issued by the target system."""
    access_token: str = field(repr=False)
    expires_in: float = 3600.0  # Seconds, as reported by the token endpoint
    token_type: str = "Bearer"
    issued_at: datetime = field(default_factory=utcnow)

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.expires_in)

    @property
    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}"


@dataclass
class PushResponse:
    """Accepted push, as reported by the target system."""
    remote_id: str
    status_code: int = 201
    body: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Summary stored as the attempt's remote response."""
        return {
            "remote_id": self.remote_id,
            "status_code": self.status_code,
            "body": self.body,
        }


class BaseLoader(ABC):
    """
    Base class for target-system loaders.

    Loaders exchange credentials for a token and push one canonical record per
    call. They raise instead of returning failure values:
    ``AuthenticationError`` from ``authenticate`` and ``RemoteRejectionError``
    from ``push``.
    """

    def __init__(self, target_service: str, dry_run: bool = False):
        """
        Initialize the loader.

        Args:
            target_service: Name of the target service
            dry_run: If True, simulate without making changes
        """
        self.target_service = target_service
        self.dry_run = dry_run

    @abstractmethod
    def authenticate(self, credentials: TargetCredentials) -> Token:
        """
        Exchange client credentials for a token.

        Raises:
            AuthenticationError: If the exchange fails
        """
        pass

    @abstractmethod
    def push(self, record: CanonicalRecord, token: Token, original_id: str = "") -> PushResponse:
        """
        Create one record in the target system.

        Args:
            record: Canonical record to push
            token: Token from ``authenticate``
            original_id: Source system id, kept as an attribute where supported

        Returns:
            PushResponse carrying the remote id

        Raises:
            RemoteRejectionError: If the target does not accept the record
        """
        pass

    def close(self) -> None:
        """Release any held connections."""
