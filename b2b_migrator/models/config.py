"""Pipeline configuration models."""

import hashlib
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from ..exceptions import ConfigError

CLIENT_ID_ENV = "B2B_MIGRATOR_CLIENT_ID"
CLIENT_SECRET_ENV = "B2B_MIGRATOR_CLIENT_SECRET"

DEFAULT_ENDPOINTS: Dict[str, Optional[str]] = {
    "trading_partner": "/partners",
    "channel": "/channels",
    "certificate": "/certificates",
    "map": "/maps",
    "endpoint": "/endpoints",
    "schema": "/schemas",
    "other": None,  # Generic artifacts have no creation call
}


def parse_bool(value: Any, key: str) -> bool:
    """Read a boolean setting, accepting real booleans or "true"/"false" strings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ConfigError(f"{key} must be a boolean, got {value!r}")


@dataclass(frozen=True)
class TargetCredentials:
    """Client credentials for the target system."""
    client_id: str
    client_secret: str = field(repr=False)

    @property
    def identity(self) -> str:
        """Cache key for these credentials; never exposes the secret."""
        digest = hashlib.sha256(self.client_secret.encode("utf-8")).hexdigest()[:16]
        return f"{self.client_id}:{digest}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TargetCredentials":
        """Create from a ``{clientId, clientSecret}`` mapping."""
        client_id = data.get("clientId") or data.get("client_id")
        client_secret = data.get("clientSecret") or data.get("client_secret")
        if not client_id or not client_secret:
            raise ConfigError("Target credentials require clientId and clientSecret")
        return cls(client_id=str(client_id), client_secret=str(client_secret))

    @classmethod
    def from_env(cls) -> Optional["TargetCredentials"]:
        """Read credentials from the environment, if both are set."""
        client_id = os.environ.get(CLIENT_ID_ENV)
        client_secret = os.environ.get(CLIENT_SECRET_ENV)
        if client_id and client_secret:
            return cls(client_id=client_id, client_secret=client_secret)
        return None


@dataclass
class TargetConfig:
    """Connection settings for the target partner-management API."""
    base_url: str = "https://anypoint.mulesoft.com/partnermanager/api/v2"
    token_url: str = "https://anypoint.mulesoft.com/accounts/api/v2/oauth2/token"
    endpoints: Dict[str, Optional[str]] = field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))
    request_timeout: float = 30.0  # Seconds, per request
    rate_limit: float = 10.0  # Requests per second, 0 disables
    retry_config: Dict[str, Any] = field(default_factory=lambda: {
        "max_retries": 3,
        "backoff_factor": 2.0,
    })
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "base_url": self.base_url,
            "token_url": self.token_url,
            "endpoints": self.endpoints,
            "request_timeout": self.request_timeout,
            "rate_limit": self.rate_limit,
            "retry_config": self.retry_config,
            "dry_run": self.dry_run,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TargetConfig":
        """Create from dictionary representation."""
        defaults = cls()
        endpoints = dict(DEFAULT_ENDPOINTS)
        endpoints.update(data.get("endpoints", {}))
        return cls(
            base_url=data.get("base_url", defaults.base_url),
            token_url=data.get("token_url", defaults.token_url),
            endpoints=endpoints,
            request_timeout=float(data.get("request_timeout", defaults.request_timeout)),
            rate_limit=float(data.get("rate_limit", defaults.rate_limit)),
            retry_config=data.get("retry_config", defaults.retry_config),
            dry_run=parse_bool(data.get("dry_run", False), "dry_run"),
        )


@dataclass
class PipelineConfig:
    """Configuration for the migration pipeline."""
    target: TargetConfig = field(default_factory=TargetConfig)
    target_credentials: Optional[TargetCredentials] = None

    # Execution options
    max_workers: int = 4
    token_expiry_margin: float = 60.0  # Refresh tokens this many seconds early

    # Persistence and output
    ledger_path: Optional[str] = None  # None keeps the ledger in memory
    output_dir: str = "./data"
    save_reports: bool = False

    def __post_init__(self):
        if self.max_workers < 1:
            raise ConfigError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.token_expiry_margin < 0:
            raise ConfigError("token_expiry_margin cannot be negative")

    @property
    def reports_dir(self) -> Path:
        return Path(self.output_dir) / "reports"

    def resolve_credentials(self) -> Optional[TargetCredentials]:
        """Environment credentials win over the configured ones."""
        return TargetCredentials.from_env() or self.target_credentials

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (secrets omitted)."""
        return {
            "target": self.target.to_dict(),
            "target_credentials": (
                {"clientId": self.target_credentials.client_id}
                if self.target_credentials else None
            ),
            "max_workers": self.max_workers,
            "token_expiry_margin": self.token_expiry_margin,
            "ledger_path": self.ledger_path,
            "output_dir": self.output_dir,
            "save_reports": self.save_reports,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        """Create from dictionary representation."""
        credentials = None
        if data.get("target_credentials"):
            credentials = TargetCredentials.from_dict(data["target_credentials"])

        try:
            return cls(
                target=TargetConfig.from_dict(data.get("target", {})),
                target_credentials=credentials,
                max_workers=int(data.get("max_workers", 4)),
                token_expiry_margin=float(data.get("token_expiry_margin", 60.0)),
                ledger_path=data.get("ledger_path"),
                output_dir=data.get("output_dir", "./data"),
                save_reports=parse_bool(data.get("save_reports", False), "save_reports"),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_json_file(cls, path: str) -> "PipelineConfig":
        """Load configuration from a JSON file."""
        try:
            with open(path) as f:
                data = json.load(f)
        except FileNotFoundError:
            raise ConfigError(f"Config file not found: {path}")
        except json.JSONDecodeError as e:
            raise ConfigError(f"Config file {path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object")
        return cls.from_dict(data)
