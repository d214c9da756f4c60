"""
Fiddler Receiver - Configuration.

============================================================
CONFIGURABLE RECEIVER
============================================================

- API endpoint and auth token
- Poll interval, per-cycle timeout and window offset
- Enabled metric types
- Catalog refresh and concurrency settings

Configuration can be loaded from:
- Default values
- Environment variables (and a .env file)
- YAML config file

Validation happens once, before scheduling begins. Defaults
and limits come from a single immutable ReceiverDefaults.

============================================================
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from fiddler_receiver.exceptions import ConfigValidationError


logger = logging.getLogger(__name__)


# =============================================================
# DEFAULTS
# =============================================================


@dataclass(frozen=True)
class ReceiverDefaults:
    """Process-wide defaults and limits applied during validation."""
    endpoint: str = ""
    token: str = ""
    interval_seconds: int = 3600
    minimum_interval_seconds: int = 300
    timeout_seconds: float = 300.0
    offset_seconds: int = 3600
    maximum_offset_seconds: int = 48 * 3600
    max_concurrency: int = 4
    page_size: int = 100
    service_name: str = "fiddler"


DEFAULTS = ReceiverDefaults()


# =============================================================
# RECEIVER CONFIGURATION
# =============================================================


@dataclass
class ReceiverConfig:
    """Configuration for the Fiddler metrics receiver."""

    endpoint: str = DEFAULTS.endpoint
    """Base URL of the Fiddler deployment, e.g. https://app.fiddler.ai"""

    token: str = DEFAULTS.token
    """API token sent as a bearer token."""

    interval_seconds: int = DEFAULTS.interval_seconds
    timeout_seconds: float = DEFAULTS.timeout_seconds

    offset_seconds: Optional[int] = None
    """Trailing delay subtracted from now; default applied by validate()."""

    enabled_metric_types: List[str] = field(default_factory=list)
    """Empty means every metric type is collected."""

    project_id: Optional[str] = None
    """Restrict model discovery to one project."""

    max_concurrency: int = DEFAULTS.max_concurrency
    page_size: int = DEFAULTS.page_size
    refresh_catalog_each_cycle: bool = True
    service_name: str = DEFAULTS.service_name

    def validate(self, defaults: ReceiverDefaults = DEFAULTS) -> None:
        """
        Validate the configuration and fill in absent defaults.

        Raises:
            ConfigValidationError: listing every problem found
        """
        errors = []

        if not self.endpoint:
            errors.append("endpoint must be specified")
        if not self.token:
            errors.append("token must be specified")

        if self.interval_seconds < defaults.minimum_interval_seconds:
            errors.append(
                f"interval must be at least {defaults.minimum_interval_seconds // 60} minutes"
            )

        if self.timeout_seconds <= 0:
            errors.append("timeout must be greater than 0")

        if self.offset_seconds is None:
            self.offset_seconds = defaults.offset_seconds
        elif self.offset_seconds < 0:
            errors.append("offset must not be negative")
        elif self.offset_seconds > defaults.maximum_offset_seconds:
            errors.append(
                f"offset must be no more than {defaults.maximum_offset_seconds // 3600} hours"
            )

        if self.max_concurrency < 1:
            errors.append("max_concurrency must be at least 1")
        if self.page_size < 1:
            errors.append("page_size must be at least 1")

        if errors:
            raise ConfigValidationError(
                f"invalid receiver configuration: {'; '.join(errors)}",
                errors=errors,
            )

    # ---------------------------------------------------------
    # Loaders
    # ---------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReceiverConfig":
        """Build a config from a plain mapping (YAML document, test fixture)."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")

        try:
            config = cls()
            if "endpoint" in data:
                config.endpoint = str(data["endpoint"] or "")
            if "token" in data:
                config.token = str(data["token"] or "")
            if "interval_seconds" in data:
                config.interval_seconds = int(data["interval_seconds"])
            if "timeout_seconds" in data:
                config.timeout_seconds = float(data["timeout_seconds"])
            if data.get("offset_seconds") is not None:
                config.offset_seconds = int(data["offset_seconds"])
            if "enabled_metric_types" in data:
                config.enabled_metric_types = _as_list(data["enabled_metric_types"])
            if data.get("project_id"):
                config.project_id = str(data["project_id"])
            if "max_concurrency" in data:
                config.max_concurrency = int(data["max_concurrency"])
            if "page_size" in data:
                config.page_size = int(data["page_size"])
            if "refresh_catalog_each_cycle" in data:
                config.refresh_catalog_each_cycle = _as_bool(data["refresh_catalog_each_cycle"])
            if "service_name" in data:
                config.service_name = str(data["service_name"])
        except (TypeError, ValueError) as e:
            raise ConfigValidationError(f"invalid receiver configuration: {e}")

        return config

    @classmethod
    def from_env(cls) -> "ReceiverConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - FIDDLER_ENDPOINT
        - FIDDLER_TOKEN
        - FIDDLER_INTERVAL_SECONDS
        - FIDDLER_TIMEOUT_SECONDS
        - FIDDLER_OFFSET_SECONDS
        - FIDDLER_ENABLED_METRIC_TYPES (comma separated)
        - FIDDLER_PROJECT_ID
        - FIDDLER_MAX_CONCURRENCY
        - FIDDLER_PAGE_SIZE
        - FIDDLER_REFRESH_CATALOG_EACH_CYCLE
        """
        load_dotenv()

        data: Dict[str, Any] = {}
        for name in (
            "endpoint",
            "token",
            "interval_seconds",
            "timeout_seconds",
            "offset_seconds",
            "enabled_metric_types",
            "project_id",
            "max_concurrency",
            "page_size",
            "refresh_catalog_each_cycle",
        ):
            value = os.getenv(f"FIDDLER_{name.upper()}")
            if value is not None and value != "":
                data[name] = value

        return cls.from_dict(data)

    @classmethod
    def from_yaml(cls, path: Path) -> "ReceiverConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigValidationError(f"failed to load config from {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigValidationError(f"config file {path} must contain a mapping")

        # Allow the receiver settings to be nested under a "fiddler" key
        if isinstance(data.get("fiddler"), dict):
            data = data["fiddler"]

        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, with the token masked."""
        return {
            "endpoint": self.endpoint,
            "token": "***" if self.token else "",
            "interval_seconds": self.interval_seconds,
            "timeout_seconds": self.timeout_seconds,
            "offset_seconds": self.offset_seconds,
            "enabled_metric_types": list(self.enabled_metric_types),
            "project_id": self.project_id,
            "max_concurrency": self.max_concurrency,
            "page_size": self.page_size,
            "refresh_catalog_each_cycle": self.refresh_catalog_each_cycle,
            "service_name": self.service_name,
        }


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    raise TypeError(f"expected a list of strings, got {type(value).__name__}")


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")
