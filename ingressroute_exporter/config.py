"""Configuration management for the exporter."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field


DEFAULT_CONFIG_PATH = "config/exporter.yaml"


class ConfigError(Exception):
    """Raised when the configuration file cannot be used."""


class ExporterConfig(BaseModel):
    """Main configuration for the exporter."""

    # Metrics server
    listen_host: str = Field(default="0.0.0.0", description="Address the metrics server binds to")
    listen_port: int = Field(default=8080, ge=1, le=65535, description="Port the metrics server binds to")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="console", description="Log renderer: console or json")

    # Cycle
    collection_window_seconds: float = Field(
        default=30.0, gt=0, description="Seconds a cycle accepts newly discovered domains"
    )

    # Probing
    probe_timeout_seconds: float = Field(default=10.0, gt=0, description="Hard timeout for one probe")
    probe_verify_tls: bool = Field(default=True, description="Validate TLS certificates of probed domains")
    probe_max_redirects: int = Field(default=5, ge=0, description="Redirects followed before a probe is Down")
    probe_concurrency: int = Field(default=50, ge=1, description="Probes in flight at once")

    # Discovery
    enumeration_concurrency: int = Field(default=10, ge=1, description="Namespaces listed at once")
    resource_group: str = Field(default="traefik.containo.us", description="API group of the routing resource")
    resource_version: str = Field(default="v1alpha1", description="API version of the routing resource")
    resource_plural: str = Field(default="ingressroutes", description="Plural name of the routing resource")
    kubeconfig: Optional[str] = Field(default=None, description="Explicit kube-config path for local runs")


_ENV_OVERRIDES: Dict[str, str] = {
    "listen_host": "EXPORTER_LISTEN_HOST",
    "listen_port": "EXPORTER_LISTEN_PORT",
    "collection_window_seconds": "EXPORTER_COLLECTION_WINDOW_SECONDS",
    "probe_timeout_seconds": "EXPORTER_PROBE_TIMEOUT_SECONDS",
    "probe_verify_tls": "EXPORTER_PROBE_VERIFY_TLS",
    "probe_max_redirects": "EXPORTER_PROBE_MAX_REDIRECTS",
    "probe_concurrency": "EXPORTER_PROBE_CONCURRENCY",
    "enumeration_concurrency": "EXPORTER_ENUMERATION_CONCURRENCY",
    "log_level": "LOG_LEVEL",
}


def _read_config_file(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config YAML must be a mapping: {path}")
    return data


def load_config(config_path: Optional[str] = None) -> ExporterConfig:
    """Load configuration from file, then apply environment overrides.

    An explicitly requested file must exist; the default location is optional.
    """
    explicit = config_path is not None or os.getenv("EXPORTER_CONFIG") is not None
    if config_path is None:
        config_path = os.getenv("EXPORTER_CONFIG", DEFAULT_CONFIG_PATH)

    config_data: Dict[str, Any] = {}
    path = Path(config_path)
    if path.exists():
        config_data = _read_config_file(path)
    elif explicit:
        raise ConfigError(f"Config file not found: {path}")

    # Pydantic coerces the raw strings ("true", "8081", ...) to the field types.
    for key, env_name in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is not None and value.strip():
            config_data[key] = value.strip()

    return ExporterConfig(**config_data)
