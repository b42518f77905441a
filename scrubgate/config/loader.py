"""Process settings from the environment, sanitizer options from YAML."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from scrubgate.sanitize import ConfigurationError, SanitizeOptions, build_options

logger = structlog.get_logger()

DEFAULT_CONFIG_FILE = Path(__file__).parent / "defaults.yaml"

SANITIZER_SECTION = "sanitizer"


class ProxySettings(BaseSettings):
    """PROXY_* env vars (and .env) over the defaults below."""

    model_config = SettingsConfigDict(
        env_prefix="PROXY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    upstream_url: str = "http://localhost:3000"
    listen_port: int = 8080
    log_level: str = "info"
    log_json: bool = True

    # YAML file holding the sanitizer section
    config_file: str = str(DEFAULT_CONFIG_FILE)

    # Upstream client
    proxy_timeout: float = 30.0
    upstream_max_connections: int = 100
    upstream_max_keepalive: int = 20
    upstream_follow_redirects: bool = False

    # Applies to request bodies and upstream responses alike
    max_body_bytes: int = 10 * 1024 * 1024


_settings: ProxySettings | None = None


def get_settings() -> ProxySettings:
    if _settings is None:
        return load_settings()
    return _settings


def load_settings() -> ProxySettings:
    """Re-read the environment and replace the cached settings."""
    global _settings
    _settings = ProxySettings()
    logger.info("config_loaded", upstream_url=_settings.upstream_url, port=_settings.listen_port)
    return _settings


def _read_yaml(path: Path) -> Any:
    if not path.exists():
        logger.warning("config_file_missing", path=str(path))
        return {}
    try:
        with open(path) as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(SANITIZER_SECTION, f"{path} is not valid YAML") from exc


def load_sanitizer_options(path: str | Path | None = None) -> SanitizeOptions:
    """Build sanitizer options from the ``sanitizer:`` section of a YAML file.

    A missing file or section yields the built-in defaults. Pattern entries
    are regex source strings. Raises ConfigurationError on a bad shape.
    """
    config_path = Path(path) if path is not None else Path(get_settings().config_file)
    document = _read_yaml(config_path)
    if not isinstance(document, dict):
        raise ConfigurationError(SANITIZER_SECTION, f"{config_path} must contain a mapping")

    section = document.get(SANITIZER_SECTION) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(SANITIZER_SECTION, "section must be a mapping")

    options = build_options(section)
    logger.info("sanitizer_config_loaded", path=str(config_path), keys=sorted(section))
    return options
