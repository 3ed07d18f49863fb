"""Process configuration.

Settings come from a YAML file when one exists at the given path, otherwise
from environment variables named by the upper-cased key. Every key is
required; anything missing aborts before work starts.
"""
import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigMissingError


logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.yaml"


class Settings(BaseModel):
    """Typed view of the configuration keys."""

    authentication: str = Field(..., description="Shared secret for corrections basic auth")
    aic_expiration_days: int = Field(..., gt=0, description="Attribution cookie lifetime")
    cj_api_access_token: str = Field(..., description="Bearer token for the commission detail API")
    cj_cid: str
    cj_signature: str
    cj_subid: str
    cj_type: str
    cj_sftp_user: str = Field(..., description="Advertiser id used by the commission detail API")
    database_url: str
    environment: Literal["local", "dev", "stage", "prod"]
    gcp_project: str
    host: str
    port: int
    log_level: str
    sentry_dsn: str
    sentry_environment: str
    statsd_host: str
    statsd_port: int

    def server_address(self) -> str:
        return f"{self.host}:{self.port}"


def _read_yaml(settings_file: Path) -> dict:
    try:
        with open(settings_file, encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigMissingError(f"Settings file is not valid YAML: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigMissingError(f"Settings file {settings_file} is not a mapping")

    # YAML types bare scalars; keep everything as text like the environment does
    return {str(key): "" if value is None else str(value) for key, value in data.items()}


def _read_env() -> dict:
    data = {}
    for key in Settings.model_fields:
        value = os.getenv(key.upper())
        if value is not None:
            data[key] = value
    return data


def load_settings(path: str | Path = SETTINGS_FILE) -> Settings:
    """Load settings from a YAML file or the environment.

    Args:
        path: Settings file location. Used only when it exists.

    Returns:
        Validated Settings

    Raises:
        ConfigMissingError: If the path is not a file, the YAML is invalid,
            or any key is missing or invalid
    """
    settings_file = Path(path)

    if settings_file.exists():
        if not settings_file.is_file():
            raise ConfigMissingError(f"Given settings file is not a file: {settings_file}")
        data = _read_yaml(settings_file)
        source = str(settings_file)
    else:
        data = _read_env()
        source = "environment"

    try:
        settings = Settings.model_validate(data)
    except ValidationError as exc:
        raise ConfigMissingError(f"Config didn't match settings ({source}): {exc}") from exc

    logger.debug("Settings loaded from %s", source)
    return settings
