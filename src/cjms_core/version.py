"""Build version file served by /__version__."""
import logging
import os
import subprocess
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

from .errors import CJMSError


logger = logging.getLogger(__name__)

VERSION_FILE = "version.yaml"


class VersionInfo(BaseModel):
    commit: str
    source: str
    version: str


def read_version(path: str | Path = VERSION_FILE) -> VersionInfo:
    """Read version.yaml.

    Raises:
        CJMSError: If the file is missing or is not a version file
    """
    try:
        with open(path, encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        raise CJMSError(f"Couldn't read version file: {exc}") from exc
    except yaml.YAMLError as exc:
        raise CJMSError(f"Couldn't parse YAML from version file: {exc}") from exc

    if not isinstance(data, dict):
        raise CJMSError("Couldn't parse YAML from version file: not a mapping")
    try:
        return VersionInfo.model_validate({key: str(value) for key, value in data.items()})
    except ValidationError as exc:
        raise CJMSError(f"Couldn't parse YAML from version file: {exc}") from exc


def write_version(path: str | Path, info: VersionInfo) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        yaml.safe_dump(info.model_dump(), handle, default_flow_style=False, sort_keys=True)
    logger.info("Wrote %s (commit=%s, version=%s)", path, info.commit, info.version)


def _git(*args: str) -> str:
    try:
        result = subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        logger.warning("Failed to execute git %s: %s", " ".join(args), exc)
        return ""
    return result.stdout.strip()


def collect_version_info() -> VersionInfo:
    """Version details from CI variables when present, otherwise from git."""
    sha = os.getenv("GITHUB_SHA")
    tag = os.getenv("GITHUB_REF_NAME")
    if sha and tag:
        commit, version = sha, tag
    else:
        commit = _git("rev-parse", "--short", "HEAD")
        version = _git("describe", "--tags")

    source = os.getenv("CJMS_SOURCE_URL") or _git("config", "--get", "remote.origin.url")
    return VersionInfo(commit=commit, source=source, version=version)
