"""
Session store configuration.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from chatkeep.core.session_store import SessionStore
from chatkeep.models.session import DEFAULT_TITLE

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("chatkeep.yaml")

# Environment variable -> config field
ENV_OVERRIDES = {
    "CHATKEEP_SESSIONS_DIR": "sessions_dir",
    "CHATKEEP_RETENTION_DAYS": "retention_days",
}


class StoreConfig(BaseModel):
    """Settings for the session store."""

    model_config = {"extra": "forbid"}

    sessions_dir: Path = Field(
        default=Path(".chatkeep/sessions"),
        description="Directory holding one JSON record per session",
    )
    default_title: str = Field(
        default=DEFAULT_TITLE,
        min_length=1,
        description="Placeholder title until one is derived from the first user message",
    )
    retention_days: int = Field(
        default=30,
        ge=0,
        description="Sessions not updated for this many days are removed by cleanup",
    )

    def create_store(self) -> SessionStore:
        """Build a session store from these settings."""
        return SessionStore(base_dir=self.sessions_dir, default_title=self.default_title)


class StoreConfigError(Exception):
    """Raised when the store configuration is invalid, with a user-friendly message."""

    def __init__(self, source: str, issues: list[str]):
        self.source = source
        self.issues = issues
        msg = f"Invalid configuration in {source}:\n" + "\n".join(
            f"  - {issue}" for issue in issues
        )
        super().__init__(msg)


def _friendly_validation_errors(source: str, exc: ValidationError) -> StoreConfigError:
    """Convert Pydantic ValidationError to a user-friendly StoreConfigError."""
    issues: list[str] = []
    for error in exc.errors():
        loc = ".".join(str(x) for x in error["loc"])
        err_type = error["type"]

        if err_type == "string_too_short":
            issues.append(f"{loc} cannot be empty")
        elif err_type == "greater_than_equal":
            issues.append(f"{loc} must be 0 or more")
        elif err_type == "extra_forbidden":
            issues.append(f"{loc} is not a known setting")
        else:
            issues.append(f"{loc}: {error['msg']}")
    return StoreConfigError(source, issues)


def load_store_config(path: Path | None = None) -> StoreConfig:
    """
    Load store settings from YAML, then apply environment overrides.

    Args:
        path: Config file (default: ./chatkeep.yaml, skipped if missing)

    Returns:
        Validated StoreConfig

    Raises:
        StoreConfigError: If the file or an override is invalid
    """
    config_path = path or DEFAULT_CONFIG_FILE
    data: dict[str, Any] = {}

    if config_path.exists():
        with open(config_path) as f:
            try:
                loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise StoreConfigError(str(config_path), [f"not valid YAML ({e})"]) from e
        if loaded is not None and not isinstance(loaded, dict):
            raise StoreConfigError(str(config_path), ["top level must be a mapping"])
        data.update(loaded or {})
    elif path is not None:
        raise StoreConfigError(str(config_path), ["file does not exist"])

    for env_name, field_name in ENV_OVERRIDES.items():
        if env_name in os.environ:
            logger.debug("Using %s from environment", env_name)
            data[field_name] = os.environ[env_name]

    try:
        return StoreConfig(**data)
    except ValidationError as e:
        raise _friendly_validation_errors(str(config_path), e) from e
