"""Helpers for loading the user configuration file (~/.stackzy/config.json).

Any key can be overridden with a ``STACKZY_<KEY>`` environment variable,
e.g. ``STACKZY_CACHING_ENABLED=false``.
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".stackzy"
CONFIG_FILE = CONFIG_DIR / "config.json"
ENV_PREFIX = "STACKZY_"

DEFAULT_RESULTS_URL = "https://stackzy-api.theapache64.com"


class StackzyConfig(BaseModel):
    """Runtime configuration for the analysis pipeline."""

    analyzer_version: str = "1.0"
    """Version of the library-matching logic; part of every cache key."""

    caching_enabled: bool = True
    """Consult and populate the remote result cache."""

    results_url: str = DEFAULT_RESULTS_URL
    api_key: str | None = None
    request_timeout: float = 30.0

    untracked_sync_enabled: bool = False
    """Report unknown namespaces back to the catalog maintainers."""

    settle_delay: float = 2.0
    """Seconds to wait after a store download reports 100%."""

    catalog_path: Path | None = None
    store_url: str | None = None
    store_email: str | None = None
    store_token: str | None = None


@lru_cache(maxsize=1)
def load_config() -> dict[str, Any]:
    """Load configuration data from disk (cached)."""

    if not CONFIG_FILE.exists():
        return {}

    try:
        raw = CONFIG_FILE.read_text()
    except OSError:
        return {}

    try:
        data = json.loads(raw)
    except ValueError:
        return {}

    if isinstance(data, dict):
        return data

    return {}


def get_config_value(key: str, default: Any | None = None) -> Any | None:
    """Fetch a configuration value by key, environment first."""

    env_value = os.environ.get(ENV_PREFIX + key.upper())
    if env_value is not None:
        return env_value

    return load_config().get(key, default)


def get_settings() -> StackzyConfig:
    """Build a validated StackzyConfig from the file and the environment.

    Invalid values are dropped with a warning; their defaults apply and
    every valid value is kept.
    """

    values = {
        key: value
        for key in StackzyConfig.model_fields
        if (value := get_config_value(key)) is not None
    }

    try:
        return StackzyConfig.model_validate(values)
    except ValidationError as exc:
        invalid = {str(error["loc"][0]) for error in exc.errors() if error["loc"]}
        for key in sorted(invalid):
            logger.warning("Ignoring invalid config value %s=%r", key, values.pop(key, None))
        return StackzyConfig.model_validate(values)


def reload_config() -> None:
    """Force the cached configuration to be reloaded on next access."""

    load_config.cache_clear()
