"""Bridge configuration resolution with precedence from several sources.

The library itself only needs a :class:`~databridge.models.BridgeConfig`;
this module builds one for the ``databridge`` command line and for
applications that prefer file and environment based configuration.

* **Project config** -- ``./databridge.json`` with ``cache_dir`` and
  ``default_cache_ttl`` keys. See :func:`load_project_config`.
* **Environment** -- ``DATABRIDGE_CACHE_DIR`` and
  ``DATABRIDGE_DEFAULT_CACHE_TTL``.
* **Precedence resolution** -- :func:`resolve_bridge_config` merges
  explicit values, environment variables and project config over the
  model defaults.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

from databridge.exceptions import ConfigurationError
from databridge.models import BridgeConfig, build_options

PROJECT_CONFIG_FILENAME = "databridge.json"
ENV_CACHE_DIR = "DATABRIDGE_CACHE_DIR"
ENV_DEFAULT_CACHE_TTL = "DATABRIDGE_DEFAULT_CACHE_TTL"


def load_project_config(directory: Optional[Path] = None) -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``databridge.json``.

    Args:
        directory: Directory to look in. Defaults to the current working
            directory.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigurationError: If the file exists but is not a JSON object.
    """
    path = (directory or Path.cwd()) / PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid project config at {path}: expected a JSON object")
    return data


def resolve_bridge_config(
    cache_dir: Optional[str | Path] = None,
    default_cache_ttl: Optional[int] = None,
) -> BridgeConfig:
    """Resolve the bridge configuration through the precedence chain.

    Precedence (high to low):
        1. Explicit arguments (CLI flags)
        2. Environment variables (``DATABRIDGE_CACHE_DIR``,
           ``DATABRIDGE_DEFAULT_CACHE_TTL``)
        3. Project config (``./databridge.json``)
        4. Model defaults

    Raises:
        ConfigurationError: If the merged values fail validation.
    """
    values: dict[str, Any] = {}

    # 3. Project-local config
    project = load_project_config()
    if project is not None:
        for key in ("cache_dir", "default_cache_ttl"):
            if key in project:
                values[key] = project[key]

    # 2. Environment
    env_dir = os.environ.get(ENV_CACHE_DIR)
    if env_dir:
        values["cache_dir"] = env_dir
    env_ttl = os.environ.get(ENV_DEFAULT_CACHE_TTL)
    if env_ttl:
        values["default_cache_ttl"] = env_ttl

    # 1. Explicit values
    if cache_dir is not None:
        values["cache_dir"] = cache_dir
    if default_cache_ttl is not None:
        values["default_cache_ttl"] = default_cache_ttl

    return build_options(BridgeConfig, values, "bridge configuration")
