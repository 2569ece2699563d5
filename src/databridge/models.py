"""Pydantic models for bridge, datasource and fetch configuration.

Every component validates its options once, at construction, through one of
these models rather than probing a loose dict of options at use time:

* :class:`BridgeConfig` -- cache directory and default TTL for a
  :class:`~databridge.bridge.Databridge`.
* :class:`DatasourceOptions` -- per-source caching switch and TTL override.
* :class:`FetchOptions` -- per-call stream name override and cache bypass.
* :class:`CacheMeta` -- the ``cache_read`` / ``cache_write`` metadata
  attached to a :class:`~databridge.fetch.FetchResponse`.

All TTLs are expressed in **minutes**, matching the whole-minute age
computation in :class:`~databridge.cache.record.CacheRecord`.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    ValidationError,
    field_validator,
)

from databridge.exceptions import ConfigurationError

DEFAULT_CACHE_DIR = Path("databridgeJsonCache")
DEFAULT_CACHE_TTL = 60


class BridgeConfig(BaseModel):
    """Options for a :class:`~databridge.bridge.Databridge`.

    The cache directory must already exist; the bridge never creates it.

    Example::

        BridgeConfig(cache_dir="/var/cache/myapp", default_cache_ttl=15)
    """

    model_config = ConfigDict(frozen=True)

    cache_dir: Path = Field(
        default=DEFAULT_CACHE_DIR,
        validate_default=True,
        description="Existing folder that holds the JSON cache files",
    )
    default_cache_ttl: PositiveInt = Field(
        default=DEFAULT_CACHE_TTL,
        description="TTL in minutes for sources without their own cache_ttl",
    )

    @field_validator("cache_dir")
    @classmethod
    def _folder_exists(cls, value: Path) -> Path:
        if not value.is_dir():
            raise ValueError(f"{value} is not a valid file path to a folder")
        return value


class DatasourceOptions(BaseModel):
    """Caching policy of a single :class:`~databridge.datasource.Datasource`."""

    model_config = ConfigDict(frozen=True)

    enable_caching: bool = Field(
        default=True, description="Whether results of this source are cached"
    )
    cache_ttl: Optional[PositiveInt] = Field(
        default=None,
        description="TTL in minutes, overriding the bridge default when set",
    )


class FetchOptions(BaseModel):
    """Per-call fetch options.

    Unknown keys are kept in ``model_extra`` so that custom stream key
    generators can read options of their own.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    stream_name: Optional[str] = Field(
        default=None, description="Explicit stream name, bypassing key generation"
    )
    bypass_cache: bool = Field(
        default=False, description="Skip the cache read (the result is still written)"
    )


class CacheMeta(BaseModel):
    """Where and when a cache record was read or written."""

    location: str
    timestamp: datetime


def build_options(model: type[BaseModel], values: Any, what: str) -> Any:
    """Validate *values* into *model*, translating pydantic errors.

    *values* may be ``None`` (all defaults), an instance of *model* (returned
    as is) or a mapping of field values.

    Raises:
        ConfigurationError: If validation fails.
    """
    if values is None:
        values = {}
    if isinstance(values, model):
        return values
    if isinstance(values, Mapping):
        values = dict(values)
    try:
        return model.model_validate(values)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid {what}: {exc}") from exc
