"""The persisted cache envelope and its TTL arithmetic.

One :class:`CacheRecord` holds the most recent successful result of one
stream of one producer. On disk it is a JSON object of the form::

    {
        "datasourceName": "weather",
        "dataFetcherPath": ["stats", "max"],
        "datastreamName": "s_Dublin",
        "timestamp": "2026-10-19T09:30:00.000000+00:00",
        "data": {...}
    }

Ages are measured in whole minutes, truncated toward the past. A record
whose timestamp lies in the future is never considered fresh.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from databridge.exceptions import CacheReadError
from databridge.names import is_valid_name


def utc_now() -> datetime:
    """Default clock: the current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; aware ones are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CacheRecord(BaseModel):
    """One cached producer result.

    Attributes:
        source_path: Datasource name followed by the producer path.
        stream_name: The stream the result belongs to.
        timestamp: When the result was written.
        data: The JSON payload.
        location: Where the record is stored, when known.
    """

    model_config = ConfigDict(frozen=True)

    source_path: tuple[str, ...] = Field(min_length=1)
    stream_name: str
    timestamp: datetime
    data: Any = None
    location: Optional[str] = None

    @field_validator("source_path")
    @classmethod
    def _valid_path(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for part in value:
            if not is_valid_name(part):
                raise ValueError(f"{part!r} is not a valid name")
        return value

    @field_validator("stream_name")
    @classmethod
    def _valid_stream(cls, value: str) -> str:
        if not is_valid_name(value):
            raise ValueError(f"{value!r} is not a valid stream name")
        return value

    @field_validator("timestamp")
    @classmethod
    def _aware_timestamp(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    @property
    def datasource_name(self) -> str:
        return self.source_path[0]

    @property
    def fetcher_path(self) -> tuple[str, ...]:
        return self.source_path[1:]

    # ------------------------------------------------------------------
    # TTL
    # ------------------------------------------------------------------

    def age_minutes(self, now: Optional[datetime] = None) -> int:
        """Age of the record in whole minutes (negative for future timestamps)."""
        now = ensure_aware(now) if now is not None else utc_now()
        return (now - self.timestamp) // timedelta(minutes=1)

    def is_within_ttl(self, ttl_minutes: int, now: Optional[datetime] = None) -> bool:
        """Return ``True`` if the record may still be served.

        A record exactly *ttl_minutes* old is still fresh. A record from the
        future is stale whatever the TTL.
        """
        now = ensure_aware(now) if now is not None else utc_now()
        if now < self.timestamp:
            return False
        return self.age_minutes(now) <= ttl_minutes

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_persistable(self) -> dict[str, Any]:
        """Return the JSON-ready envelope written to the store."""
        return {
            "datasourceName": self.datasource_name,
            "dataFetcherPath": list(self.fetcher_path),
            "datastreamName": self.stream_name,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }

    @classmethod
    def from_persistable(cls, obj: Any, location: Optional[str] = None) -> CacheRecord:
        """Rebuild a record from the envelope produced by :meth:`to_persistable`.

        Raises:
            CacheReadError: If *obj* is not a well-formed envelope.
        """
        where = f" at {location}" if location else ""
        if not isinstance(obj, Mapping):
            raise CacheReadError(f"Malformed cache record{where}: expected a JSON object")
        try:
            fetcher_path = obj.get("dataFetcherPath") or []
            if isinstance(fetcher_path, str) or not isinstance(fetcher_path, list):
                raise TypeError("dataFetcherPath must be a list")
            return cls(
                source_path=(obj["datasourceName"], *fetcher_path),
                stream_name=obj["datastreamName"],
                timestamp=obj["timestamp"],
                data=obj["data"],
                location=location,
            )
        except (KeyError, TypeError, ValidationError) as exc:
            raise CacheReadError(f"Malformed cache record{where}: {exc}") from exc
