"""Cache commands -- read-only views of a bridge's JSON cache.

Provides the ``databridge cache`` sub-command group. Both commands resolve the
cache directory through :func:`~databridge.config.resolve_bridge_config` and
read records with :class:`~databridge.cache.store.JsonFileStore`; nothing is
ever written or deleted.

Freshness in ``cache list`` is judged against the bridge default TTL, since
per-source TTL overrides live in application code, not in the cache.
"""

from __future__ import annotations

from typing import Optional

import typer

from databridge.cache import CacheRecord, JsonFileStore
from databridge.cache.record import utc_now
from databridge.exceptions import CacheReadError, DatabridgeError
from databridge.exit_codes import EXIT_NOT_FOUND
from databridge.models import BridgeConfig
from databridge.output import error, format_data, info, print_table, warning


cache_app = typer.Typer(no_args_is_help=True)


def _open_store(ctx: typer.Context) -> tuple[BridgeConfig, JsonFileStore]:
    """Resolve the configuration from ``ctx.obj`` and open the store.

    Raises:
        typer.Exit: With the error's exit code when the configuration is
            invalid (e.g. the cache directory does not exist).
    """
    from databridge.config import resolve_bridge_config

    obj = ctx.obj or {}
    try:
        config = resolve_bridge_config(obj.get("cache_dir"), obj.get("ttl"))
    except DatabridgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    return config, JsonFileStore(config.cache_dir)


def _load_records(store: JsonFileStore) -> list[CacheRecord]:
    records = []
    for location in store.iter_locations():
        try:
            records.append(CacheRecord.from_persistable(store.read_json(location), location))
        except CacheReadError as exc:
            warning(f"Skipping unreadable cache file: {exc}")
    return records


@cache_app.command("list")
def cache_list(
    ctx: typer.Context,
    source: Optional[str] = typer.Argument(
        None, help="Only list records of this datasource."
    ),
) -> None:
    """List cached records with their age and freshness.

    Example::

        databridge --cache-dir ./cache cache list
        databridge --json cache list weather
    """
    config, store = _open_store(ctx)
    now = utc_now()
    ttl = config.default_cache_ttl

    rows = []
    for record in _load_records(store):
        if source is not None and record.datasource_name != source:
            continue
        rows.append(
            [
                record.datasource_name,
                ".".join(record.fetcher_path) or "-",
                record.stream_name,
                record.timestamp.isoformat(),
                str(record.age_minutes(now)),
                "fresh" if record.is_within_ttl(ttl, now) else "stale",
            ]
        )

    if not rows:
        info(f"No cached records in {config.cache_dir}")
        return

    print_table(
        ["Source", "Path", "Stream", "Written", "Age (min)", f"TTL {ttl} min"],
        rows,
        title=f"Cache: {config.cache_dir}",
    )


@cache_app.command("show")
def cache_show(
    ctx: typer.Context,
    path: str = typer.Argument(
        help="Datasource name and producer path, dot separated (e.g. 'weather.stats.max')."
    ),
    stream: str = typer.Option("main", "--stream", "-s", help="Stream name."),
    envelope: bool = typer.Option(
        False, "--envelope", help="Print the whole cache record, not only the payload."
    ),
) -> None:
    """Print the payload of one cached record.

    Example::

        databridge cache show weather.daily --stream s_Dublin
    """
    from databridge.names import normalize_name_path, validate_name

    _, store = _open_store(ctx)
    try:
        source_path = normalize_name_path(path.split("."))
        validate_name(stream, "stream name")
        location = store.location_for(source_path, stream)
        raw = store.read_json(location)
        if raw is None:
            error(f"No cached record for {path} stream {stream}")
            raise typer.Exit(code=EXIT_NOT_FOUND)
        record = CacheRecord.from_persistable(raw, location)
    except DatabridgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"{location} written {record.timestamp.isoformat()} ({record.age_minutes()} min ago)")
    format_data(record.to_persistable() if envelope else record.data)
