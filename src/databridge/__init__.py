"""databridge -- named data producers behind a TTL-based JSON file cache.

Register producer functions (or namespace trees of them) with a
:class:`Databridge`, then fetch their results through one interface. Results
are written to one JSON file per datasource and argument stream, and served
from there until the TTL runs out.

Typical use::

    from databridge import Databridge, Datasource

    bridge = Databridge(cache_dir="./cache", default_cache_ttl=30)
    bridge.register("rates", Datasource(load_rates, cache_ttl=5))

    response = await bridge.fetch("rates", {}, ["EUR"])
    response.data, response.cache_read, response.cache_write

Modules:
    bridge: The :class:`Databridge` orchestrator and its shortcut facade.
    datasource: :class:`Datasource` and the producer tree.
    keys: Stream name derivation from producer arguments.
    names: The Name grammar for sources, paths and streams.
    cache: Cache records and stores.
    fetch: :class:`FetchRequest` / :class:`FetchResponse`.
    models: Pydantic configuration models.
    config: File and environment based configuration resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    app: The ``databridge`` cache inspection command line.
"""

__version__ = "0.1.0"

from databridge.bridge import Databridge
from databridge.cache import CacheRecord, DiskCacheStore, JsonFileStore
from databridge.datasource import Datasource
from databridge.fetch import FetchRequest, FetchResponse
from databridge.keys import generate_stream_name, stream_key_generator
from databridge.models import BridgeConfig, DatasourceOptions, FetchOptions

__all__ = [
    "BridgeConfig",
    "CacheRecord",
    "Databridge",
    "Datasource",
    "DatasourceOptions",
    "DiskCacheStore",
    "FetchOptions",
    "FetchRequest",
    "FetchResponse",
    "JsonFileStore",
    "generate_stream_name",
    "stream_key_generator",
]
