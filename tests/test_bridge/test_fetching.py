"""Tests for Databridge.fetch -- the cache-or-fetch decision."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import pytest

from databridge.bridge import Databridge
from databridge.cache.store import JsonFileStore
from databridge.datasource import Datasource
from databridge.exceptions import (
    CacheReadError,
    CacheWriteError,
    DataFetchError,
    InvalidNameError,
    NotFoundError,
    ProducerInvocationError,
    UnknownSourceError,
    UnsupportedKeyValueError,
)
from databridge.fetch import FetchResponse
from databridge.keys import stream_key_generator
from databridge.models import FetchOptions


class SpyStore(JsonFileStore):
    """A JsonFileStore that records every read and write."""

    def __init__(self, cache_dir: Path) -> None:
        super().__init__(cache_dir)
        self.reads: list[str] = []
        self.writes: list[str] = []

    def read_json(self, location: str) -> Any:
        self.reads.append(location)
        return super().read_json(location)

    def write_json(self, location: str, value: Any) -> None:
        self.writes.append(location)
        super().write_json(location, value)


class BrokenWriteStore(JsonFileStore):
    def write_json(self, location: str, value: Any) -> None:
        raise CacheWriteError(f"Cannot write cache file {location}: disk full")


@pytest.fixture()
def spy_store(cache_dir: Path) -> SpyStore:
    return SpyStore(cache_dir)


def _cache_files(cache_dir: Path) -> list[str]:
    return sorted(p.name for p in cache_dir.glob("*.json"))


# ------------------------------------------------------------------ #
# End-to-end scenarios
# ------------------------------------------------------------------ #


class TestScenarios:
    @pytest.mark.asyncio
    async def test_caching_disabled_always_invokes(
        self, bridge: Databridge, cache_dir: Path, counting_producer
    ) -> None:
        producer = counting_producer(["a", "b"])
        bridge.register("letters", Datasource(producer, enable_caching=False))

        first = await bridge.fetch("letters")
        second = await bridge.fetch("letters")

        assert first.data == second.data == ["a", "b"]
        assert producer.call_count == 2
        assert first.cache_write is None and first.cache_read is None
        assert _cache_files(cache_dir) == []

    @pytest.mark.asyncio
    async def test_second_fetch_served_from_cache(
        self, bridge: Databridge, cache_dir: Path, counting_producer, clock
    ) -> None:
        producer = counting_producer({"x": 1})
        bridge.register("things", Datasource(producer))

        first = await bridge.fetch(["things"])
        assert first.data == {"x": 1}
        assert first.cache_write is not None
        assert first.cache_write.location == str(cache_dir / "things.main.json")
        assert first.cache_write.timestamp == clock.now
        assert first.cache_read is None
        assert _cache_files(cache_dir) == ["things.main.json"]

        clock.advance(minutes=5)
        second = await bridge.fetch(["things"])
        assert second.data == {"x": 1}
        assert second.from_cache
        assert second.cache_read.location == first.cache_write.location
        assert second.cache_read.timestamp == first.cache_write.timestamp
        assert second.cache_write is None
        assert producer.call_count == 1

    @pytest.mark.asyncio
    async def test_bypass_cache_invokes_and_rewrites(
        self, bridge: Databridge, counting_producer, clock
    ) -> None:
        producer = counting_producer({"x": 1})
        bridge.register("things", Datasource(producer))
        await bridge.fetch("things")

        clock.advance(minutes=1)
        second = await bridge.fetch("things", {"bypass_cache": True})

        assert producer.call_count == 2
        assert second.cache_read is None
        assert second.cache_write is not None
        assert second.cache_write.timestamp == clock.now

    @pytest.mark.asyncio
    async def test_unknown_source_fails_before_io(
        self, cache_dir: Path, clock, spy_store: SpyStore
    ) -> None:
        bridge = Databridge(cache_dir=cache_dir, clock=clock, store=spy_store)
        with pytest.raises(UnknownSourceError, match="nosuchsource"):
            await bridge.fetch(["nosuchsource", "daily"], None, [1])
        assert spy_store.reads == []
        assert spy_store.writes == []

    @pytest.mark.asyncio
    async def test_two_arguments_keyed_by_digest(
        self, bridge: Databridge, cache_dir: Path, counting_producer
    ) -> None:
        producer = counting_producer("ok")
        bridge.register("pairs", Datasource(producer))

        response = await bridge.fetch("pairs", None, [1, "x"])

        expected = "p2_" + hashlib.md5(json.dumps([1, "x"]).encode()).hexdigest()
        assert response.stream_name == expected
        assert producer.calls == [(1, "x")]
        assert _cache_files(cache_dir) == [f"pairs.{expected}.json"]


# ------------------------------------------------------------------ #
# TTL
# ------------------------------------------------------------------ #


class TestTTL:
    @pytest.mark.asyncio
    async def test_default_ttl_boundary(self, bridge: Databridge, counting_producer, clock) -> None:
        producer = counting_producer(1)
        bridge.register("rates", Datasource(producer))
        await bridge.fetch("rates")

        clock.advance(minutes=60, seconds=59)
        assert (await bridge.fetch("rates")).from_cache
        assert producer.call_count == 1

        clock.advance(seconds=1)
        response = await bridge.fetch("rates")
        assert not response.from_cache
        assert producer.call_count == 2

    @pytest.mark.asyncio
    async def test_source_ttl_overrides_default(
        self, bridge: Databridge, counting_producer, clock
    ) -> None:
        producer = counting_producer(1)
        bridge.register("rates", Datasource(producer, cache_ttl=5))
        await bridge.fetch("rates")

        clock.advance(minutes=5)
        assert (await bridge.fetch("rates")).from_cache
        clock.advance(minutes=1)
        assert not (await bridge.fetch("rates")).from_cache
        assert producer.call_count == 2

    @pytest.mark.asyncio
    async def test_stale_record_rewritten_with_new_timestamp(
        self, bridge: Databridge, cache_dir: Path, counting_producer, clock
    ) -> None:
        producer = counting_producer({"v": 1})
        bridge.register("rates", Datasource(producer, cache_ttl=1))
        await bridge.fetch("rates")
        clock.advance(minutes=2)
        producer.value = {"v": 2}

        response = await bridge.fetch("rates")

        assert response.data == {"v": 2}
        stored = json.loads((cache_dir / "rates.main.json").read_text(encoding="utf-8"))
        assert stored["data"] == {"v": 2}
        assert stored["timestamp"] == clock.now.isoformat()

    @pytest.mark.asyncio
    async def test_future_record_is_stale(
        self, bridge: Databridge, counting_producer, clock
    ) -> None:
        producer = counting_producer(1)
        bridge.register("rates", Datasource(producer))
        await bridge.fetch("rates")

        clock.advance(minutes=-10)
        assert not (await bridge.fetch("rates")).from_cache
        assert producer.call_count == 2


# ------------------------------------------------------------------ #
# Streams and paths
# ------------------------------------------------------------------ #


class TestStreams:
    @pytest.mark.asyncio
    async def test_streams_cached_separately(
        self, bridge: Databridge, cache_dir: Path, counting_producer
    ) -> None:
        producer = counting_producer("sunny")
        bridge.register("weather", Datasource({"daily": producer}))

        await bridge.fetch(["weather", "daily"], None, ["Dublin"])
        await bridge.fetch(["weather", "daily"], None, ["Cork"])
        await bridge.fetch(["weather", "daily"], None, ["Dublin"])

        assert producer.calls == [("Dublin",), ("Cork",)]
        assert _cache_files(cache_dir) == [
            "weather.daily.s_Cork.json",
            "weather.daily.s_Dublin.json",
        ]

    @pytest.mark.asyncio
    async def test_explicit_stream_name(
        self, bridge: Databridge, cache_dir: Path, counting_producer
    ) -> None:
        bridge.register("rates", Datasource(counting_producer(1)))
        response = await bridge.fetch("rates", FetchOptions(stream_name="latest"), [{"a": 1}])
        assert response.stream_name == "latest"
        assert _cache_files(cache_dir) == ["rates.latest.json"]

    @pytest.mark.asyncio
    async def test_invalid_explicit_stream_name(self, bridge: Databridge, counting_producer) -> None:
        producer = counting_producer(1)
        bridge.register("rates", Datasource(producer))
        with pytest.raises(InvalidNameError):
            await bridge.fetch("rates", {"stream_name": "no way"})
        assert producer.call_count == 0

    @pytest.mark.asyncio
    async def test_custom_generator_sees_args_and_options(
        self, bridge: Databridge, cache_dir: Path
    ) -> None:
        seen: list[tuple[list, FetchOptions]] = []

        def by_city(args, options):
            seen.append((args, options))
            return f"city_{args[0].lower()}_{options.model_extra['units']}"

        @stream_key_generator(by_city)
        def daily(city):
            return {"city": city}

        bridge.register("weather", Datasource({"daily": daily}))
        response = await bridge.fetch(["weather", "daily"], {"units": "metric"}, ["Dublin"])

        assert response.stream_name == "city_dublin_metric"
        assert seen[0][0] == ["Dublin"]
        assert _cache_files(cache_dir) == ["weather.daily.city_dublin_metric.json"]

    @pytest.mark.asyncio
    async def test_failing_generator_is_unsupported_key(self, bridge: Databridge) -> None:
        def explode(args, options):
            raise KeyError("units")

        bridge.register("rates", Datasource(stream_key_generator(explode)(lambda: 1)))
        with pytest.raises(UnsupportedKeyValueError, match="units"):
            await bridge.fetch("rates")

    @pytest.mark.asyncio
    async def test_generator_returning_bad_name(self, bridge: Databridge) -> None:
        bridge.register("rates", Datasource(stream_key_generator(lambda a, o: "x")(lambda: 1)))
        with pytest.raises(InvalidNameError):
            await bridge.fetch("rates")

    @pytest.mark.asyncio
    async def test_unkeyable_argument(self, bridge: Databridge, counting_producer) -> None:
        producer = counting_producer(1)
        bridge.register("rates", Datasource(producer))
        with pytest.raises(UnsupportedKeyValueError):
            await bridge.fetch("rates", None, [lambda: None])
        assert producer.call_count == 0

    @pytest.mark.asyncio
    async def test_missing_producer_path(self, bridge: Databridge, counting_producer) -> None:
        bridge.register("weather", Datasource({"daily": counting_producer(1)}))
        with pytest.raises(NotFoundError):
            await bridge.fetch(["weather", "hourly"])
        with pytest.raises(NotFoundError):
            await bridge.fetch("weather")

    @pytest.mark.asyncio
    async def test_empty_path_rejected(self, bridge: Databridge) -> None:
        with pytest.raises(InvalidNameError):
            await bridge.fetch([])

    @pytest.mark.asyncio
    async def test_async_producer(self, bridge: Databridge) -> None:
        async def load(n):
            await asyncio.sleep(0)
            return list(range(n))

        bridge.register("numbers", Datasource(load))
        response = await bridge.fetch("numbers", None, [3])
        assert response.data == [0, 1, 2]
        assert response.stream_name == "n_3"


# ------------------------------------------------------------------ #
# Failures
# ------------------------------------------------------------------ #


class TestFailures:
    @pytest.mark.asyncio
    async def test_producer_failure_wrapped(self, bridge: Databridge, cache_dir: Path) -> None:
        def broken():
            raise ConnectionError("upstream is down")

        bridge.register("rates", Datasource(broken))
        with pytest.raises(DataFetchError, match="upstream is down") as exc_info:
            await bridge.fetch("rates")

        assert isinstance(exc_info.value.__cause__, ProducerInvocationError)
        assert isinstance(exc_info.value.__cause__.__cause__, ConnectionError)
        assert _cache_files(cache_dir) == []

    @pytest.mark.asyncio
    async def test_malformed_cache_file_is_a_miss(
        self, cache_dir: Path, clock, counting_producer, caplog
    ) -> None:
        errors: list = []
        bridge = Databridge(cache_dir=cache_dir, clock=clock, cache_error_handler=errors.append)
        producer = counting_producer({"ok": True})
        bridge.register("rates", Datasource(producer))
        (cache_dir / "rates.main.json").write_text("{broken", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="databridge.bridge"):
            response = await bridge.fetch("rates")

        assert response.data == {"ok": True}
        assert response.cache_write is not None
        assert producer.call_count == 1
        assert len(errors) == 1 and isinstance(errors[0], CacheReadError)
        assert "Cache problem ignored" in caplog.text

    @pytest.mark.asyncio
    async def test_wrong_shape_cache_file_is_a_miss(
        self, bridge: Databridge, cache_dir: Path, counting_producer
    ) -> None:
        producer = counting_producer(2)
        bridge.register("rates", Datasource(producer))
        (cache_dir / "rates.main.json").write_text('{"data": 1}', encoding="utf-8")

        assert (await bridge.fetch("rates")).data == 2
        assert producer.call_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content",
        [b"\xff\xfe\x00garbage", ("[" * 200000 + "]" * 200000).encode("ascii")],
        ids=["undecodable", "deeply-nested"],
    )
    async def test_corrupt_cache_file_is_a_miss(
        self, cache_dir: Path, clock, counting_producer, content: bytes
    ) -> None:
        errors: list = []
        bridge = Databridge(cache_dir=cache_dir, clock=clock, cache_error_handler=errors.append)
        producer = counting_producer({"ok": True})
        bridge.register("rates", Datasource(producer))
        (cache_dir / "rates.main.json").write_bytes(content)

        response = await bridge.fetch("rates")

        assert response.data == {"ok": True}
        assert response.cache_read is None
        assert response.cache_write is not None
        assert producer.call_count == 1
        assert len(errors) == 1 and isinstance(errors[0], CacheReadError)
        assert json.loads((cache_dir / "rates.main.json").read_text(encoding="utf-8"))["data"] == {
            "ok": True
        }

    @pytest.mark.asyncio
    async def test_write_failure_still_returns_data(
        self, cache_dir: Path, clock, counting_producer, caplog
    ) -> None:
        errors: list = []
        bridge = Databridge(
            cache_dir=cache_dir,
            clock=clock,
            store=BrokenWriteStore(cache_dir),
            cache_error_handler=errors.append,
        )
        bridge.register("rates", Datasource(counting_producer([1, 2])))

        with caplog.at_level(logging.WARNING, logger="databridge.bridge"):
            response = await bridge.fetch("rates")

        assert response.data == [1, 2]
        assert response.cache_write is None
        assert response.stream_name == "main"
        assert len(errors) == 1 and isinstance(errors[0], CacheWriteError)
        assert "disk full" in caplog.text

    @pytest.mark.asyncio
    async def test_unserialisable_payload_not_cached(
        self, bridge: Databridge, cache_dir: Path
    ) -> None:
        marker = object()
        bridge.register("things", Datasource(lambda: {"obj": marker}))
        response = await bridge.fetch("things")
        assert response.data == {"obj": marker}
        assert response.cache_write is None
        assert _cache_files(cache_dir) == []


# ------------------------------------------------------------------ #
# Payload helpers and shortcuts
# ------------------------------------------------------------------ #


class TestPayloadAndShortcuts:
    @pytest.mark.asyncio
    async def test_fetch_payload(self, bridge: Databridge) -> None:
        bridge.register("rates", Datasource(lambda: {"eur": 1}))
        assert await bridge.fetch_payload("rates") == {"eur": 1}
        assert await bridge.fetch_data(["rates"]) == {"eur": 1}

    @pytest.mark.asyncio
    async def test_fetch_response_alias(self, bridge: Databridge) -> None:
        bridge.register("rates", Datasource(lambda: 1))
        assert isinstance(await bridge.fetch_response("rates"), FetchResponse)

    @pytest.mark.asyncio
    async def test_request_recorded(self, bridge: Databridge, clock) -> None:
        source = Datasource({"stats": {"max": lambda city: 14}})
        bridge.register("weather", source)
        response = await bridge.fetch(["weather", "stats", "max"], None, ["Dublin"])

        request = response.request
        assert request.bridge is bridge
        assert request.source is source
        assert request.source_name == "weather"
        assert request.fetcher_path == ("stats", "max")
        assert request.args == ("Dublin",)
        assert request.timestamp == clock.now
        assert request.options == FetchOptions()

    @pytest.mark.asyncio
    async def test_nested_shortcut_matches_fetch(
        self, bridge: Databridge, cache_dir: Path, counting_producer
    ) -> None:
        producer = counting_producer(14)
        bridge.register("weather", Datasource({"stats": {"max": producer}}))

        assert await bridge.weather.stats.max("Dublin") == 14
        assert await bridge.fetch_payload(["weather", "stats", "max"], None, ["Dublin"]) == 14
        assert producer.call_count == 1
        assert _cache_files(cache_dir) == ["weather.stats.max.s_Dublin.json"]

    @pytest.mark.asyncio
    async def test_shortcut_passes_fetch_options(
        self, bridge: Databridge, counting_producer
    ) -> None:
        producer = counting_producer(1)
        bridge.register("rates", Datasource(producer))
        await bridge.rates()
        await bridge.shortcuts.rates(bypass_cache=True)
        assert producer.call_count == 2

    @pytest.mark.asyncio
    async def test_records_shared_between_bridges(
        self, cache_dir: Path, clock, counting_producer
    ) -> None:
        first = counting_producer(1)
        second = counting_producer(2)
        bridge_a = Databridge(cache_dir=cache_dir, clock=clock).register("rates", Datasource(first))
        bridge_b = Databridge(cache_dir=cache_dir, clock=clock).register("rates", Datasource(second))

        await bridge_a.fetch("rates")
        response = await bridge_b.fetch("rates")

        assert response.data == 1
        assert second.call_count == 0
