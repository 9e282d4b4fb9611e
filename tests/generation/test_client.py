"""Tests for the generation job client."""

import asyncio
import random
from typing import Any
from unittest.mock import MagicMock

import aiohttp
import pytest

from soundstage.config import GenerationConfig
from soundstage.generation import (
    GenerationAPIError,
    GenerationCancelled,
    GenerationFailed,
    GenerationJobAPI,
    GenerationJobClient,
    GenerationTimeout,
    RateLimitExceeded,
    TTLCache,
)

OUTPUT_URL = "https://cdn.example.com/out.mp3"


class FakeJobAPI(GenerationJobAPI):
    """
    Scripted job API.

    ``create_script`` and ``status_script`` are consumed one entry per call;
    an entry is either a response dict or an exception to raise. The last
    status entry repeats once the script runs out.
    """

    def __init__(self, create_script=None, status_script=None):
        self.create_script = list(create_script or [{"id": "job-1"}])
        self.status_script = list(status_script or [{"status": "succeeded", "output": OUTPUT_URL}])
        self.creates: list[tuple[str, dict[str, Any]]] = []
        self.status_calls = 0
        self.closed = False

    @staticmethod
    def _next(script: list) -> Any:
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def create(self, version: str, input: dict[str, Any]) -> dict[str, Any]:
        self.creates.append((version, input))
        return self._next(self.create_script)

    async def status(self, job_id: str) -> dict[str, Any]:
        self.status_calls += 1
        return self._next(self.status_script)

    async def close(self) -> None:
        self.closed = True


def _rate_limited(retry_after=None) -> GenerationAPIError:
    return GenerationAPIError("Too Many Requests", status=429, retry_after=retry_after)


@pytest.fixture
def config() -> GenerationConfig:
    return GenerationConfig(
        model_version="configured-version",
        fallback_version="public-version",
        poll_fast_interval_s=1.0,
        poll_fast_count=10,
        poll_medium_interval_s=5.0,
        poll_medium_count=60,
        poll_slow_interval_s=10.0,
        max_wait_s=1200.0,
        max_consecutive_errors=3,
        rate_limit_max_retries=3,
        rate_limit_base_delay_s=1.0,
        rate_limit_max_delay_s=60.0,
        rate_limit_jitter_s=1.0,
    )


def _client(api: FakeJobAPI, config: GenerationConfig, cache: TTLCache = None):
    """Client whose sleeps are recorded instead of awaited."""
    client = GenerationJobClient(api, config, cache=cache, rng=random.Random(7))
    sleeps: list[float] = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)
        await asyncio.sleep(0)

    client._sleep = fake_sleep
    return client, sleeps


class TestSubmit:
    """Test the happy path and caching."""

    async def test_success(self, config: GenerationConfig) -> None:
        api = FakeJobAPI(
            status_script=[
                {"status": "starting"},
                {"status": "processing"},
                {"status": "succeeded", "output": [OUTPUT_URL]},
            ]
        )
        client, _ = _client(api, config)

        result = await client.submit("battle")

        assert result.output_locator == OUTPUT_URL
        assert result.rate_limited is False
        assert result.job_id == "job-1"
        assert result.version == "configured-version"
        assert api.status_calls == 3

    async def test_input_built_from_prompts(self, config: GenerationConfig) -> None:
        api = FakeJobAPI()
        client, _ = _client(api, config)

        await client.submit("forest", kind="ambience")

        version, job_input = api.creates[0]
        assert version == "configured-version"
        assert "forest" in job_input["prompt"].lower()
        assert job_input["model_version"] == config.ambience.model_version
        assert job_input["output_format"] == "mp3"

    async def test_cached_within_ttl(self, config: GenerationConfig) -> None:
        api = FakeJobAPI()
        client, _ = _client(api, config)

        first = await client.submit("battle")
        second = await client.submit("battle")

        assert len(api.creates) == 1
        assert second.cached is True
        assert second.output_locator == first.output_locator

    async def test_resubmits_after_ttl(self, config: GenerationConfig) -> None:
        now = [1000.0]
        cache = TTLCache(600.0, clock=lambda: now[0])
        api = FakeJobAPI()
        client, _ = _client(api, config, cache=cache)

        await client.submit("battle")
        now[0] += 601.0
        result = await client.submit("battle")

        assert len(api.creates) == 2
        assert result.cached is False

    def test_cache_key_includes_model_version(self, config: GenerationConfig) -> None:
        client, _ = _client(FakeJobAPI(), config)

        assert client.cache_key("battle") == f"battle:{config.music.model_version}"
        assert client.cache_key("cave", "ambience") == f"cave:{config.ambience.model_version}"

    async def test_job_failure(self, config: GenerationConfig) -> None:
        api = FakeJobAPI(status_script=[{"status": "failed", "error": "CUDA out of memory"}])
        client, _ = _client(api, config)

        with pytest.raises(GenerationFailed, match="CUDA"):
            await client.submit("battle")
        assert client.in_flight() == []

    async def test_unknown_ambience_type(self, config: GenerationConfig) -> None:
        api = FakeJobAPI()
        client, _ = _client(api, config)

        with pytest.raises(GenerationFailed, match="Unknown ambience type: rainforest"):
            await client.submit("rainforest", kind="ambience")
        assert api.creates == []
        assert client.in_flight() == []

    async def test_success_without_output(self, config: GenerationConfig) -> None:
        api = FakeJobAPI(status_script=[{"status": "succeeded", "output": []}])
        client, _ = _client(api, config)

        with pytest.raises(GenerationFailed):
            await client.submit("battle")


class TestPolling:
    """Test adaptive poll intervals and the wait ceiling."""

    def test_poll_delay_tiers(self, config: GenerationConfig) -> None:
        client, _ = _client(FakeJobAPI(), config)

        assert client.poll_delay(0) == 1.0
        assert client.poll_delay(9) == 1.0
        assert client.poll_delay(10) == 5.0
        assert client.poll_delay(59) == 5.0
        assert client.poll_delay(60) == 10.0

    async def test_timeout_after_ceiling(self, config: GenerationConfig) -> None:
        api = FakeJobAPI(status_script=[{"status": "processing"}])
        client, sleeps = _client(api, config)

        with pytest.raises(GenerationTimeout):
            await client.submit("battle")

        assert sum(sleeps) >= config.max_wait_s
        assert sum(sleeps) - sleeps[-1] < config.max_wait_s

    async def test_cancel_aborts_at_next_tick(self, config: GenerationConfig) -> None:
        api = FakeJobAPI(status_script=[{"status": "processing"}])
        client, _ = _client(api, config)

        task = asyncio.create_task(client.submit("battle"))
        for _ in range(5):
            await asyncio.sleep(0)
        assert client.cancel("battle") is True

        with pytest.raises(GenerationCancelled):
            await task
        assert client.cancel("battle") is False


class TestRateLimiting:
    """Test 429 backoff."""

    def test_backoff_honors_retry_after(self, config: GenerationConfig) -> None:
        client, _ = _client(FakeJobAPI(), config)

        for _ in range(20):
            delay = client.backoff_delay(0, retry_after=2.0)
            assert 2.0 <= delay <= 2.0 + config.rate_limit_jitter_s

    def test_backoff_exponential_and_capped(self, config: GenerationConfig) -> None:
        client, _ = _client(FakeJobAPI(), config)

        assert client.backoff_delay(0, jitter=False) == 1.0
        assert client.backoff_delay(3, jitter=False) == 8.0
        assert client.backoff_delay(10, jitter=False) == 60.0
        assert client.backoff_delay(0, retry_after=300.0, jitter=False) == 60.0

    async def test_retry_after_wait(self, config: GenerationConfig) -> None:
        api = FakeJobAPI(create_script=[_rate_limited(2.0), {"id": "job-1"}])
        client, sleeps = _client(api, config)

        result = await client.submit("battle")

        assert result.rate_limited is True
        assert 2.0 <= sleeps[0] <= 3.0
        assert len(api.creates) == 2

    async def test_battle_rate_limited_twice_then_succeeds(self, config: GenerationConfig) -> None:
        api = FakeJobAPI(
            status_script=[
                _rate_limited(),
                _rate_limited(),
                {"status": "succeeded", "output": OUTPUT_URL},
            ]
        )
        client, _ = _client(api, config)

        result = await client.submit("battle")

        assert result.rate_limited is True
        assert result.output_locator == OUTPUT_URL
        assert api.status_calls == 3

    async def test_retries_exhausted(self, config: GenerationConfig) -> None:
        api = FakeJobAPI(create_script=[_rate_limited(1.0)])
        client, sleeps = _client(api, config)

        with pytest.raises(RateLimitExceeded) as exc_info:
            await client.submit("battle")

        assert exc_info.value.rate_limited is True
        assert len(api.creates) == config.rate_limit_max_retries + 1
        assert len(sleeps) == config.rate_limit_max_retries


class TestFallbackAndErrors:
    """Test 422 fallback and the error circuit breaker."""

    async def test_422_retries_with_fallback_version(self, config: GenerationConfig) -> None:
        api = FakeJobAPI(
            create_script=[
                GenerationAPIError("Invalid version", status=422),
                {"id": "job-2"},
            ]
        )
        client, _ = _client(api, config)

        result = await client.submit("battle")

        assert [version for version, _ in api.creates] == ["configured-version", "public-version"]
        assert result.version == "public-version"
        assert result.job_id == "job-2"

    async def test_422_fallback_only_once(self, config: GenerationConfig) -> None:
        api = FakeJobAPI(create_script=[GenerationAPIError("Invalid version", status=422)])
        client, _ = _client(api, config)

        with pytest.raises(GenerationFailed):
            await client.submit("battle")
        assert len(api.creates) == 2

    async def test_other_client_errors_fail(self, config: GenerationConfig) -> None:
        api = FakeJobAPI(create_script=[GenerationAPIError("Unauthorized", status=401)])
        client, _ = _client(api, config)

        with pytest.raises(GenerationFailed):
            await client.submit("battle")
        assert len(api.creates) == 1

    async def test_transient_errors_recover(self, config: GenerationConfig) -> None:
        api = FakeJobAPI(
            status_script=[
                aiohttp.ClientConnectionError("reset"),
                GenerationAPIError("Bad Gateway", status=502),
                {"status": "succeeded", "output": OUTPUT_URL},
            ]
        )
        client, _ = _client(api, config)

        result = await client.submit("battle")

        assert result.output_locator == OUTPUT_URL

    async def test_circuit_breaker(self, config: GenerationConfig) -> None:
        api = FakeJobAPI(status_script=[asyncio.TimeoutError()])
        client, _ = _client(api, config)

        with pytest.raises(GenerationFailed, match="consecutive"):
            await client.submit("battle")
        assert api.status_calls == config.max_consecutive_errors


class TestLifecycle:
    """Test start/close and the cache sweep."""

    async def test_close_closes_api(self, config: GenerationConfig) -> None:
        api = FakeJobAPI()
        client, _ = _client(api, config)
        await client.start()

        await client.close()

        assert api.closed

    async def test_sweep_runs_above_threshold(self, config: GenerationConfig) -> None:
        config.sweep_interval_s = 0.01
        config.sweep_threshold = 1
        cache = MagicMock(spec=TTLCache)
        cache.__len__.return_value = 5
        cache.sweep.return_value = 4
        client = GenerationJobClient(FakeJobAPI(), config, cache=cache)

        await client.start()
        await asyncio.sleep(0.05)
        await client.close()

        assert cache.sweep.called
