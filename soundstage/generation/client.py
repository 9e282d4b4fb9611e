"""
Generation job client.

Submits generation jobs, polls them to completion with an adaptive
interval and caches results by key. Rate limiting is backed off and
reported through ``GenerationResult.rate_limited`` instead of failing the
call.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from soundstage.config import GenerationConfig, GenerationParams

from .api import GenerationJobAPI
from .cache import TTLCache
from .errors import (
    GenerationAPIError,
    GenerationCancelled,
    GenerationFailed,
    GenerationTimeout,
    RateLimitExceeded,
)
from .prompts import generation_input

logger = logging.getLogger(__name__)

# Log polling progress every N status checks
PROGRESS_LOG_EVERY = 15


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of a generation request."""

    key: str
    output_locator: str
    rate_limited: bool = False
    job_id: str = ""
    version: str = ""
    cached: bool = False
    submitted_at: float = 0.0


@dataclass
class _Job:
    """In-flight bookkeeping for one submission."""

    key: str
    aborted: bool = False
    rate_limited: bool = False
    consecutive_errors: int = 0
    job_id: str = ""


class GenerationJobClient:
    """
    Client for the asynchronous generation job API.

    Results are cached by ``"<key>:<model_version>"`` for
    ``cache_ttl_s``. Concurrent submissions under one key are not
    deduplicated; the last one to finish wins the cache slot.
    """

    def __init__(
        self,
        api: GenerationJobAPI,
        config: Optional[GenerationConfig] = None,
        cache: Optional[TTLCache] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or GenerationConfig()
        self._api = api
        self._cache: TTLCache = cache or TTLCache(self.config.cache_ttl_s)
        self._rng = rng or random.Random()
        self._jobs: dict[str, _Job] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    @property
    def cache(self) -> TTLCache:
        return self._cache

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start the periodic cache sweep."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def close(self) -> None:
        """Stop the cache sweep and close the API session."""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        await self._api.close()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.sweep_interval_s)
            if len(self._cache) > self.config.sweep_threshold:
                removed = self._cache.sweep()
                logger.debug(f"Generation cache sweep removed {removed} entries")

    # =========================================================================
    # Submission
    # =========================================================================

    def params_for(self, kind: str) -> GenerationParams:
        return self.config.ambience if kind == "ambience" else self.config.music

    def cache_key(self, key: str, kind: str = "music") -> str:
        return f"{key}:{self.params_for(kind).model_version}"

    async def submit(
        self,
        key: str,
        kind: str = "music",
        input: Optional[dict[str, Any]] = None,
    ) -> GenerationResult:
        """
        Generate audio for ``key``, or return the cached result.

        Args:
            key: Mood or ambience type
            kind: "music" or "ambience"
            input: Job input; built from the prompt templates when omitted

        Returns:
            The finished result; ``rate_limited`` is set if any request was
            throttled on the way

        Raises:
            GenerationTimeout: Polling ceiling reached
            GenerationFailed: Unknown ambience type, job failed, or the API kept erroring
            GenerationCancelled: ``cancel`` was called for this key
            RateLimitExceeded: Still throttled after every retry
        """
        cache_key = self.cache_key(key, kind)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.info(f"Using cached generation result for {cache_key}")
            return replace(cached, cached=True, rate_limited=False)

        if input is None:
            try:
                input = generation_input(kind, key, self.params_for(kind))
            except KeyError:
                raise GenerationFailed(f"Unknown {kind} type: {key}")

        job = _Job(key=cache_key)
        self._jobs[cache_key] = job
        submitted_at = time.time()
        version = self.config.model_version
        try:
            try:
                locator = await self._run(version, input, job)
            except GenerationAPIError as e:
                if e.status != 422:
                    raise GenerationFailed(f"Generation request failed: {e}")
                logger.warning(
                    f"Model version rejected (422), retrying with fallback {self.config.fallback_version}"
                )
                version = self.config.fallback_version
                try:
                    locator = await self._run(version, input, job)
                except GenerationAPIError as fallback_error:
                    raise GenerationFailed(f"Fallback generation failed: {fallback_error}")
        finally:
            if self._jobs.get(cache_key) is job:
                del self._jobs[cache_key]

        result = GenerationResult(
            key=key,
            output_locator=locator,
            rate_limited=job.rate_limited,
            job_id=job.job_id,
            version=version,
            submitted_at=submitted_at,
        )
        self._cache.set(cache_key, result)
        logger.info(f"Generation for {cache_key} complete: {locator}")
        return result

    def cancel(self, key: str, kind: str = "music") -> bool:
        """
        Abort the in-flight job for a key at its next poll tick.

        Returns:
            True if a job was in flight
        """
        job = self._jobs.get(self.cache_key(key, kind))
        if job is None:
            return False
        job.aborted = True
        logger.info(f"Cancelling generation for {job.key}")
        return True

    def in_flight(self) -> list[str]:
        return list(self._jobs)

    # =========================================================================
    # Job execution
    # =========================================================================

    async def _run(self, version: str, input: dict[str, Any], job: _Job) -> str:
        created = await self._request(lambda: self._api.create(version, input), job, "create")
        job.job_id = str(created["id"])
        return await self._poll(job)

    async def _poll(self, job: _Job) -> str:
        attempt = 0
        waited = 0.0
        while waited < self.config.max_wait_s:
            delay = self.poll_delay(attempt)
            await self._sleep(delay)
            waited += delay
            self._check_abort(job)

            data = await self._request(lambda: self._api.status(job.job_id), job, "status")
            attempt += 1
            state = data.get("status")

            if state == "succeeded":
                output = data.get("output")
                if isinstance(output, list):
                    output = output[0] if output else None
                if not output:
                    raise GenerationFailed(f"Job {job.job_id} succeeded without output")
                logger.debug(f"Job {job.job_id} finished after {attempt} status checks")
                return str(output)
            if state in ("failed", "canceled"):
                raise GenerationFailed(f"Generation failed: {data.get('error') or state}")

            if attempt % PROGRESS_LOG_EVERY == 0:
                logger.info(f"Waiting for generation {job.job_id}... check {attempt} ({state})")

        raise GenerationTimeout(
            f"Generation {job.job_id} timed out after {int(self.config.max_wait_s)} seconds"
        )

    async def _request(
        self,
        call: Callable[[], Awaitable[dict[str, Any]]],
        job: _Job,
        what: str,
    ) -> dict[str, Any]:
        """
        Run one API call with rate-limit backoff and the error circuit breaker.

        422 and other 4xx errors are raised to the caller unchanged.
        """
        rate_retries = 0
        while True:
            self._check_abort(job)
            try:
                result = await call()
            except GenerationAPIError as e:
                if e.status == 429:
                    if rate_retries >= self.config.rate_limit_max_retries:
                        raise RateLimitExceeded(
                            f"Rate limited on {what} after {rate_retries} retries"
                        )
                    delay = self.backoff_delay(rate_retries, e.retry_after)
                    rate_retries += 1
                    job.rate_limited = True
                    logger.warning(f"Rate limited on {what}, retrying in {delay:.1f}s")
                    await self._sleep(delay)
                    continue
                if e.status >= 500 or e.status == 0:
                    await self._record_error(job, what, e)
                    continue
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                await self._record_error(job, what, e)
                continue

            job.consecutive_errors = 0
            return result

    async def _record_error(self, job: _Job, what: str, error: Exception) -> None:
        job.consecutive_errors += 1
        limit = self.config.max_consecutive_errors
        logger.error(f"Error on {what} ({job.consecutive_errors}/{limit}): {error}")
        if job.consecutive_errors >= limit:
            raise GenerationFailed(f"Too many consecutive errors on {what}: {error}")
        await self._sleep(self.backoff_delay(job.consecutive_errors - 1, None, jitter=False))

    def _check_abort(self, job: _Job) -> None:
        if job.aborted:
            raise GenerationCancelled(f"Generation for {job.key} was cancelled")

    # =========================================================================
    # Timing
    # =========================================================================

    def poll_delay(self, attempt: int) -> float:
        """Delay before status check number ``attempt`` (0-based)."""
        cfg = self.config
        if attempt < cfg.poll_fast_count:
            return cfg.poll_fast_interval_s
        if attempt < cfg.poll_medium_count:
            return cfg.poll_medium_interval_s
        return cfg.poll_slow_interval_s

    def backoff_delay(
        self, attempt: int, retry_after: Optional[float] = None, jitter: bool = True
    ) -> float:
        """
        Exponential backoff, honoring a server retry hint, capped, plus jitter.
        """
        cfg = self.config
        base = retry_after if retry_after is not None else cfg.rate_limit_base_delay_s * (2**attempt)
        delay = min(base, cfg.rate_limit_max_delay_s)
        if jitter and cfg.rate_limit_jitter_s > 0:
            delay += self._rng.uniform(0, cfg.rate_limit_jitter_s)
        return delay

    async def _sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)
