"""
Generation job API.

Jobs are created with ``POST /predictions`` and polled with
``GET /predictions/{id}`` on a Replicate-compatible endpoint.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import aiohttp

from .errors import GenerationAPIError

logger = logging.getLogger(__name__)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After header.

    Accepts delta-seconds or an HTTP date. Returns None when absent or
    unparseable.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class GenerationJobAPI(ABC):
    """Job API contract used by the GenerationJobClient."""

    @abstractmethod
    async def create(self, version: str, input: dict[str, Any]) -> dict[str, Any]:
        """
        Create a job.

        Returns:
            Job data containing at least ``id``

        Raises:
            GenerationAPIError: On an HTTP error (422 bad params, 429 rate limited)
        """
        pass

    @abstractmethod
    async def status(self, job_id: str) -> dict[str, Any]:
        """
        Fetch job status.

        Returns:
            Job data with ``status`` (starting|processing|succeeded|failed|canceled),
            and ``output`` or ``error``
        """
        pass

    async def close(self) -> None:
        pass


class ReplicateJobAPI(GenerationJobAPI):
    """Replicate predictions endpoint over aiohttp."""

    def __init__(
        self,
        api_token: str,
        base_url: str = "https://api.replicate.com/v1",
        timeout_s: float = 30.0,
    ):
        """
        Initialize API client.

        Args:
            api_token: Replicate API token
            base_url: API root
            timeout_s: Total timeout per request
        """
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "ReplicateJobAPI":
        self._ensure_session()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Authorization": f"Token {self.api_token}",
                    "Content-Type": "application/json",
                }
            )
        return self._session

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def create(self, version: str, input: dict[str, Any]) -> dict[str, Any]:
        data = await self._request("POST", "/predictions", {"version": version, "input": input})
        if "id" not in data:
            raise GenerationAPIError("Job creation response has no id", status=0)
        logger.debug(f"Created generation job {data['id']}")
        return data

    async def status(self, job_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/predictions/{job_id}")

    async def _request(
        self, method: str, path: str, body: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Send one request.

        Raises:
            GenerationAPIError: On a non-2xx answer or a malformed body
            aiohttp.ClientError, asyncio.TimeoutError: On transport failures
        """
        session = self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)
        async with session.request(
            method, f"{self.base_url}{path}", json=body, timeout=timeout
        ) as resp:
            if resp.status >= 400:
                detail = await resp.text()
                raise GenerationAPIError(
                    f"{method} {path} failed with {resp.status}: {detail[:200]}",
                    status=resp.status,
                    retry_after=parse_retry_after(resp.headers.get("Retry-After")),
                )
            try:
                data = await resp.json()
            except (aiohttp.ContentTypeError, ValueError) as e:
                raise GenerationAPIError(f"Malformed response from {path}: {e}", status=resp.status)
        if not isinstance(data, dict):
            raise GenerationAPIError(f"Unexpected response from {path}", status=resp.status)
        return data
