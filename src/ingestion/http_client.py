"""
HTTP infrastructure for collectors.

Provides:
- RetryConfig: attempt budget, linear backoff and the forced 429 wait
- HTTPClient: async client that applies that policy to every request

Retry policy, per request:
- up to `max_attempts` tries
- HTTP 429 waits min(max_rate_limit_wait, base_delay * 2^attempt) and tries again
- any other failure (transport error, non-2xx) waits base_delay * attempt
- the failure of the final attempt is raised as HTTPClientError
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Retry budget and delays (seconds) for one request."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_rate_limit_wait: float = 60.0

    def calculate_backoff(self, attempt: int) -> float:
        """Linear backoff after failed attempt number `attempt` (1-indexed)."""
        return self.base_delay * attempt

    def rate_limit_wait(self, attempt: int) -> float:
        """Forced wait after a 429 on attempt number `attempt` (1-indexed)."""
        return min(self.max_rate_limit_wait, self.base_delay * (2**attempt))


class HTTPClientError(Exception):
    """Base exception for HTTP client errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(HTTPClientError):
    """Raised when the final attempt was answered with 429."""

    pass


class HTTPClient:
    """
    Async HTTP client with retry logic.

    Example:
        async with HTTPClient(RetryConfig(max_attempts=3)) as client:
            response = await client.get("https://api.example.com/coins")
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ):
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self.headers = headers or {}
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers=self.headers,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Perform GET request with retry logic."""
        return await self.request("GET", url, params=params, headers=headers)

    async def post(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> httpx.Response:
        """Perform POST request with retry logic."""
        return await self.request(
            "POST", url, params=params, headers=headers, json_body=json_body
        )

    async def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> httpx.Response:
        """
        Execute an HTTP request under the retry policy.

        Returns:
            The first 2xx response

        Raises:
            RateLimitError: The last attempt was rate limited
            HTTPClientError: Any other failure once attempts are exhausted
        """
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        method = method.upper()
        if method not in ("GET", "POST"):
            raise ValueError(f"Unsupported HTTP method: {method}")

        max_attempts = self.retry_config.max_attempts
        last_error: HTTPClientError | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                response = await self._client.request(
                    method,
                    url,
                    params=params or None,
                    headers=headers or None,
                    json=json_body if method == "POST" else None,
                )
            except httpx.HTTPError as e:
                last_error = HTTPClientError(f"Request to {url} failed: {e}")
            else:
                if response.status_code == 429:
                    last_error = RateLimitError(
                        f"Rate limited by {url}",
                        status_code=429,
                        response_body=response.text,
                    )
                    if attempt < max_attempts:
                        wait = self.retry_config.rate_limit_wait(attempt)
                        logger.warning(
                            f"Rate limited by {url}, attempt {attempt}/{max_attempts}, "
                            f"waiting {wait:.1f}s"
                        )
                        await asyncio.sleep(wait)
                    continue

                if response.is_success:
                    return response

                last_error = HTTPClientError(
                    f"HTTP {response.status_code} from {url}",
                    status_code=response.status_code,
                    response_body=response.text,
                )

            if attempt < max_attempts:
                backoff = self.retry_config.calculate_backoff(attempt)
                logger.warning(
                    f"{last_error}, attempt {attempt}/{max_attempts}, "
                    f"backing off {backoff:.1f}s"
                )
                await asyncio.sleep(backoff)

        assert last_error is not None
        raise last_error
