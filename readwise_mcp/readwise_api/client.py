"""
Thin HTTP client for the Readwise MCP endpoints.

Every call goes through a retry policy and maps failures to a small exception
family. The exceptions carry the structured cause (status code, attempts) for
logging; callers only need to know that the call failed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from readwise_mcp.config import ReadwiseConfig, default_config
from readwise_mcp.metrics import default_metrics

logger = logging.getLogger(__name__)

INITIALIZE_PATH = "/api/mcp/initialize"
HIGHLIGHTS_PATH = "/api/mcp/highlights"
ACCESS_TOKEN_HEADER = "X-Access-Token"


class ReadwiseApiError(Exception):
    """Base exception for Readwise API errors."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts


class ReadwiseUnreachableError(ReadwiseApiError):
    """Raised when no response was received from Readwise."""


class UnexpectedResponseError(ReadwiseApiError):
    """Raised when Readwise answers 2xx with a body we cannot use."""


RetryPredicate = Callable[[Optional[httpx.Response]], bool]


def retry_on_error_status(response: Optional[httpx.Response]) -> bool:
    """
    Retry when no response arrived or the status is 400 or above.

    Client errors are retried too, even though a resend cannot fix them. Swap
    the predicate on ``RetryPolicy`` to change that.
    """
    return response is None or response.status_code >= 400


def retry_on_server_error(response: Optional[httpx.Response]) -> bool:
    """Retry only on transport failures and 5xx statuses."""
    return response is None or response.status_code >= 500


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Fixed-delay retry policy applied to every upstream call."""

    retries: int = 3
    delay: float = 5.0
    should_retry: RetryPredicate = retry_on_error_status

    @classmethod
    def from_config(cls, config: ReadwiseConfig) -> "RetryPolicy":
        return cls(retries=config.retries, delay=config.retry_delay)


class ReadwiseApiClient:
    """Async client for the Readwise MCP API surface."""

    def __init__(
        self,
        config: ReadwiseConfig | None = None,
        *,
        async_client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or default_config
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config)
        self._client: Optional[httpx.AsyncClient] = async_client
        self._owns_client = async_client is None
        self._sleep = sleep

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _build_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.config.access_token:
            headers[ACCESS_TOKEN_HEADER] = self.config.access_token
        return headers

    async def _post(self, path: str, payload: Optional[Dict[str, Any]] = None) -> httpx.Response:
        client = await self._get_client()
        headers = self._build_headers()
        policy = self.retry_policy
        attempt = 0
        while True:
            attempt += 1
            response: Optional[httpx.Response] = None
            transport_error: Optional[httpx.RequestError] = None
            try:
                response = await client.post(path, json=payload, headers=headers)
            except httpx.RequestError as exc:
                transport_error = exc

            if not policy.should_retry(response):
                if response is None:
                    # Predicate declined to retry a transport failure.
                    break
                if response.status_code < 400:
                    return response
                break

            if attempt > policy.retries:
                break

            logger.warning(
                "readwise request failed path=%s attempt=%s status=%s, retrying in %ss",
                path,
                attempt,
                response.status_code if response is not None else None,
                policy.delay,
                extra={
                    "attempt": attempt,
                    "status_code": response.status_code if response is not None else None,
                    "error": type(transport_error).__name__ if transport_error else None,
                },
            )
            default_metrics.incr_upstream_retry()
            await self._sleep(policy.delay)

        default_metrics.incr_upstream_failure()
        if response is None:
            logger.error(
                "readwise unreachable path=%s attempts=%s error=%r",
                path,
                attempt,
                transport_error,
                extra={"attempt": attempt, "error": type(transport_error).__name__},
            )
            raise ReadwiseUnreachableError("Readwise unreachable", attempts=attempt) from transport_error

        logger.error(
            "readwise request failed path=%s attempts=%s status=%s",
            path,
            attempt,
            response.status_code,
            extra={"attempt": attempt, "status_code": response.status_code},
        )
        raise ReadwiseApiError(
            "Readwise API error.", status_code=response.status_code, attempts=attempt
        )

    async def initialize(self) -> None:
        """Perform the upstream MCP handshake."""
        await self._post(INITIALIZE_PATH)

    async def search_highlights(self, payload: Dict[str, Any]) -> List[Any]:
        """Run a highlight search and return the upstream ``results`` list unchanged."""
        response = await self._post(HIGHLIGHTS_PATH, payload)
        try:
            data = response.json()
        except ValueError as exc:
            raise UnexpectedResponseError(
                "Unexpected response from Readwise.", status_code=response.status_code
            ) from exc

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise UnexpectedResponseError(
                "Unexpected response from Readwise.", status_code=response.status_code
            )
        logger.debug("readwise search returned %s results", len(results))
        return results


default_client = ReadwiseApiClient()
