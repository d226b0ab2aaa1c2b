"""
Base HTTP client for backend collaborators.

Wraps a shared httpx.AsyncClient: bearer auth, timeouts, response envelope
unwrapping, retry with backoff for idempotent reads, and mapping of HTTP
failures onto the domain exception hierarchy.
"""

import asyncio
from typing import Any

import httpx

from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.retry import (
    RetryConfig,
    calculate_delay_with_jitter,
    create_http_retry_config,
    is_retryable_status,
    should_retry,
)
from shared.utils.exceptions import (
    AppException,
    BackendError,
    BackendUnavailableError,
    NotFoundError,
    ValidationError,
)

logger = get_logger(__name__)


def _extract_reason(response: httpx.Response) -> str:
    """Best human-readable reason from an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("error", "message", "detail", "reason"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
    return response.reason_phrase


class BackendClient:
    """
    Shared transport for one backend service.

    Subclasses set ``service_name`` and may override ``_rejected`` to choose
    which exception a 4xx rejection becomes.
    """

    service_name: str = "backend"

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._token = settings.api_token if token is None else token
        self.timeout = timeout or settings.http_timeout_seconds
        self.retry_config = retry_config or create_http_retry_config(
            max_attempts=settings.http_max_retries,
            max_delay=settings.http_retry_max_delay,
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazily create the pooled client."""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self._token:
                headers["Authorization"] = f"Bearer {self._token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client. Call on session shutdown."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    # =========================================================================
    # Requests
    # =========================================================================

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """
        Send a request and return the unwrapped ``data`` of the response.

        Only GET is retried; a POST may already have taken effect server-side.
        """
        max_attempts = self.retry_config.max_attempts if method == "GET" else 1
        attempt = 0

        while True:
            attempt += 1
            try:
                response = await self._get_client().request(method, path, params=params, json=json)
            except httpx.TransportError as e:
                if should_retry(attempt, max_attempts):
                    await self._backoff(attempt, method, path, error=str(e))
                    continue
                raise BackendUnavailableError(self.service_name, path=path, error=str(e)) from e

            if is_retryable_status(response.status_code) and should_retry(attempt, max_attempts):
                await self._backoff(attempt, method, path, status_code=response.status_code)
                continue

            return self._handle_response(response, path)

    async def _backoff(self, attempt: int, method: str, path: str, **context: Any) -> None:
        delay = calculate_delay_with_jitter(attempt - 1, self.retry_config)
        logger.warning(
            "Retrying backend request",
            service=self.service_name,
            method=method,
            path=path,
            attempt=attempt,
            delay=round(delay, 3),
            **context,
        )
        await asyncio.sleep(delay)

    def _handle_response(self, response: httpx.Response, path: str) -> Any:
        status = response.status_code

        if status == 404:
            raise NotFoundError(self.service_name, path)
        if 400 <= status < 500:
            raise self._rejected(_extract_reason(response), status, path)
        if status >= 500:
            raise BackendError(self.service_name, _extract_reason(response), status_code=status, path=path)

        if status == 204 or not response.content:
            return None
        try:
            body = response.json()
        except ValueError as e:
            raise BackendError(self.service_name, "Malformed response", status_code=status, path=path) from e

        # {"success": bool, "data": ..., "error": ...}
        if isinstance(body, dict) and "success" in body:
            if not body["success"]:
                raise self._rejected(body.get("error") or "Request rejected", status, path)
            return body.get("data")
        return body

    def _rejected(self, reason: str, status_code: int, path: str) -> AppException:
        """Exception for a request the server understood and refused."""
        return ValidationError(reason, service=self.service_name, status_code=status_code, path=path)
