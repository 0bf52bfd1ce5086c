import asyncio
from typing import Any, Dict, Optional

import httpx
from httpx import HTTPStatusError, TimeoutException

from compliance_jobs.core.exceptions import APIClientError, APITimeoutError
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _error_message(response: httpx.Response) -> str:
    """Prefer the ``message`` field of a JSON error body over raw text."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text[:500]


class BaseAPIClient:
    """Base client for outbound JSON APIs.

    Handles common logic for HTTP requests, retries with exponential backoff,
    timeout management and error logging. Client errors (4xx) other than 429
    are raised immediately; 429, 5xx, timeouts and transport errors are
    retried.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 60,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        """Initialize the client.

        Args:
            base_url: Base URL for the API
            api_key: Optional bearer token
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts
            retry_delay: Base delay for exponential backoff
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = LOGGER

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if extra:
            headers.update(extra)
        return headers

    async def call_api(
        self,
        endpoint: str = "",
        method: str = "POST",
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Call the API with retry logic.

        Args:
            endpoint: Path appended to base_url
            method: HTTP method
            payload: JSON body
            params: Query string parameters
            headers: Additional headers

        Returns:
            Parsed JSON response (empty dict for an empty body)

        Raises:
            APIClientError: If the call fails, with the HTTP status when known
            APITimeoutError: If every attempt timed out
        """
        url = f"{self.base_url}{endpoint}" if endpoint else self.base_url
        request_headers = self._headers(headers)

        self.logger.debug(f"Calling API: {method} {url}", extra={"timeout": self.timeout})

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.request(
                        method.upper(), url, headers=request_headers, json=payload, params=params
                    )
                    response.raise_for_status()
                    if not response.content:
                        return {}
                    return response.json()

                except HTTPStatusError as e:
                    await self._handle_http_error(e, attempt, url)

                except TimeoutException as e:
                    await self._handle_timeout_error(e, attempt, url)

                except httpx.TransportError as e:
                    await self._handle_transport_error(e, attempt, url)

        raise APIClientError(f"Failed to call API {url} after {self.max_retries} attempts")

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int, url: str):
        status_code = error.response.status_code
        message = _error_message(error.response)

        self.logger.warning(
            f"API HTTP error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "status_code": status_code, "error_body": message},
        )

        # Don't retry on client errors (4xx) unless it's rate limiting (429)
        if 400 <= status_code < 500 and status_code != 429:
            raise APIClientError(message or f"API Client Error {status_code}", status_code=status_code) from error

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(
                f"API HTTP Error {status_code} after retries", status_code=status_code
            ) from error

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int, url: str):
        self.logger.warning(f"API Timeout (Attempt {attempt + 1}/{self.max_retries})", extra={"url": url})

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(f"API Timeout after {self.max_retries} attempts") from error

    async def _handle_transport_error(self, error: httpx.TransportError, attempt: int, url: str):
        self.logger.warning(
            f"API transport error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "error": str(error)},
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API Error: {str(error)}", original_error=error) from error

    async def _wait_before_retry(self, attempt: int):
        """Exponential backoff wait."""
        await asyncio.sleep(self.retry_delay * (2 ** attempt))
