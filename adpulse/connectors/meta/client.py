"""AdPulse — Meta API Client.

Handles authentication, timeouts, retry on transient failures, rate-limit
classification, and pagination. Outbound throttling is NOT done here; every
call is expected to run inside the shared RequestScheduler.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from adpulse.config import settings
from adpulse.core.logging import get_logger

logger = get_logger("meta.client")

MAX_RETRIES = 3
RETRY_BASE_DELAY = 2  # seconds

# Meta error codes / subcodes that mean "slow down"
RATE_LIMIT_CODES = frozenset({4, 17, 613, 80004})
RATE_LIMIT_SUBCODES = frozenset({2446079})
RATE_LIMIT_PHRASES = ("too many", "rate limit", "api call")

AUTH_ERROR_CODE = 190
INVALID_PARAMETER_CODE = 100


class MetaAPIError(Exception):
    """Raised when Meta API returns an error or cannot be reached."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        error_code: int = 0,
        error_subcode: int = 0,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.error_subcode = error_subcode
        super().__init__(message)

    @property
    def is_rate_limit(self) -> bool:
        if self.status_code == 429:
            return True
        if self.error_code in RATE_LIMIT_CODES:
            return True
        if self.error_subcode in RATE_LIMIT_SUBCODES:
            return True
        text = self.message.lower()
        return any(phrase in text for phrase in RATE_LIMIT_PHRASES)

    @property
    def is_auth_error(self) -> bool:
        return self.error_code == AUTH_ERROR_CODE


def is_rate_limit_error(exc: BaseException) -> bool:
    """True when `exc` is a Meta throttling error (codes 4/17/613/80004)."""
    return isinstance(exc, MetaAPIError) and exc.is_rate_limit


def _error_from_response(resp: httpx.Response) -> MetaAPIError:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    error = body.get("error", {}) if isinstance(body, dict) else {}
    message = error.get("message") or f"HTTP {resp.status_code}"
    return MetaAPIError(
        message,
        status_code=resp.status_code,
        error_code=error.get("code", 0) or 0,
        error_subcode=error.get("error_subcode", 0) or 0,
    )


def _body_from_response(resp: httpx.Response) -> Dict[str, Any]:
    """Decode a 2xx reply; anything that is not a JSON object is an API error."""
    try:
        body = resp.json()
    except ValueError as e:
        raise MetaAPIError(
            f"Invalid JSON from Meta (HTTP {resp.status_code})",
            status_code=resp.status_code,
        ) from e
    if not isinstance(body, dict):
        raise MetaAPIError(
            f"Unexpected {type(body).__name__} body from Meta",
            status_code=resp.status_code,
        )
    return body


class MetaClient:
    """Async HTTP client for Meta Marketing API."""

    def __init__(
        self,
        access_token: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ):
        self.access_token = access_token or settings.meta_access_token
        self.timeout = timeout or settings.meta_request_timeout
        self.graph_url = settings.meta_graph_url
        self.retry_base_delay = retry_base_delay
        self._client: Optional[httpx.AsyncClient] = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── Core Request Method ──

    async def _request(
        self,
        method: str,
        url: str,
        params: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """Make a request, retrying transport errors and 5xx responses.

        Rate-limit and other 4xx errors are raised immediately so the caller
        can fall back to cached data.
        """
        params = dict(params or {})
        params["access_token"] = self.access_token

        client = await self._get_client()

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                resp = await client.request(method, url, params=params)
            except httpx.RequestError as e:
                if attempt < MAX_RETRIES:
                    wait = self.retry_base_delay * (2 ** (attempt - 1))
                    logger.warning(f"Request error: {e!r}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise MetaAPIError(
                    f"Connection failed after {MAX_RETRIES} attempts: {e!r}"
                ) from e

            if resp.is_success:
                return _body_from_response(resp)

            error = _error_from_response(resp)
            if resp.status_code >= 500 and attempt < MAX_RETRIES and not error.is_rate_limit:
                wait = self.retry_base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"Server error {resp.status_code}. Retrying in {wait}s",
                    extra={"status_code": resp.status_code},
                )
                await asyncio.sleep(wait)
                continue

            logger.warning(
                f"Meta API error: {error.message}",
                extra={
                    "status_code": resp.status_code,
                    "error_code": error.error_code,
                },
            )
            raise error

        raise MetaAPIError("Max retries exhausted")

    async def get(self, url: str, params: Dict[str, Any] | None = None) -> Dict[str, Any]:
        return await self._request("GET", url, params)

    # ── Pagination ──

    async def paginated_get(
        self,
        url: str,
        params: Dict[str, Any] | None = None,
        max_pages: int = 20,
    ) -> List[Dict[str, Any]]:
        """Fetch all pages of a paginated endpoint and return the `data` rows."""
        all_data: List[Dict[str, Any]] = []
        params = params or {}
        current_url = url

        for page in range(max_pages):
            # `paging.next` already carries every query parameter
            result = await self._request(
                "GET", current_url, params if page == 0 else None
            )
            data = result.get("data", [])
            if isinstance(data, list):
                all_data.extend(data)

            next_url = result.get("paging", {}).get("next")
            if not next_url:
                break
            current_url = next_url

        logger.info(f"Fetched {len(all_data)} records from {url}")
        return all_data
