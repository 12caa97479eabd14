"""
Client adapter for the GlutenOrNot API.

Used by scripts, integration checks and app backends that call the scan
endpoints. Every failure surfaces as an ``APIError`` with a closed
``ErrorType``; a caller-initiated cancellation surfaces as
``ScanCancelledError`` instead, so it is never mistaken for a timeout or
retried.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from enum import Enum
from typing import Any, Dict, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_S = 60.0

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
OCR_FAILED_MESSAGE = "Couldn't read the label. Try getting the ingredients list in focus."
NOT_FOUND_MESSAGE = "Product not found in our database. Try scanning the ingredient label instead."
SERVER_ERROR_MESSAGE = "Something went wrong. Please try again."
TIMEOUT_MESSAGE = "Request timed out. Please check your connection and try again."
NETWORK_MESSAGE = "Network error. Please check your connection."


class ErrorType(str, Enum):
    """Closed set of failure kinds a caller has to handle."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    OCR_FAILED = "ocr_failed"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"


class APIError(Exception):
    """
    A scan request failed.

    Attributes:
        type: Failure kind
        message: User-facing text
        retry_after: Seconds until the quota resets (rate_limit only)
    """

    def __init__(self, type: ErrorType, message: str, retry_after: Optional[int] = None) -> None:
        super().__init__(message)
        self.type = type
        self.message = message
        self.retry_after = retry_after

    def __repr__(self) -> str:
        return f"APIError(type={self.type.value!r}, message={self.message!r})"


class ScanCancelledError(Exception):
    """The caller cancelled the request. Not an APIError."""


class CancellationToken:
    """
    Cooperative cancellation signal for one or more requests.

    Example:
        >>> token = CancellationToken()
        >>> task = asyncio.create_task(client.analyze_image(image_b64, cancel_token=token))
        >>> token.cancel()  # user navigated away
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


def _retry_after(response: httpx.Response, data: Dict[str, Any]) -> Optional[int]:
    header = response.headers.get("Retry-After")
    if header and header.strip().isdigit():
        return int(header.strip())
    body_value = data.get("retry_after")
    if isinstance(body_value, (int, float)) and not isinstance(body_value, bool):
        return int(body_value)
    return None


def error_from_response(response: httpx.Response) -> APIError:
    """Map a non-2xx response to an APIError."""
    try:
        data = response.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    message = data.get("message") if isinstance(data.get("message"), str) else None
    status = response.status_code

    if status == 429:
        return APIError(
            ErrorType.RATE_LIMIT,
            message or RATE_LIMIT_MESSAGE,
            retry_after=_retry_after(response, data),
        )
    if status == 400 and data.get("code") == "OCR_FAILED":
        return APIError(ErrorType.OCR_FAILED, message or OCR_FAILED_MESSAGE)
    if status == 404:
        return APIError(ErrorType.NOT_FOUND, message or NOT_FOUND_MESSAGE)
    return APIError(ErrorType.SERVER_ERROR, message or SERVER_ERROR_MESSAGE)


class ScanApiClient:
    """
    Async client for the scan endpoints.

    Example:
        >>> async with ScanApiClient("https://api.glutenornot.com") as api:
        ...     result = await api.lookup_barcode("3017620422003")
        ...     print(result["verdict"])
    """

    def __init__(
        self,
        base_url: str,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize client.

        Args:
            base_url: API origin, without the /api prefix
            timeout_s: Deadline for one request, OCR and analysis included
            http_client: Pre-configured client (for testing)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._session = http_client
        self._owns_session = http_client is None

    async def __aenter__(self) -> ScanApiClient:
        if self._session is None:
            self._session = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_s))
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._session and self._owns_session:
            await self._session.aclose()
            self._session = None

    async def analyze_image(
        self,
        image_base64: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        """POST /api/analyze.

        Raises:
            APIError: Any failure
            ScanCancelledError: ``cancel_token`` fired first
        """
        return await self._post("/api/analyze", {"image": image_base64}, cancel_token)

    async def lookup_barcode(
        self,
        barcode: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        """POST /api/barcode.

        Raises:
            APIError: Any failure (unknown product is ``not_found``)
            ScanCancelledError: ``cancel_token`` fired first
        """
        return await self._post("/api/barcode", {"barcode": barcode}, cancel_token)

    async def check_health(self) -> Dict[str, Any]:
        """GET /api/health. Never raises; any failure reads as unhealthy."""
        if not self._session:
            return {"healthy": False}
        try:
            response = await self._session.get(f"{self.base_url}/api/health", timeout=10.0)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Health check failed", error=str(e))
            return {"healthy": False}
        if not isinstance(data, dict):
            return {"healthy": False}
        data.setdefault("healthy", response.is_success)
        return data

    async def _post(
        self,
        path: str,
        payload: Dict[str, Any],
        cancel_token: Optional[CancellationToken],
    ) -> Dict[str, Any]:
        if not self._session:
            raise RuntimeError("Client not initialized. Use async with.")
        if cancel_token is not None and cancel_token.cancelled:
            raise ScanCancelledError(path)

        request = asyncio.ensure_future(
            self._session.post(f"{self.base_url}{path}", json=payload, timeout=self.timeout_s)
        )
        waiters = {request}
        cancel_waiter: Optional[asyncio.Future[None]] = None
        if cancel_token is not None:
            cancel_waiter = asyncio.ensure_future(cancel_token.wait())
            waiters.add(cancel_waiter)  # type: ignore[arg-type]

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=self.timeout_s, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if cancel_waiter is not None and not cancel_waiter.done():
                cancel_waiter.cancel()

        if request not in done:
            request.cancel()
            with suppress(asyncio.CancelledError, httpx.HTTPError):
                await request
            if cancel_waiter is not None and cancel_waiter in done:
                logger.info("Scan request cancelled", path=path)
                raise ScanCancelledError(path)
            raise APIError(ErrorType.TIMEOUT, TIMEOUT_MESSAGE)

        try:
            response = request.result()
        except httpx.TimeoutException as e:
            raise APIError(ErrorType.TIMEOUT, TIMEOUT_MESSAGE) from e
        except httpx.TransportError as e:
            logger.warning("Scan request network error", path=path, error=str(e))
            raise APIError(ErrorType.NETWORK, NETWORK_MESSAGE) from e
        except httpx.HTTPError as e:
            raise APIError(ErrorType.SERVER_ERROR, SERVER_ERROR_MESSAGE) from e

        if not response.is_success:
            raise error_from_response(response)

        try:
            data = response.json()
        except ValueError as e:
            raise APIError(ErrorType.SERVER_ERROR, SERVER_ERROR_MESSAGE) from e
        if not isinstance(data, dict):
            raise APIError(ErrorType.SERVER_ERROR, SERVER_ERROR_MESSAGE)
        return data
