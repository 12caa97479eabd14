"""
Google Cloud Vision OCR client.

Implements IOCRProvider with the ``images:annotate`` TEXT_DETECTION feature.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx
import structlog

from glutenornot.domain.shared.errors import OCRUnavailableError, UpstreamTimeoutError

logger = structlog.get_logger(__name__)


class GoogleVisionClient:
    """
    Async Google Cloud Vision client.

    Example:
        >>> async with GoogleVisionClient(api_key="...") as ocr:
        ...     text = await ocr.extract_text(image_b64)
    """

    BASE_URL = "https://vision.googleapis.com/v1/images:annotate"

    def __init__(
        self,
        api_key: Optional[str],
        timeout_seconds: float = 25.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize OCR client.

        Args:
            api_key: Vision API key (None leaves the client unusable)
            timeout_seconds: Deadline for one annotate call
            http_client: Pre-configured client (for testing)
        """
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._session = http_client
        self._owns_session = http_client is None

    async def __aenter__(self) -> GoogleVisionClient:
        """Async context manager entry."""
        if self._session is None:
            self._session = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        if self._session and self._owns_session:
            await self._session.aclose()
            self._session = None

    async def extract_text(self, image_base64: str) -> str:
        """Run TEXT_DETECTION on one image.

        Args:
            image_base64: Base64 JPEG

        Returns:
            Full detected text, or "" when nothing was read

        Raises:
            OCRUnavailableError: Missing key, transport error or non-2xx
            UpstreamTimeoutError: Deadline exceeded
        """
        if not self.api_key:
            raise OCRUnavailableError("Google Cloud Vision API key not configured", service="ocr")
        if not self._session:
            raise RuntimeError("Client not initialized. Use async with.")

        body = {
            "requests": [
                {
                    "image": {"content": image_base64},
                    "features": [{"type": "TEXT_DETECTION"}],
                }
            ]
        }

        start = time.time()
        try:
            response = await self._session.post(
                self.BASE_URL,
                params={"key": self.api_key},
                json=body,
                timeout=self.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(
                f"Vision API timeout after {self.timeout_seconds}s", service="ocr"
            ) from e
        except httpx.HTTPError as e:
            raise OCRUnavailableError(f"Vision API transport error: {e}", service="ocr") from e

        elapsed_ms = round((time.time() - start) * 1000, 2)

        if response.status_code >= 400:
            logger.error("Vision API error", status=response.status_code, time_ms=elapsed_ms)
            raise OCRUnavailableError(f"Vision API error: {response.status_code}", service="ocr")

        try:
            data = response.json()
        except ValueError as e:
            raise OCRUnavailableError("Vision API returned invalid JSON", service="ocr") from e

        text = self._first_annotation(data)
        logger.info("OCR completed", chars=len(text), time_ms=elapsed_ms)
        return text

    @staticmethod
    def _first_annotation(data: Dict[str, Any]) -> str:
        """The first text annotation holds the full detected text."""
        responses = data.get("responses") or []
        if not responses or not isinstance(responses[0], dict):
            return ""

        first = responses[0]
        if "error" in first:
            # Per-image failure (e.g. undecodable image): nothing was read
            logger.warning("Vision API image error", error=first["error"])
            return ""

        annotations = first.get("textAnnotations") or []
        if not annotations:
            return ""

        description = annotations[0].get("description")
        return description if isinstance(description, str) else ""
