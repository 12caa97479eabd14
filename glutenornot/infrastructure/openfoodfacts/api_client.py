"""
Open Food Facts API client.

Free, keyless primary barcode provider. Scanners report UPC-A codes with or
without their leading zero, so each lookup tries the code as given, then
zero-padded to 12 and 13 digits.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from glutenornot.domain.barcode.models import ProductRecord, ProductSource
from glutenornot.domain.shared.value_objects import Barcode

logger = structlog.get_logger(__name__)


class OpenFoodFactsClient:
    """
    Open Food Facts product lookup implementing IProductProvider.

    Example:
        >>> async with OpenFoodFactsClient() as client:
        ...     record = await client.lookup(Barcode(value="3017620422003"))
        ...     if record:
        ...         print(record.product_name)
    """

    source = ProductSource.OPENFOODFACTS

    BASE_URL = "https://world.openfoodfacts.org/api/v2/product"
    USER_AGENT = "GlutenOrNot/1.0 (https://glutenornot.com)"
    FIELDS = (
        "code,product_name,brands,ingredients_text,ingredients_text_en,"
        "allergens_tags,traces_tags,labels_tags"
    )
    PAD_WIDTHS = (12, 13)

    def __init__(
        self,
        timeout_seconds: float = 8.0,
        max_attempts: int = 2,
        retry_backoff_s: float = 0.5,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize API client.

        Args:
            timeout_seconds: Request timeout
            max_attempts: Attempts per code on transport/5xx errors
            retry_backoff_s: Exponential backoff multiplier
            http_client: Pre-configured client (for testing)
        """
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.retry_backoff_s = retry_backoff_s
        self._session = http_client
        self._owns_session = http_client is None

    async def __aenter__(self) -> OpenFoodFactsClient:
        """Async context manager entry."""
        if self._session is None:
            self._session = httpx.AsyncClient(
                headers={"User-Agent": self.USER_AGENT},
                timeout=httpx.Timeout(self.timeout_seconds),
            )
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        if self._session and self._owns_session:
            await self._session.aclose()
            self._session = None

    @classmethod
    def candidate_codes(cls, barcode: Barcode) -> List[str]:
        """
        Codes to try, in order, without duplicates.

        Example:
            >>> OpenFoodFactsClient.candidate_codes(Barcode(value="12345678901"))
            ['12345678901', '012345678901', '0012345678901']
        """
        codes = [barcode.value]
        for width in cls.PAD_WIDTHS:
            padded = barcode.padded(width)
            if padded not in codes:
                codes.append(padded)
        return codes

    async def lookup(self, barcode: Barcode) -> Optional[ProductRecord]:
        """Look up a product, trying each zero-padding variant.

        Args:
            barcode: Validated barcode

        Returns:
            ProductRecord for the first variant found, None if none is

        Raises:
            httpx.HTTPError: Transport or server error after retries
        """
        for code in self.candidate_codes(barcode):
            record = await self._get_with_retry(code)
            if record is not None:
                logger.info(
                    "Product found in OFF",
                    barcode=barcode.value,
                    matched_code=code,
                    name=record.product_name,
                )
                return record

        logger.info("Product not found in OFF", barcode=barcode.value)
        return None

    async def _get_with_retry(self, code: str) -> Optional[ProductRecord]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff_s, max=4),
            retry=retry_if_exception_type(httpx.HTTPError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._get_product(code)
        return None

    async def _get_product(self, code: str) -> Optional[ProductRecord]:
        if not self._session:
            raise RuntimeError("Client not initialized. Use async with.")

        response = await self._session.get(
            f"{self.BASE_URL}/{code}",
            params={"fields": self.FIELDS},
            headers={"User-Agent": self.USER_AGENT},
        )

        if response.status_code == 404:
            return None

        if response.status_code >= 500:
            logger.warning("OFF server error", code=code, status=response.status_code)
            # Retried by _get_with_retry
            response.raise_for_status()

        if response.status_code != 200:
            logger.warning("Unexpected OFF status", code=code, status=response.status_code)
            return None

        data = response.json()
        if data.get("status") != 1 or not data.get("product"):
            return None

        return self._map_product(code, data["product"])

    @staticmethod
    def _map_product(code: str, product: Dict[str, Any]) -> ProductRecord:
        brands = product.get("brands") or ""
        brand = brands.split(",")[0].strip() or None
        ingredients = product.get("ingredients_text") or product.get("ingredients_text_en")

        return ProductRecord(
            source=ProductSource.OPENFOODFACTS,
            product_name=product.get("product_name") or None,
            brand=brand,
            ingredients_text=ingredients or None,
            allergens_tags=list(product.get("allergens_tags") or []),
            traces_tags=list(product.get("traces_tags") or []),
            labels_tags=list(product.get("labels_tags") or []),
            barcode=product.get("code") or code,
        )
