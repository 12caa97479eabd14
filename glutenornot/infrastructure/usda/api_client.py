"""
USDA FoodData Central API client.

Branded-food search by UPC. The search endpoint is a full-text search, so the
returned ``gtinUpc`` is checked against the query before a hit is accepted.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

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


class USDAApiClient:
    """USDA FoodData Central product lookup (IProductProvider)."""

    source = ProductSource.USDA

    BASE_URL = "https://api.nal.usda.gov/fdc/v1"

    def __init__(
        self,
        api_key: str,
        timeout_seconds: float = 8.0,
        max_attempts: int = 2,
        retry_backoff_s: float = 0.5,
        page_size: int = 5,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize API client.

        Args:
            api_key: USDA API key
            timeout_seconds: Request timeout
            max_attempts: Attempts on transport/5xx errors
            retry_backoff_s: Exponential backoff multiplier
            page_size: Search hits inspected for a matching UPC
            http_client: Pre-configured client (for testing)
        """
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.retry_backoff_s = retry_backoff_s
        self.page_size = page_size
        self._session = http_client
        self._owns_session = http_client is None

    async def __aenter__(self) -> USDAApiClient:
        """Async context manager entry."""
        if self._session is None:
            self._session = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        if self._session and self._owns_session:
            await self._session.aclose()
            self._session = None

    async def lookup(self, barcode: Barcode) -> Optional[ProductRecord]:
        """Search branded foods by barcode.

        Args:
            barcode: Validated barcode

        Returns:
            ProductRecord for the hit whose gtinUpc matches, None otherwise

        Raises:
            httpx.HTTPError: Transport or server error after retries

        Example:
            >>> async with USDAApiClient(api_key="DEMO_KEY") as client:
            ...     record = await client.lookup(Barcode(value="041196910759"))
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff_s, max=4),
            retry=retry_if_exception_type(httpx.HTTPError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                data = await self._search(barcode)

        if data is None:
            return None

        for food in data.get("foods") or []:
            gtin = food.get("gtinUpc")
            if isinstance(gtin, str) and barcode.matches(gtin):
                record = self._map_food(food)
                logger.info(
                    "Product found in USDA",
                    barcode=barcode.value,
                    fdc_id=food.get("fdcId"),
                    name=record.product_name,
                )
                return record

        logger.info(
            "Barcode not found in USDA",
            barcode=barcode.value,
            total_hits=data.get("totalHits", 0),
        )
        return None

    async def _search(self, barcode: Barcode) -> Optional[Dict[str, Any]]:
        if not self._session:
            raise RuntimeError("Client not initialized. Use async with.")

        response = await self._session.get(
            f"{self.BASE_URL}/foods/search",
            params={
                "query": barcode.value,
                "dataType": "Branded",
                "pageSize": self.page_size,
                "api_key": self.api_key,
            },
        )

        if response.status_code == 404:
            return None

        if response.status_code >= 400:
            logger.warning("USDA API error", status=response.status_code)
            response.raise_for_status()

        data: Dict[str, Any] = response.json()
        return data

    @staticmethod
    def _map_food(food: Dict[str, Any]) -> ProductRecord:
        brand = food.get("brandName") or food.get("brandOwner")
        return ProductRecord(
            source=ProductSource.USDA,
            product_name=food.get("description") or None,
            brand=brand or None,
            ingredients_text=food.get("ingredients") or None,
            barcode=food.get("gtinUpc"),
        )
