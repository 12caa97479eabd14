"""
Nutritionix API client.

UPC lookup through ``/v2/search/item``. Requires an app id and key.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
import structlog

from glutenornot.domain.barcode.models import ProductRecord, ProductSource
from glutenornot.domain.shared.value_objects import Barcode

logger = structlog.get_logger(__name__)


class NutritionixClient:
    """Nutritionix product lookup (IProductProvider)."""

    source = ProductSource.NUTRITIONIX

    BASE_URL = "https://trackapi.nutritionix.com/v2"

    def __init__(
        self,
        app_id: str,
        app_key: str,
        timeout_seconds: float = 8.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.app_id = app_id
        self.app_key = app_key
        self.timeout_seconds = timeout_seconds
        self._session = http_client
        self._owns_session = http_client is None

    async def __aenter__(self) -> NutritionixClient:
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
        """Look up a product by UPC.

        Returns:
            ProductRecord for the first food, None on 404 or empty result

        Raises:
            httpx.HTTPError: Transport error or non-404 error status
        """
        if not self._session:
            raise RuntimeError("Client not initialized. Use async with.")

        response = await self._session.get(
            f"{self.BASE_URL}/search/item",
            params={"upc": barcode.value},
            headers={"x-app-id": self.app_id, "x-app-key": self.app_key},
        )

        if response.status_code == 404:
            logger.info("Barcode not found in Nutritionix", barcode=barcode.value)
            return None

        if response.status_code >= 400:
            logger.warning("Nutritionix API error", status=response.status_code)
            response.raise_for_status()

        foods = response.json().get("foods") or []
        if not foods:
            return None

        record = self._map_food(foods[0], barcode)
        logger.info("Product found in Nutritionix", barcode=barcode.value, name=record.product_name)
        return record

    @staticmethod
    def _map_food(food: Dict[str, Any], barcode: Barcode) -> ProductRecord:
        # The item endpoint is an exact UPC match and does not echo the code
        return ProductRecord(
            source=ProductSource.NUTRITIONIX,
            product_name=food.get("food_name") or None,
            brand=food.get("brand_name") or None,
            ingredients_text=food.get("nf_ingredient_statement") or None,
            barcode=barcode.value,
        )
