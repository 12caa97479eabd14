"""
Barcode product lookup service.

Walks the configured providers in order and returns the first record that
carries ingredient data. The whole walk runs under one time budget so the
barcode path still has room for the LLM call within the client deadline.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, List, Optional, Sequence

import structlog

from glutenornot.domain.barcode.models import ProductRecord
from glutenornot.domain.barcode.ports import IProductProvider
from glutenornot.domain.shared.value_objects import Barcode
from glutenornot.metrics import registry

logger = structlog.get_logger(__name__)


class ProductLookupService:
    """Provider waterfall for barcode lookups.

    Flow:
    1. Ask each provider in order (Open Food Facts, USDA, Nutritionix)
    2. Ignore records whose code does not match the scanned barcode
    3. Stop at the first record with ingredients or allergen tags
    4. Otherwise return the first record that named the product

    Provider failures and timeouts are logged and the next provider is tried.
    Once ``budget_s`` is spent, the remaining providers are skipped.

    Example:
        >>> service = ProductLookupService([off_client, usda_client], budget_s=20.0)
        >>> record = await service.lookup(Barcode(value="3017620422003"))
    """

    def __init__(
        self,
        providers: Sequence[IProductProvider],
        budget_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize service.

        Args:
            providers: Providers in priority order
            budget_s: Deadline for the whole walk (None for no limit)
            clock: Monotonic seconds source (injectable for tests)
        """
        self.providers: List[IProductProvider] = list(providers)
        self.budget_s = budget_s
        self._clock = clock

    @property
    def provider_names(self) -> List[str]:
        return [p.source.value for p in self.providers]

    async def lookup(self, barcode: Barcode) -> Optional[ProductRecord]:
        """Resolve a barcode to a product record.

        Args:
            barcode: Validated barcode

        Returns:
            Best available record, None when no provider knows the product
        """
        deadline = None if self.budget_s is None else self._clock() + self.budget_s
        identified: Optional[ProductRecord] = None

        for provider in self.providers:
            remaining: Optional[float] = None
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    logger.warning(
                        "Product lookup budget spent",
                        barcode=barcode.value,
                        skipped=provider.source.value,
                        budget_s=self.budget_s,
                    )
                    break

            record = await self._ask(provider, barcode, remaining)
            if record is None:
                continue

            if record.has_ingredient_data():
                return record

            if identified is None and record.is_identified():
                identified = record

        if identified is not None:
            logger.info(
                "Product identified without ingredient data",
                barcode=barcode.value,
                source=identified.source.value,
            )
        else:
            logger.info("Barcode not found in any provider", barcode=barcode.value)
        return identified

    async def _ask(
        self,
        provider: IProductProvider,
        barcode: Barcode,
        timeout_s: Optional[float],
    ) -> Optional[ProductRecord]:
        source = provider.source.value
        start = time.time()
        record: Optional[ProductRecord] = None
        try:
            record = await asyncio.wait_for(provider.lookup(barcode), timeout=timeout_s)
        except asyncio.TimeoutError:
            logger.warning(
                "Product provider timed out",
                source=source,
                barcode=barcode.value,
                timeout_s=timeout_s,
            )
            outcome = "timeout"
        except Exception as e:
            logger.warning(
                "Product provider failed",
                source=source,
                barcode=barcode.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            outcome = "error"
        else:
            if record is not None and record.barcode and not barcode.matches(record.barcode):
                logger.warning(
                    "Provider returned a different product",
                    source=source,
                    barcode=barcode.value,
                    returned=record.barcode,
                )
                record = None
            outcome = "hit" if record is not None else "miss"

        registry.record_provider(source, outcome, (time.time() - start) * 1000)
        return record
