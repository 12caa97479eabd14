"""
Port for barcode product providers.
"""

from typing import Optional, Protocol, runtime_checkable

from glutenornot.domain.barcode.models import ProductRecord, ProductSource
from glutenornot.domain.shared.value_objects import Barcode


@runtime_checkable
class IProductProvider(Protocol):
    """
    One product database in the lookup waterfall.

    ``lookup`` returns None for "not found" and may raise on network or parse
    failures; the waterfall treats both the same way.
    """

    source: ProductSource

    async def lookup(self, barcode: Barcode) -> Optional[ProductRecord]:
        """
        Look up a product.

        Args:
            barcode: Validated barcode

        Returns:
            ProductRecord if found, None otherwise
        """
        ...
