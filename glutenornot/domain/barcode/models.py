"""
Product lookup domain models.

Provider-neutral record produced by every barcode provider adapter.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProductSource(str, Enum):
    """Which provider answered a barcode lookup."""

    OPENFOODFACTS = "openfoodfacts"
    USDA = "usda"
    NUTRITIONIX = "nutritionix"


class ProductRecord(BaseModel):
    """
    Product data from one provider.

    Tags keep the provider namespace (e.g. ``en:gluten``); the context
    builder strips it.

    Example:
        >>> record = ProductRecord(
        ...     source=ProductSource.OPENFOODFACTS,
        ...     product_name="Corn Flakes",
        ...     ingredients_text="Corn, sugar, barley malt extract, salt",
        ...     allergens_tags=["en:gluten"],
        ... )
        >>> assert record.has_ingredient_data()
    """

    model_config = ConfigDict(frozen=True)

    source: ProductSource = Field(..., description="Answering provider")
    product_name: Optional[str] = Field(None, description="Product name")
    brand: Optional[str] = Field(None, description="Brand name")
    ingredients_text: Optional[str] = Field(None, description="Ingredients list")
    allergens_tags: List[str] = Field(default_factory=list)
    traces_tags: List[str] = Field(default_factory=list)
    labels_tags: List[str] = Field(default_factory=list)
    barcode: Optional[str] = Field(None, description="Code reported by the provider")

    def has_ingredient_data(self) -> bool:
        """True when there is something for the model to analyze."""
        return bool(self.ingredients_text and self.ingredients_text.strip()) or bool(
            self.allergens_tags
        )

    def is_identified(self) -> bool:
        """True when the provider at least named the product."""
        return bool(self.product_name) or self.has_ingredient_data()
