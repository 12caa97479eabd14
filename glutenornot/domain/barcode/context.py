"""
Ingredient context builder.

Flattens a ``ProductRecord`` into the text block sent to the model.
"""

from typing import Iterable, List, Optional

from glutenornot.domain.barcode.models import ProductRecord

CERTIFICATION_KEYWORDS = ("gluten", "celiac", "coeliac")


def strip_tag_namespace(tag: str) -> str:
    """
    Drop a provider namespace prefix.

    Example:
        >>> strip_tag_namespace("en:no-gluten")
        'no-gluten'
        >>> strip_tag_namespace("wheat")
        'wheat'
    """
    _, sep, rest = tag.partition(":")
    return rest if sep else tag


def _join_tags(tags: Iterable[str]) -> str:
    return ", ".join(strip_tag_namespace(tag) for tag in tags)


def build_ingredient_context(product: ProductRecord) -> Optional[str]:
    """
    Build the product data block for analysis.

    Args:
        product: Lookup result

    Returns:
        Newline-joined lines, or None when there are neither ingredients nor
        allergen tags (nothing worth sending to the model)
    """
    has_ingredients = bool(product.ingredients_text)
    if not has_ingredients and not product.allergens_tags:
        return None

    parts: List[str] = []

    if product.product_name:
        if product.brand:
            parts.append(f"Product: {product.brand} - {product.product_name}")
        else:
            parts.append(f"Product: {product.product_name}")

    if has_ingredients:
        parts.append(f"Ingredients: {product.ingredients_text}")

    if product.allergens_tags:
        parts.append(f"Allergens: {_join_tags(product.allergens_tags)}")

    if product.traces_tags:
        parts.append(f"Cross-contamination traces: {_join_tags(product.traces_tags)}")

    certifications = [
        stripped
        for stripped in (strip_tag_namespace(tag) for tag in product.labels_tags)
        if any(keyword in stripped for keyword in CERTIFICATION_KEYWORDS)
    ]
    if certifications:
        parts.append(f"Certifications: {', '.join(certifications)}")

    return "\n".join(parts)
