"""
Domain models for celiac-safety analysis.

Canonical, UI-ready result shapes produced after normalization.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Verdict(str, Enum):
    """Safety verdict for a product or a menu item."""

    SAFE = "safe"
    CAUTION = "caution"  # Conservative default
    UNSAFE = "unsafe"


class ScanMode(str, Enum):
    """What the analyzed text came from."""

    LABEL = "label"  # Packaged-good ingredient label
    MENU = "menu"  # Restaurant menu


class Confidence(str, Enum):
    """Model-reported certainty of the verdict."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MenuItem(BaseModel):
    """
    Single dish on an analyzed menu.

    Example:
        >>> item = MenuItem(name="Grilled Salmon", verdict=Verdict.SAFE)
        >>> assert item.notes == ""
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Dish name as printed")
    verdict: Verdict = Field(..., description="Normalized dish verdict")
    notes: str = Field("", description="What to ask the server, or why")


class AnalysisResult(BaseModel):
    """
    Canonical analysis result.

    Lists are never None; ``menu_items`` is set only in menu mode.
    Barcode metadata is attached after parsing by the barcode path.

    Example:
        >>> result = AnalysisResult(
        ...     mode=ScanMode.LABEL,
        ...     verdict=Verdict.UNSAFE,
        ...     flagged_ingredients=["wheat flour"],
        ...     explanation="Contains wheat.",
        ...     confidence=Confidence.HIGH,
        ... )
        >>> result.to_payload()["verdict"]
        'unsafe'
    """

    model_config = ConfigDict(frozen=True)

    mode: ScanMode = Field(ScanMode.LABEL, description="label or menu")
    detected_language: Optional[str] = Field(None, description="ISO 639-1 code, non-English only")
    verdict: Verdict = Field(..., description="Overall verdict")
    flagged_ingredients: List[str] = Field(default_factory=list)
    allergen_warnings: List[str] = Field(default_factory=list)
    explanation: str = Field("", description="Plain-language explanation")
    confidence: Confidence = Field(Confidence.MEDIUM)
    menu_items: Optional[List[MenuItem]] = Field(None, description="Menu mode only")

    # Barcode path metadata
    product_name: Optional[str] = None
    barcode: Optional[str] = None
    data_source: Optional[str] = None

    def with_product(
        self,
        product_name: Optional[str],
        barcode: str,
        data_source: str,
    ) -> AnalysisResult:
        """Return a copy carrying barcode lookup metadata."""
        return self.model_copy(
            update={
                "product_name": product_name,
                "barcode": barcode,
                "data_source": data_source,
            }
        )

    @property
    def is_barcode_result(self) -> bool:
        return self.barcode is not None

    def to_payload(self) -> Dict[str, Any]:
        """
        Serialize for the HTTP response.

        Omits ``detected_language`` when unset and ``menu_items`` outside menu
        mode. Barcode fields are emitted only on barcode results, where
        ``product_name`` may be null.
        """
        payload: Dict[str, Any] = {"mode": self.mode.value}
        if self.detected_language:
            payload["detected_language"] = self.detected_language
        payload.update(
            {
                "verdict": self.verdict.value,
                "flagged_ingredients": list(self.flagged_ingredients),
                "allergen_warnings": list(self.allergen_warnings),
                "explanation": self.explanation,
                "confidence": self.confidence.value,
            }
        )
        if self.mode is ScanMode.MENU:
            payload["menu_items"] = [
                {"name": item.name, "verdict": item.verdict.value, "notes": item.notes}
                for item in (self.menu_items or [])
            ]
        if self.is_barcode_result:
            payload["product_name"] = self.product_name
            payload["barcode"] = self.barcode
            payload["data_source"] = self.data_source
        return payload
