"""
Shared value objects.

Immutable, validated domain primitives.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field

BARCODE_PATTERN = r"^[0-9]{8,14}$"


class Barcode(BaseModel):
    """
    Product barcode value object.

    Validates barcode format (8-14 digits: EAN-8, UPC-A, EAN-13, ITF-14).

    Example:
        >>> barcode = Barcode(value="3017620422003")
        >>> assert barcode.is_valid()
        >>> barcode.padded(13)
        '3017620422003'
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(..., pattern=BARCODE_PATTERN, description="Barcode digits")

    def __str__(self) -> str:
        """String representation."""
        return self.value

    def __repr__(self) -> str:
        """Debug representation."""
        return f"Barcode('{self.value}')"

    def __hash__(self) -> int:
        """Allow use as dict key."""
        return hash(self.value)

    def is_valid(self) -> bool:
        """
        Validate barcode format.

        Returns:
            True if valid (8-14 digits)
        """
        return bool(re.match(BARCODE_PATTERN, self.value))

    def padded(self, width: int) -> str:
        """Left-pad with zeros to ``width`` (no-op when already wider)."""
        return self.value.zfill(width)

    def matches(self, other: str) -> bool:
        """
        Compare against a code returned by a provider.

        Leading zeros are ignored so UPC-A and its EAN-13 form match.
        """
        candidate = other.strip()
        if not re.fullmatch(r"[0-9]+", candidate):
            return False
        return candidate.lstrip("0") == self.value.lstrip("0")

    @classmethod
    def from_string(cls, s: str) -> Barcode:
        """Create from raw (untrimmed) user input."""
        return cls(value=s.strip())
