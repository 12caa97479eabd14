"""
Domain exceptions.

Typed exceptions for explicit error handling.
Each one maps to exactly one HTTP outcome in the API layer.
"""

from __future__ import annotations

from typing import Optional


# ═══════════════════════════════════════════════════════════
# BASE EXCEPTION
# ═══════════════════════════════════════════════════════════


class DomainError(Exception):
    """
    Base exception for all domain errors.

    All domain-specific exceptions inherit from this.
    Allows catching all domain errors with single except clause.
    """

    pass


# ═══════════════════════════════════════════════════════════
# VALIDATION EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class ValidationError(DomainError):
    """
    Input validation failed.

    Raised when:
    - Image payload missing or empty
    - Barcode missing or not 8-14 digits

    Example:
        >>> raise ValidationError("Invalid barcode format", title="Invalid barcode")
    """

    def __init__(self, message: str, title: str = "Invalid request") -> None:
        super().__init__(message)
        self.message = message
        self.title = title


# ═══════════════════════════════════════════════════════════
# SCAN DOMAIN EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class ScanDomainError(DomainError):
    """Base exception for scan domain."""

    pass


class AdmissionDeniedError(ScanDomainError):
    """
    Client exceeded its scan quota for the current window.

    Carries the remaining time until the window resets.

    Example:
        >>> raise AdmissionDeniedError(reset_in_s=3600.0, limit=50)
    """

    def __init__(self, reset_in_s: float, limit: int) -> None:
        super().__init__(f"Scan quota of {limit} exhausted, resets in {reset_in_s:.0f}s")
        self.reset_in_s = reset_in_s
        self.limit = limit


class OCRFailedError(ScanDomainError):
    """
    OCR returned no readable text.

    Raised when:
    - Image is blurred or out of focus
    - No text annotations in the OCR response

    Example:
        >>> raise OCRFailedError("No text detected in image")
    """

    pass


class ProductNotFoundError(ScanDomainError):
    """
    Barcode not found in any product database.

    Example:
        >>> raise ProductNotFoundError("Barcode 0123456789012 not found")
    """

    pass


# ═══════════════════════════════════════════════════════════
# EXTERNAL SERVICE EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class ExternalServiceError(DomainError):
    """
    External service call failed.

    Base class for all external service errors.

    Raised when:
    - API call fails
    - Network error
    - Service unavailable

    Example:
        >>> raise ExternalServiceError("Vision API returned 500")
    """

    def __init__(self, message: str, service: Optional[str] = None) -> None:
        super().__init__(message)
        self.service = service


class LLMUnavailableError(ExternalServiceError):
    """
    Analysis model call failed.

    Raised when:
    - Network error or non-2xx from the LLM API
    - Completion has no text content
    - API key not configured

    Example:
        >>> raise LLMUnavailableError("OpenAI returned empty content")
    """

    pass


class OCRUnavailableError(ExternalServiceError):
    """
    OCR service call failed (as opposed to returning no text).

    Example:
        >>> raise OCRUnavailableError("Vision API error: 403")
    """

    pass


class UpstreamTimeoutError(ExternalServiceError):
    """
    Upstream call exceeded its deadline.

    Example:
        >>> raise UpstreamTimeoutError("LLM timeout after 25s", service="llm")
    """

    pass

