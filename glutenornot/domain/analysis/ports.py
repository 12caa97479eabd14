"""
Ports (Interfaces) for scan analysis dependencies.

OCR and LLM services are external collaborators; the orchestrators depend on
these protocols, adapters live in infrastructure.

Design Pattern: Ports & Adapters (Hexagonal Architecture)
"""

from typing import Any, Dict, List, Protocol, runtime_checkable


@runtime_checkable
class IOCRProvider(Protocol):
    """
    Port for text extraction from an image.

    Implementations raise ``OCRUnavailableError`` or ``UpstreamTimeoutError``
    when the service itself fails, and return an empty string when the
    service answered but found no text.
    """

    async def extract_text(self, image_base64: str) -> str:
        """
        Extract all text from an image.

        Args:
            image_base64: Base64-encoded JPEG (no data URL prefix)

        Returns:
            Extracted text, possibly empty
        """
        ...


@runtime_checkable
class ILLMProvider(Protocol):
    """
    Port for chat completion.

    Implementations raise ``LLMUnavailableError`` on transport failure,
    non-2xx responses or empty content, and ``UpstreamTimeoutError`` on
    deadline. Whatever text comes back is returned unvalidated.
    """

    async def complete_text(self, messages: List[Dict[str, Any]]) -> str:
        """
        Run one completion.

        Args:
            messages: Chat messages (system + user)

        Returns:
            Non-empty completion text
        """
        ...
