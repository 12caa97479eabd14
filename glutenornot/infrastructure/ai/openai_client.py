"""
OpenAI API client for ingredient analysis.

Implements ILLMProvider. Library exceptions are translated into domain
errors here so the orchestrators only see ``LLMUnavailableError`` and
``UpstreamTimeoutError``.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import openai
import structlog
from openai import AsyncOpenAI

from glutenornot.domain.shared.errors import LLMUnavailableError, UpstreamTimeoutError

if TYPE_CHECKING:
    from openai.types.chat import ChatCompletion

logger = structlog.get_logger(__name__)


class OpenAIClient:
    """
    Async OpenAI client for text completion.

    Example:
        >>> async with OpenAIClient(api_key="sk-...") as client:
        ...     text = await client.complete_text(build_scan_messages(ocr_text))
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o",
        max_retries: int = 2,
        timeout: float = 25.0,
        max_tokens: int = 1024,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (None leaves the client unusable)
            model: Chat model
            max_retries: SDK retry attempts on transient failures
            timeout: Request timeout in seconds
            max_tokens: Max tokens in response
            client: Optional pre-configured AsyncOpenAI client (for testing)
        """
        self._client: Optional[AsyncOpenAI] = client
        self._owns_client = client is None
        self.api_key = api_key
        self.model = model
        self.max_retries = max_retries
        self.timeout = timeout
        self.max_tokens = max_tokens

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self.api_key)

    async def __aenter__(self) -> OpenAIClient:
        """Async context manager entry."""
        if self._client is None and self.api_key:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=self.max_retries,
            )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        if self._client and self._owns_client:
            await self._client.close()
            self._client = None

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        temperature: float = 0.2,
    ) -> Dict[str, Any]:
        """
        Run a chat completion.

        Args:
            messages: Chat messages (system, user)
            temperature: Sampling temperature

        Returns:
            Dict with:
            - content: Response text (may be empty)
            - finish_reason: Completion reason
            - usage: Token usage stats

        Raises:
            LLMUnavailableError: Not configured, connection or API error,
                or no choices returned
            UpstreamTimeoutError: Request timed out
        """
        if not self.api_key and self._client is None:
            raise LLMUnavailableError("OpenAI API key not configured", service="llm")
        if not self._client:
            raise RuntimeError("Client not initialized. Use async with.")

        start = time.time()
        try:
            completion: ChatCompletion = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=self.max_tokens,
            )
        except openai.APITimeoutError as e:
            raise UpstreamTimeoutError(
                f"OpenAI timeout after {self.timeout}s", service="llm"
            ) from e
        except openai.APIStatusError as e:
            logger.error("OpenAI API error", status=e.status_code)
            raise LLMUnavailableError(f"OpenAI API error: {e.status_code}", service="llm") from e
        except openai.APIError as e:
            logger.error("OpenAI connection error", error=str(e))
            raise LLMUnavailableError(f"OpenAI connection error: {e}", service="llm") from e

        if not completion.choices:
            logger.error("OpenAI returned no choices", model=self.model)
            raise LLMUnavailableError("OpenAI returned no choices", service="llm")

        choice = completion.choices[0]
        usage = completion.usage
        logger.info(
            "LLM completion finished",
            model=self.model,
            finish_reason=choice.finish_reason,
            total_tokens=usage.total_tokens if usage else 0,
            time_ms=round((time.time() - start) * 1000, 2),
        )
        return {
            "content": choice.message.content or "",
            "finish_reason": choice.finish_reason,
            "usage": {
                "prompt_tokens": usage.prompt_tokens if usage else 0,
                "completion_tokens": usage.completion_tokens if usage else 0,
                "total_tokens": usage.total_tokens if usage else 0,
            },
        }

    async def complete_text(self, messages: List[Dict[str, Any]]) -> str:
        """
        Run a completion and return its text.

        Raises:
            LLMUnavailableError: Also when the completion has no content
            UpstreamTimeoutError: Request timed out
        """
        response = await self.complete(messages)
        content: str = response["content"]
        if not content.strip():
            raise LLMUnavailableError("OpenAI returned empty content", service="llm")
        return content
