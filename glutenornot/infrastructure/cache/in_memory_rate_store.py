"""
In-memory rate record store.

Process-local dict keyed by client identifier.
NOT shared across instances: each API process enforces its own quota.
"""

from typing import Dict, Optional

import structlog

from glutenornot.domain.admission.models import RateRecord

logger = structlog.get_logger(__name__)


class InMemoryRateStore:
    """In-memory implementation of IRateStore."""

    def __init__(self) -> None:
        """Initialize empty store."""
        self._records: Dict[str, RateRecord] = {}

    async def get(self, key: str) -> Optional[RateRecord]:
        """Get the record for a client identifier.

        Args:
            key: Client identifier

        Returns:
            The stored record, expired or not (expiry is the caller's call)
        """
        return self._records.get(key)

    async def set(self, key: str, record: RateRecord) -> None:
        """Store or replace a record.

        Args:
            key: Client identifier
            record: New counter state
        """
        self._records[key] = record

    async def delete(self, key: str) -> None:
        """Delete a record if present."""
        self._records.pop(key, None)

    async def cleanup_expired(self, window_s: float, now: float) -> int:
        """Remove all records whose window has closed.

        Args:
            window_s: Window length in seconds
            now: Current epoch seconds

        Returns:
            Number of records removed
        """
        expired_keys = [
            key for key, record in self._records.items() if record.is_expired(now, window_s)
        ]

        for key in expired_keys:
            del self._records[key]

        if expired_keys:
            logger.debug("Removed expired rate records", count=len(expired_keys))

        return len(expired_keys)

    def size(self) -> int:
        """Number of tracked identifiers."""
        return len(self._records)

    def clear(self) -> None:
        """Clear all records (for testing)."""
        self._records.clear()
