"""
Port for rate record storage.

The in-process implementation fits a single API instance only. A
multi-instance deployment needs a shared store (e.g. Redis) behind this
interface; nothing in the admission logic assumes process-local state.
"""

from typing import Optional, Protocol, runtime_checkable

from glutenornot.domain.admission.models import RateRecord


@runtime_checkable
class IRateStore(Protocol):
    """Key-value storage of rate records by client identifier."""

    async def get(self, key: str) -> Optional[RateRecord]:
        """Return the record for ``key``, or None."""
        ...

    async def set(self, key: str, record: RateRecord) -> None:
        """Store or replace the record for ``key``."""
        ...

    async def delete(self, key: str) -> None:
        """Remove ``key`` (no-op when absent)."""
        ...

    async def cleanup_expired(self, window_s: float, now: float) -> int:
        """Delete records whose window closed before ``now``; return count."""
        ...
