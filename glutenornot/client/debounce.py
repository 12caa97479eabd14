"""Duplicate barcode scan suppression.

Camera scanners report the same symbol many times per second. A code is
accepted once, then ignored while its lookup is in flight and for a short
cooldown after it finishes.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Set

DEFAULT_COOLDOWN_S = 3.0


class BarcodeScanDebouncer:
    """
    Decide which scanner callbacks should start a lookup.

    Example:
        >>> debouncer = BarcodeScanDebouncer()
        >>> if debouncer.try_begin(code):
        ...     try:
        ...         await api.lookup_barcode(code)
        ...     finally:
        ...         debouncer.finish(code)
    """

    def __init__(
        self,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cooldown_s = cooldown_s
        self._clock = clock
        self._in_flight: Set[str] = set()
        self._last_seen: Dict[str, float] = {}

    def should_accept(self, code: str) -> bool:
        """True when ``code`` is neither in flight nor inside its cooldown."""
        code = code.strip()
        if code in self._in_flight:
            return False
        last = self._last_seen.get(code)
        return last is None or self._clock() - last >= self.cooldown_s

    def try_begin(self, code: str) -> bool:
        """Accept ``code`` and mark it in flight, or reject it."""
        if not self.should_accept(code):
            return False
        code = code.strip()
        self._in_flight.add(code)
        self._last_seen[code] = self._clock()
        return True

    def finish(self, code: str) -> None:
        """Lookup done (success or failure); the cooldown starts now."""
        code = code.strip()
        self._in_flight.discard(code)
        self._last_seen[code] = self._clock()

    def reset(self) -> None:
        self._in_flight.clear()
        self._last_seen.clear()
