"""
Admission control models.

Fixed-window counters: a window opens at the first committed scan after
absence or expiry, and every scan within ``window_s`` of that start shares the
counter. At expiry the count restarts from zero (no gradual decay), so a
client can burst up to twice the quota across a window boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

RATE_LIMIT = 50
RATE_LIMIT_WINDOW_S = 24 * 60 * 60.0


@dataclass(frozen=True)
class RateRecord:
    """Counter state for one client identifier."""

    window_start: float
    count: int

    def is_expired(self, now: float, window_s: float) -> bool:
        return now - self.window_start > window_s

    def reset_in(self, now: float, window_s: float) -> float:
        """Seconds until the window closes, never negative."""
        return max(0.0, self.window_start + window_s - now)

    def incremented(self) -> RateRecord:
        return RateRecord(window_start=self.window_start, count=self.count + 1)

    @classmethod
    def opened_at(cls, now: float) -> RateRecord:
        return cls(window_start=now, count=1)


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of a read-only admission check."""

    allowed: bool
    reset_in_s: Optional[float] = None

    @classmethod
    def allow(cls) -> AdmissionDecision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reset_in_s: float) -> AdmissionDecision:
        return cls(allowed=False, reset_in_s=reset_in_s)


def format_time_remaining(seconds: float) -> str:
    """
    Human wording for a rate-limit reset delay.

    Whole hours when at least one hour remains, otherwise whole minutes.
    Zero stays singular ("0 minute").

    Example:
        >>> format_time_remaining(2 * 3600)
        '2 hours'
        >>> format_time_remaining(60)
        '1 minute'
    """
    total = max(0, int(seconds))
    hours = total // 3600
    minutes = (total % 3600) // 60

    if hours > 0:
        return f"{hours} hour{'s' if hours > 1 else ''}"
    return f"{minutes} minute{'s' if minutes > 1 else ''}"
