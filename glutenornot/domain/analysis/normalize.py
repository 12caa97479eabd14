"""
Normalization of raw model vocabulary into canonical enums.

All functions are total: any input, including non-strings, maps to a value.
The model sometimes answers "warning", "ask server" or "Dangerous"; none of
that may reach the caller.
"""

from __future__ import annotations

from typing import Any, Optional

from glutenornot.domain.analysis.models import Confidence, ScanMode, Verdict

UNSAFE_SYNONYMS = frozenset({"unsafe", "not safe", "danger", "dangerous"})


def _clean(raw: Any) -> Optional[str]:
    if not isinstance(raw, str):
        return None
    return raw.strip().lower()


def normalize_verdict(raw: Any) -> Verdict:
    """
    Map a raw verdict to safe/caution/unsafe.

    Example:
        >>> normalize_verdict(" SAFE ")
        <Verdict.SAFE: 'safe'>
        >>> normalize_verdict("Dangerous")
        <Verdict.UNSAFE: 'unsafe'>
        >>> normalize_verdict("ask server")
        <Verdict.CAUTION: 'caution'>
    """
    value = _clean(raw)
    if value == "safe":
        return Verdict.SAFE
    if value in UNSAFE_SYNONYMS:
        return Verdict.UNSAFE
    return Verdict.CAUTION


def normalize_mode(raw: Any) -> Optional[ScanMode]:
    """Map a raw mode to label/menu, or None when the caller must infer it."""
    value = _clean(raw)
    if value == "menu":
        return ScanMode.MENU
    if value == "label":
        return ScanMode.LABEL
    return None


def normalize_confidence(raw: Any) -> Confidence:
    """Absent or empty means medium; anything unrecognized is treated as low."""
    if raw is None or raw == "":
        return Confidence.MEDIUM
    value = _clean(raw)
    for member in Confidence:
        if value == member.value:
            return member
    return Confidence.LOW


def is_canonical_verdict(raw: Any) -> bool:
    """True when ``raw`` already names one of the three verdicts."""
    return _clean(raw) in {v.value for v in Verdict}
