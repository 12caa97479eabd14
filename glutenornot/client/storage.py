"""On-device lifetime scan counter, kept in a small JSON file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Union

import structlog

logger = structlog.get_logger(__name__)

LIFETIME_SCAN_COUNT_KEY = "glutenornot_lifetime_scan_count"


class LocalScanCounter:
    """
    Lifetime count of completed scans.

    A missing or unreadable file counts as zero. Other keys in the file are
    preserved on write.

    Example:
        >>> counter = LocalScanCounter("~/.glutenornot/state.json")
        >>> counter.increment()
        1
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()

    def _load(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Scan counter unreadable, starting from zero", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def get(self) -> int:
        value = self._load().get(LIFETIME_SCAN_COUNT_KEY, 0)
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0

    def increment(self) -> int:
        """Add one completed scan and return the new total."""
        data = self._load()
        count = self.get() + 1
        data[LIFETIME_SCAN_COUNT_KEY] = count
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")
        return count
