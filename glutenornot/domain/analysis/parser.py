"""
LLM response parser.

Turns an untrusted completion into a canonical ``AnalysisResult``.
``parse`` never raises: any structural problem yields the flavor's fixed
low-confidence ``caution`` fallback. Silence or garbage from the model must
never read as "safe".

Two named flavors share the same logic:

- SCAN: label/menu endpoint. Menu-aware, language-aware, and the top-level
  verdict must already be one of the canonical three or the whole reply is
  rejected.
- BARCODE: product lookup endpoint. Always label mode, menu fields discarded,
  verdict normalized permissively.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

from glutenornot.domain.analysis.models import (
    AnalysisResult,
    Confidence,
    MenuItem,
    ScanMode,
    Verdict,
)
from glutenornot.domain.analysis.normalize import (
    is_canonical_verdict,
    normalize_confidence,
    normalize_mode,
    normalize_verdict,
)
from glutenornot.metrics import registry

logger = structlog.get_logger(__name__)

# Greedy: first "{" to last "}". Prose around the object is ignored.
_JSON_SPAN = re.compile(r"\{[\s\S]*\}")
_LANGUAGE_CODE = re.compile(r"^[a-z]{2}$")


class ParserFlavor(str, Enum):
    """Named parser configurations."""

    SCAN = "scan"
    BARCODE = "barcode"


@dataclass(frozen=True)
class _FlavorRules:
    allow_menu: bool
    strict_verdict: bool
    fallback_explanation: str


_RULES: Dict[ParserFlavor, _FlavorRules] = {
    ParserFlavor.SCAN: _FlavorRules(
        allow_menu=True,
        strict_verdict=True,
        fallback_explanation="Unable to fully analyze the ingredients. Please review manually.",
    ),
    ParserFlavor.BARCODE: _FlavorRules(
        allow_menu=False,
        strict_verdict=False,
        fallback_explanation=(
            "Unable to fully analyze the product. Please review the ingredients manually."
        ),
    ),
}


class _Rejected(Exception):
    """Internal signal: reply is structurally unusable."""


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, str)]


def _language(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    code = value.strip().lower()
    if not _LANGUAGE_CODE.match(code) or code == "en":
        return None
    return code


def _menu_items(value: Any) -> List[MenuItem]:
    if not isinstance(value, list):
        return []
    items = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        notes = entry.get("notes")
        items.append(
            MenuItem(
                name=name.strip(),
                verdict=normalize_verdict(entry.get("verdict")),
                notes=notes if isinstance(notes, str) else "",
            )
        )
    return items


class ResponseParser:
    """
    Parser for analysis completions.

    Example:
        >>> parser = ResponseParser(ParserFlavor.SCAN)
        >>> result = parser.parse('Sure! {"verdict": "unsafe"} Hope that helps.')
        >>> result.verdict
        <Verdict.UNSAFE: 'unsafe'>
        >>> result.confidence
        <Confidence.MEDIUM: 'medium'>
    """

    def __init__(self, flavor: ParserFlavor = ParserFlavor.SCAN) -> None:
        self.flavor = flavor
        self._rules = _RULES[flavor]

    def fallback(self) -> AnalysisResult:
        """Fixed result used whenever the reply cannot be trusted."""
        return AnalysisResult(
            mode=ScanMode.LABEL,
            verdict=Verdict.CAUTION,
            flagged_ingredients=[],
            allergen_warnings=[],
            explanation=self._rules.fallback_explanation,
            confidence=Confidence.LOW,
        )

    def parse(self, raw_text: Any) -> AnalysisResult:
        """
        Parse a raw completion.

        Args:
            raw_text: Completion text (None and non-strings tolerated)

        Returns:
            Canonical result, or the fallback on any structural problem
        """
        try:
            data = self._extract_object(raw_text)
            return self._build(data)
        except _Rejected as e:
            reason = str(e)
        except Exception as e:  # the parser is total by contract
            reason = f"unexpected: {type(e).__name__}: {e}"

        logger.warning(
            "Unusable analysis response, using fallback",
            flavor=self.flavor.value,
            reason=reason,
            preview=raw_text[:200] if isinstance(raw_text, str) else None,
        )
        registry.record_parser_fallback(self.flavor.value)
        return self.fallback()

    def _extract_object(self, raw_text: Any) -> Dict[str, Any]:
        if not isinstance(raw_text, str) or not raw_text.strip():
            raise _Rejected("empty response")

        match = _JSON_SPAN.search(raw_text)
        if not match:
            raise _Rejected("no JSON object found")

        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise _Rejected(f"malformed JSON: {e.msg}") from e

        if not isinstance(data, dict):
            raise _Rejected("JSON value is not an object")

        if self._rules.strict_verdict and not is_canonical_verdict(data.get("verdict")):
            raise _Rejected(f"invalid verdict: {data.get('verdict')!r}")

        return data

    def _build(self, data: Dict[str, Any]) -> AnalysisResult:
        explanation = data.get("explanation")
        mode = self._resolve_mode(data)

        menu_items: Optional[List[MenuItem]] = None
        if mode is ScanMode.MENU:
            menu_items = _menu_items(data.get("menu_items"))

        return AnalysisResult(
            mode=mode,
            detected_language=_language(data.get("detected_language")),
            verdict=normalize_verdict(data.get("verdict")),
            flagged_ingredients=_string_list(data.get("flagged_ingredients")),
            allergen_warnings=_string_list(data.get("allergen_warnings")),
            explanation=explanation if isinstance(explanation, str) else "",
            confidence=normalize_confidence(data.get("confidence")),
            menu_items=menu_items,
        )

    def _resolve_mode(self, data: Dict[str, Any]) -> ScanMode:
        if not self._rules.allow_menu:
            return ScanMode.LABEL

        mode = normalize_mode(data.get("mode"))
        if mode is not None:
            return mode

        items = data.get("menu_items")
        if isinstance(items, list) and items:
            return ScanMode.MENU
        return ScanMode.LABEL


scan_parser = ResponseParser(ParserFlavor.SCAN)
barcode_parser = ResponseParser(ParserFlavor.BARCODE)


def parse_llm_response(
    raw_text: Any, flavor: ParserFlavor = ParserFlavor.SCAN
) -> AnalysisResult:
    """Module-level shortcut for ``ResponseParser(flavor).parse``."""
    parser = scan_parser if flavor is ParserFlavor.SCAN else barcode_parser
    return parser.parse(raw_text)
