"""
Unit tests for the LLM response parser.

Replies mimic what the model actually sends: JSON wrapped in prose, Spanish
labels, menus with malformed entries, and outright garbage.
"""

import json

import pytest

from glutenornot.domain.analysis.models import Confidence, ScanMode, Verdict
from glutenornot.domain.analysis.parser import (
    ParserFlavor,
    ResponseParser,
    barcode_parser,
    parse_llm_response,
    scan_parser,
)
from glutenornot.metrics import registry

SCAN_FALLBACK = "Unable to fully analyze the ingredients. Please review manually."
BARCODE_FALLBACK = "Unable to fully analyze the product. Please review the ingredients manually."


def _assert_fallback(result, explanation: str) -> None:
    assert result.mode is ScanMode.LABEL
    assert result.verdict is Verdict.CAUTION
    assert result.confidence is Confidence.LOW
    assert result.flagged_ingredients == []
    assert result.allergen_warnings == []
    assert result.explanation == explanation
    assert result.menu_items is None


class TestScanParserLabel:
    """Label replies in SCAN flavor."""

    def test_label_with_surrounding_prose(self) -> None:
        raw = (
            "Sure! Here is the result:\n"
            '{"mode": "label", "verdict": "unsafe", '
            '"flagged_ingredients": ["wheat flour"], '
            '"allergen_warnings": ["Contains: wheat"], '
            '"explanation": "Wheat flour contains gluten.", "confidence": "high"}\n'
            "Stay safe!"
        )

        result = scan_parser.parse(raw)

        assert result.mode is ScanMode.LABEL
        assert result.verdict is Verdict.UNSAFE
        assert result.flagged_ingredients == ["wheat flour"]
        assert result.allergen_warnings == ["Contains: wheat"]
        assert result.explanation == "Wheat flour contains gluten."
        assert result.confidence is Confidence.HIGH
        assert result.detected_language is None

    def test_spanish_label_keeps_language(self) -> None:
        raw = json.dumps(
            {
                "mode": "label",
                "detected_language": "es",
                "verdict": "unsafe",
                "flagged_ingredients": ["wheat flour (harina de trigo)"],
                "allergen_warnings": [],
                "explanation": "Contains wheat flour.",
                "confidence": "high",
            }
        )

        result = scan_parser.parse(raw)

        assert result.detected_language == "es"
        assert result.flagged_ingredients == ["wheat flour (harina de trigo)"]

    @pytest.mark.parametrize("language", ["en", "EN", "spanish", "e", 7])
    def test_english_or_invalid_language_is_dropped(self, language: object) -> None:
        raw = json.dumps({"verdict": "safe", "detected_language": language})

        assert scan_parser.parse(raw).detected_language is None

    def test_missing_fields_get_defaults(self) -> None:
        result = scan_parser.parse('{"verdict": "SAFE"}')

        assert result.verdict is Verdict.SAFE
        assert result.flagged_ingredients == []
        assert result.allergen_warnings == []
        assert result.explanation == ""
        assert result.confidence is Confidence.MEDIUM
        assert result.mode is ScanMode.LABEL

    def test_unrecognized_confidence_is_low(self) -> None:
        result = scan_parser.parse('{"verdict": "safe", "confidence": "pretty sure"}')

        assert result.confidence is Confidence.LOW

    def test_empty_confidence_is_medium(self) -> None:
        result = scan_parser.parse('{"verdict": "safe", "confidence": ""}')

        assert result.confidence is Confidence.MEDIUM

    def test_non_string_list_entries_are_dropped(self) -> None:
        raw = json.dumps(
            {
                "verdict": "caution",
                "flagged_ingredients": ["oats", 3, None, {"x": 1}],
                "allergen_warnings": "may contain wheat",
            }
        )

        result = scan_parser.parse(raw)

        assert result.flagged_ingredients == ["oats"]
        assert result.allergen_warnings == []

    def test_payload_omits_menu_items_in_label_mode(self) -> None:
        payload = scan_parser.parse('{"verdict": "safe"}').to_payload()

        assert "menu_items" not in payload
        assert "detected_language" not in payload
        assert "barcode" not in payload


class TestScanParserMenu:
    """Menu replies in SCAN flavor."""

    def test_menu_items_normalized(self) -> None:
        raw = json.dumps(
            {
                "mode": "menu",
                "verdict": "caution",
                "menu_items": [
                    {"name": "Grilled Salmon", "verdict": "safe", "notes": "Ask about marinade"},
                    {"name": "  Fried Calamari ", "verdict": "Dangerous"},
                    {"name": "House Salad", "verdict": "ask server", "notes": 5},
                    {"verdict": "unsafe"},
                    {"name": "", "verdict": "safe"},
                    {"name": "   ", "verdict": "safe"},
                    "Pasta",
                ],
                "explanation": "Several dishes need checking.",
                "confidence": "medium",
            }
        )

        result = scan_parser.parse(raw)

        assert result.mode is ScanMode.MENU
        assert result.menu_items is not None
        assert [item.name for item in result.menu_items] == [
            "Grilled Salmon",
            "Fried Calamari",
            "House Salad",
        ]
        assert [item.verdict for item in result.menu_items] == [
            Verdict.SAFE,
            Verdict.UNSAFE,
            Verdict.CAUTION,
        ]
        assert result.menu_items[0].notes == "Ask about marinade"
        assert result.menu_items[1].notes == ""
        assert result.menu_items[2].notes == ""

    def test_mode_inferred_from_menu_items(self) -> None:
        raw = json.dumps(
            {"verdict": "safe", "menu_items": [{"name": "Rice bowl", "verdict": "safe"}]}
        )

        result = scan_parser.parse(raw)

        assert result.mode is ScanMode.MENU
        assert result.menu_items is not None
        assert len(result.menu_items) == 1

    def test_empty_menu_items_without_mode_is_label(self) -> None:
        result = scan_parser.parse('{"verdict": "safe", "menu_items": []}')

        assert result.mode is ScanMode.LABEL
        assert result.menu_items is None

    def test_menu_mode_without_items_gets_empty_list(self) -> None:
        result = scan_parser.parse('{"mode": "MENU", "verdict": "caution"}')

        assert result.mode is ScanMode.MENU
        assert result.menu_items == []
        assert result.to_payload()["menu_items"] == []


class TestScanParserFallback:
    """Everything structurally wrong collapses to the SCAN fallback."""

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "",
            "   \n",
            "I cannot read this label.",
            '{"verdict": "safe",}',
            "[1, 2, 3]",
            '{"flagged_ingredients": []}',
            '{"verdict": "warning"}',
            '{"verdict": "dangerous"}',
            '{"verdict": 1}',
            12345,
        ],
    )
    def test_fallback(self, raw: object) -> None:
        _assert_fallback(scan_parser.parse(raw), SCAN_FALLBACK)

    def test_greedy_span_with_braces_in_prose_falls_back(self) -> None:
        raw = 'Note {see below}. {"verdict": "safe"}'

        _assert_fallback(scan_parser.parse(raw), SCAN_FALLBACK)

    def test_fallback_is_counted(self) -> None:
        scan_parser.parse("not json")
        scan_parser.parse("still not json")

        assert registry.counter_value("parser.fallback", flavor="scan") == 2


class TestBarcodeParser:
    """BARCODE flavor."""

    def test_synonym_verdict_is_normalized_not_rejected(self) -> None:
        raw = '{"verdict": "Dangerous", "flagged_ingredients": ["barley malt"], "confidence": "high"}'

        result = barcode_parser.parse(raw)

        assert result.verdict is Verdict.UNSAFE
        assert result.flagged_ingredients == ["barley malt"]
        assert result.confidence is Confidence.HIGH

    def test_unknown_verdict_is_caution(self) -> None:
        result = barcode_parser.parse('{"verdict": "maybe", "explanation": "Unclear."}')

        assert result.verdict is Verdict.CAUTION
        assert result.explanation == "Unclear."

    def test_menu_fields_are_discarded(self) -> None:
        raw = json.dumps(
            {
                "mode": "menu",
                "verdict": "safe",
                "menu_items": [{"name": "Soup", "verdict": "safe"}],
            }
        )

        result = barcode_parser.parse(raw)

        assert result.mode is ScanMode.LABEL
        assert result.menu_items is None

    def test_barcode_fallback_text(self) -> None:
        _assert_fallback(barcode_parser.parse("no json here"), BARCODE_FALLBACK)
        assert registry.counter_value("parser.fallback", flavor="barcode") == 1


class TestParseLlmResponse:
    def test_defaults_to_scan_flavor(self) -> None:
        _assert_fallback(parse_llm_response('{"verdict": "danger"}'), SCAN_FALLBACK)

    def test_barcode_flavor(self) -> None:
        result = parse_llm_response('{"verdict": "danger"}', ParserFlavor.BARCODE)

        assert result.verdict is Verdict.UNSAFE

    def test_parser_instances_share_rules(self) -> None:
        assert ResponseParser(ParserFlavor.SCAN).fallback() == scan_parser.fallback()
