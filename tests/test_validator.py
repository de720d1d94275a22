"""
Tests for strict decoding of reasoning-service output.
"""

import math

import pytest

from citypulse.schemas import EvidenceSnippet
from citypulse.validator import (
    MAX_TEXT_LENGTH,
    coerce_unit_float,
    decode_decision,
    extract_json_object,
    parse_json_payload,
    sanitize_text,
)


SNIPPETS = [
    EvidenceSnippet(type="flood", confidence=0.87, text="MARKET ROAD CLOSED", frame="frame_01.jpg"),
    EvidenceSnippet(type="person", confidence=0.8, text=None, frame="frame_02.jpg"),
]


class TestJsonExtraction:
    """Recovering a JSON object from free text"""

    def test_first_balanced_block(self):
        text = 'Result: {"a": {"b": 1}} and {"c": 2}'
        assert extract_json_object(text) == '{"a": {"b": 1}}'

    def test_braces_inside_strings(self):
        text = 'x {"note": "use } carefully", "n": 1} y'
        assert extract_json_object(text) == '{"note": "use } carefully", "n": 1}'

    def test_unbalanced(self):
        assert extract_json_object('{"a": 1') is None
        assert extract_json_object("no braces") is None

    def test_payload_must_be_object(self):
        assert parse_json_payload('{"a": 1}') == {"a": 1}
        assert parse_json_payload("[1, 2]") is None
        assert parse_json_payload("") is None


class TestFieldCoercion:
    """Numeric and text field coercion"""

    @pytest.mark.parametrize("value,expected", [
        (0.5, 0.5),
        ("0.25", 0.25),
        (" 0.75 ", 0.75),
        (1, 1.0),
        (7, 1.0),
        (-0.3, 0.0),
    ])
    def test_unit_float(self, value, expected):
        assert coerce_unit_float(value) == expected

    @pytest.mark.parametrize("value", [None, True, "high", [0.5], math.nan, "inf"])
    def test_unit_float_rejects(self, value):
        assert coerce_unit_float(value) is None

    def test_sanitize_text(self):
        assert sanitize_text("  Market Road  ") == "Market Road"
        assert len(sanitize_text("y" * 300)) == MAX_TEXT_LENGTH
        assert sanitize_text("   ") is None
        assert sanitize_text(None) is None
        assert sanitize_text(["Road"]) is None


class TestDecodeDecision:
    """Whole-response decode"""

    def test_valid(self):
        raw = (
            '{"incident_type": "flood", "severity": 0.78, "location_hint": "Market Road",'
            ' "recommended_action": "Dispatch rescue team", "confidence": 0.74}'
        )

        result = decode_decision(raw, SNIPPETS)

        assert result.ok
        assert result.corrected_fields == []
        assert result.decision.incident_type == "flood"
        assert result.decision.severity == 0.78
        assert result.decision.confidence == 0.74

    def test_missing_fields_derived_from_evidence(self):
        result = decode_decision('{"confidence": 0.6}', SNIPPETS)

        assert result.ok
        assert result.decision.incident_type == "flood"
        assert result.decision.severity == 0.0
        assert result.decision.location_hint == "MARKET ROAD"
        assert result.decision.recommended_action.startswith("Dispatch rescue team")
        assert set(result.corrected_fields) == {
            "incident_type", "severity", "location_hint", "recommended_action",
        }

    def test_unhashable_type_replaced(self):
        result = decode_decision('{"incident_type": ["fire"], "confidence": 0.5}', SNIPPETS)

        assert result.ok
        assert result.decision.incident_type == "flood"

    def test_no_json(self):
        result = decode_decision("Sorry, I can't do that.", SNIPPETS)

        assert not result.ok
        assert result.decision is None
        assert result.error
