"""
CityPulse Reasoning Output Validation

Strict decode of reasoning-service output into an AIDecision.

The raw text is never trusted as-is: the decode either fails as a whole
(no JSON object could be recovered) or produces a fully validated decision
in which every invalid field has been replaced by its deterministic
derivation from the evidence snippets.
"""

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from citypulse.fallback import default_action, determine_incident_type, extract_location
from citypulse.schemas import AIDecision, EvidenceSnippet, IncidentType


VALID_INCIDENT_TYPES = {t.value for t in IncidentType}

MAX_TEXT_LENGTH = 200


@dataclass
class DecodeResult:
    """Outcome of decoding reasoning-service output"""
    ok: bool
    decision: Optional[AIDecision] = None
    error: Optional[str] = None
    corrected_fields: List[str] = field(default_factory=list)

    @classmethod
    def success(cls, decision: AIDecision, corrected_fields: List[str]) -> "DecodeResult":
        return cls(ok=True, decision=decision, corrected_fields=corrected_fields)

    @classmethod
    def failure(cls, error: str) -> "DecodeResult":
        return cls(ok=False, error=error)


def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} block in `text`.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for pos in range(start, len(text)):
            char = text[pos]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:pos + 1]
        start = text.find("{", start + 1)
    return None


def parse_json_payload(raw: str) -> Optional[Dict[str, Any]]:
    """Parse raw text as a JSON object, tolerating surrounding prose"""
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        block = extract_json_object(raw or "")
        if block is None:
            return None
        try:
            parsed = json.loads(block)
        except ValueError:
            return None
    return parsed if isinstance(parsed, dict) else None


def coerce_unit_float(value: Any) -> Optional[float]:
    """
    Parse a value as a float clamped to [0, 1].

    Returns None when the value is not numeric (caller defaults to 0).
    """
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return min(max(number, 0.0), 1.0)


def sanitize_text(value: Any) -> Optional[str]:
    """Trim and cap a string field; None for empty or non-string values"""
    if not isinstance(value, str):
        return None
    cleaned = value.strip()[:MAX_TEXT_LENGTH]
    return cleaned or None


def decode_decision(raw: str, snippets: Sequence[EvidenceSnippet]) -> DecodeResult:
    """
    Decode reasoning-service output into a validated AIDecision.

    Args:
        raw: Raw response text, expected to contain a JSON object
        snippets: Evidence the decision was asked about (used for
            per-field fallbacks)

    Returns:
        DecodeResult. `ok` is False only when no JSON object could be
        recovered; otherwise every field of `decision` is valid.
    """
    payload = parse_json_payload(raw)
    if payload is None:
        return DecodeResult.failure("Response did not contain a JSON object")

    corrected: List[str] = []

    raw_type = payload.get("incident_type")
    if isinstance(raw_type, str) and raw_type in VALID_INCIDENT_TYPES:
        incident_type = raw_type
    else:
        incident_type = determine_incident_type(snippets).value
        corrected.append("incident_type")

    severity = coerce_unit_float(payload.get("severity"))
    if severity is None:
        severity = 0.0
        corrected.append("severity")

    confidence = coerce_unit_float(payload.get("confidence"))
    if confidence is None:
        confidence = 0.0
        corrected.append("confidence")

    location_hint = sanitize_text(payload.get("location_hint"))
    if location_hint is None:
        location_hint = extract_location(snippets)
        corrected.append("location_hint")

    recommended_action = sanitize_text(payload.get("recommended_action"))
    if recommended_action is None:
        recommended_action = default_action(incident_type)
        corrected.append("recommended_action")

    decision = AIDecision(
        incident_type=incident_type,
        severity=severity,
        location_hint=location_hint,
        recommended_action=recommended_action,
        confidence=confidence,
    )
    return DecodeResult.success(decision, corrected)
