"""
CityPulse Deterministic Decision Rules

Rule-based incident typing, severity, location extraction and default
actions. Used on their own when no reasoning service is available, and to
fill invalid fields of a reasoning-service response.
"""

import re
from typing import Dict, List, Pattern, Sequence

from citypulse.schemas import (
    AIDecision,
    EvidenceSnippet,
    IncidentType,
    SnippetType,
    round_half_up,
)


# Snippet type -> incident type, in precedence order
TYPE_PRECEDENCE = [
    (SnippetType.FIRE.value, IncidentType.FIRE),
    (SnippetType.FLOOD.value, IncidentType.FLOOD),
    (SnippetType.SMOKE.value, IncidentType.SMOKE),
    (SnippetType.VEHICLE.value, IncidentType.VEHICLE_ACCIDENT),
    (SnippetType.PERSON.value, IncidentType.PERSON_IN_DANGER),
]

BASE_SEVERITY: Dict[IncidentType, float] = {
    IncidentType.FIRE: 0.8,
    IncidentType.FLOOD: 0.75,
    IncidentType.SMOKE: 0.5,
    IncidentType.VEHICLE_ACCIDENT: 0.7,
    IncidentType.PERSON_IN_DANGER: 0.85,
    IncidentType.UNKNOWN: 0.4,
}

PERSON_BONUS = 0.1
VEHICLE_BONUS = 0.05
MULTI_HAZARD_BONUS = 0.1
HAZARD_TYPES = {SnippetType.FIRE.value, SnippetType.FLOOD.value, SnippetType.SMOKE.value}

FALLBACK_CONFIDENCE_FACTOR = 0.7
FALLBACK_CONFIDENCE_FLOOR = 0.3

UNKNOWN_LOCATION = "Unknown"

LOCATION_PATTERNS: List[Pattern] = [
    re.compile(r"(\d+\s+)?[A-Z]+\s+(ROAD|STREET|AVENUE|LANE|DRIVE|BLVD|WAY|HIGHWAY)", re.IGNORECASE),
    re.compile(r"\bNEAR\s+[A-Z]+", re.IGNORECASE),
    re.compile(r"\bAT\s+[A-Z]+", re.IGNORECASE),
    re.compile(r"[A-Z]+\s+AREA", re.IGNORECASE),
    re.compile(r"\bBLOCK\s+\d+", re.IGNORECASE),
]

DEFAULT_ACTIONS: Dict[str, str] = {
    IncidentType.FIRE.value: "Dispatch fire department immediately. Evacuate area.",
    IncidentType.FLOOD.value: "Dispatch rescue team. Issue flood warning to residents.",
    IncidentType.SMOKE.value: "Investigate source. Alert fire department on standby.",
    IncidentType.VEHICLE_ACCIDENT.value: "Dispatch ambulance and police. Secure accident scene.",
    IncidentType.PERSON_IN_DANGER.value: "Dispatch emergency responders. Prepare medical assistance.",
    IncidentType.UNKNOWN.value: "Send patrol unit to investigate and assess situation.",
}


def mean_confidence(snippets: Sequence[EvidenceSnippet]) -> float:
    if not snippets:
        return 0.0
    return sum(s.confidence or 0.0 for s in snippets) / len(snippets)


def determine_incident_type(snippets: Sequence[EvidenceSnippet]) -> IncidentType:
    """First snippet type present in precedence order, else unknown"""
    present = {(s.type or "").lower() for s in snippets or []}
    for snippet_type, incident_type in TYPE_PRECEDENCE:
        if snippet_type in present:
            return incident_type
    return IncidentType.UNKNOWN


def calculate_severity(incident_type: IncidentType, snippets: Sequence[EvidenceSnippet]) -> float:
    """
    Base severity for the incident type plus evidence bonuses.

    +0.1 when a person is visible, +0.05 when a vehicle is visible and +0.1
    when at least two distinct hazards (fire, flood, smoke) appear.
    """
    severity = BASE_SEVERITY.get(incident_type, BASE_SEVERITY[IncidentType.UNKNOWN])
    if not snippets:
        return severity

    types = [s.type for s in snippets]
    if SnippetType.PERSON.value in types:
        severity += PERSON_BONUS
    if SnippetType.VEHICLE.value in types:
        severity += VEHICLE_BONUS
    if len(HAZARD_TYPES.intersection(types)) > 1:
        severity += MULTI_HAZARD_BONUS

    return round_half_up(min(1.0, severity), 2)


def extract_location(snippets: Sequence[EvidenceSnippet]) -> str:
    """Location hint from the first snippet carrying OCR text"""
    for snippet in snippets or []:
        if not snippet.text:
            continue

        text = snippet.text.upper()
        for pattern in LOCATION_PATTERNS:
            match = pattern.search(text)
            if match:
                return match.group(0)

        return snippet.text

    return UNKNOWN_LOCATION


def default_action(incident_type: str) -> str:
    """Standard response action for an incident type"""
    key = incident_type.value if isinstance(incident_type, IncidentType) else incident_type
    return DEFAULT_ACTIONS.get(key, DEFAULT_ACTIONS[IncidentType.UNKNOWN.value])


def generate_fallback_decision(snippets: Sequence[EvidenceSnippet]) -> AIDecision:
    """
    Build a decision from the snippets alone.

    Confidence is deliberately penalised relative to the reasoning path:
    max(0.3, mean snippet confidence x 0.7).
    """
    incident_type = determine_incident_type(snippets)
    avg_confidence = mean_confidence(snippets) or 0.5

    return AIDecision(
        incident_type=incident_type.value,
        severity=calculate_severity(incident_type, snippets),
        location_hint=extract_location(snippets),
        recommended_action=default_action(incident_type),
        confidence=max(FALLBACK_CONFIDENCE_FLOOR, avg_confidence * FALLBACK_CONFIDENCE_FACTOR),
    )
