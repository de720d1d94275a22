"""
CityPulse - Incident Decision Pipeline

Turns uploaded images and video into evidence snippets, decides an incident
from them (LLM reasoning with a deterministic fallback) and gates every
decision through a human-in-the-loop confidence threshold.
"""

__version__ = "1.0.0"

from citypulse.schemas import (
    AIDecision,
    EvidenceSnippet,
    Incident,
    IncidentStatus,
    IncidentType,
    LabelResult,
    OcrResult,
)
from citypulse.snippets import generate_snippets
from citypulse.disasters import categorize_disasters, get_emergency_recommendations
from citypulse.decision_engine import analyze_incident
from citypulse.incident_store import IncidentStore, get_store

__all__ = [
    "AIDecision",
    "EvidenceSnippet",
    "Incident",
    "IncidentStatus",
    "IncidentType",
    "LabelResult",
    "OcrResult",
    "generate_snippets",
    "categorize_disasters",
    "get_emergency_recommendations",
    "analyze_incident",
    "IncidentStore",
    "get_store",
]
