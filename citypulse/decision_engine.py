"""
CityPulse Incident Decision Engine

Turns evidence snippets into a validated incident decision.

Two paths converge on one output contract:
- reasoning path: the configured LLM proposes a decision, which is strictly
  decoded and validated field by field
- fallback path: deterministic rules over the snippets, used when no
  reasoning service is configured or when it fails for any reason

Both results go through the same confidence adjustment pass.
"""

import logging
from typing import Any, Dict, Optional, Protocol, Sequence

from citypulse.config import CityPulseConfig, DEFAULT_CONFIG
from citypulse.fallback import generate_fallback_decision, mean_confidence
from citypulse.llm_service import build_prompt, get_reasoning_client
from citypulse.schemas import (
    AIDecision,
    EvidenceSnippet,
    IncidentType,
    round_half_up,
)
from citypulse.validator import decode_decision

logger = logging.getLogger(__name__)


class Reasoner(Protocol):
    def reason(self, prompt: str) -> str:
        ...


EMPTY_EVIDENCE_DECISION = AIDecision(
    incident_type=IncidentType.UNKNOWN.value,
    severity=0.0,
    location_hint="Unknown",
    recommended_action="Insufficient evidence for analysis",
    confidence=0.0,
)

# Confidence adjustments
SINGLE_SNIPPET_PENALTY = -0.15
NO_TEXT_PENALTY = -0.1
LOW_MEAN_PENALTY = -0.15
LOW_MEAN_THRESHOLD = 0.75
CONSISTENT_EVIDENCE_BONUS = 0.1
HIGH_CONFIDENCE_BONUS = 0.1
HIGH_CONFIDENCE_THRESHOLD = 0.85


def confidence_delta(snippets: Sequence[EvidenceSnippet]) -> float:
    """Sum of all evidence-quality penalties and bonuses"""
    delta = 0.0

    if len(snippets) == 1:
        delta += SINGLE_SNIPPET_PENALTY

    if not any(s.has_text() for s in snippets):
        delta += NO_TEXT_PENALTY

    if mean_confidence(snippets) < LOW_MEAN_THRESHOLD:
        delta += LOW_MEAN_PENALTY

    unique_types = {s.type for s in snippets if s.type}
    if len(snippets) >= 3 and len(unique_types) <= 2:
        delta += CONSISTENT_EVIDENCE_BONUS

    high_confidence = [s for s in snippets if s.confidence > HIGH_CONFIDENCE_THRESHOLD]
    if len(high_confidence) >= 2:
        delta += HIGH_CONFIDENCE_BONUS

    return delta


def apply_confidence_adjustments(
    decision: AIDecision,
    snippets: Sequence[EvidenceSnippet],
) -> AIDecision:
    """
    Adjust decision confidence for evidence quality.

    All deltas are summed first, then the result is rounded to two decimals
    and clamped to [0, 1] once.
    """
    adjusted = round_half_up(decision.confidence + confidence_delta(snippets), 2)
    adjusted = min(max(adjusted, 0.0), 1.0)
    return AIDecision(
        incident_type=decision.incident_type,
        severity=decision.severity,
        location_hint=decision.location_hint,
        recommended_action=decision.recommended_action,
        confidence=adjusted,
    )


def _reason_with_service(
    reasoner: Reasoner,
    snippets: Sequence[EvidenceSnippet],
) -> Optional[AIDecision]:
    """Run the reasoning path; None means "use the fallback"."""
    try:
        logger.info("Sending %d evidence snippet(s) to reasoning service", len(snippets))
        raw = reasoner.reason(build_prompt(snippets))
        result = decode_decision(raw, snippets)
    except Exception as e:
        # Fail-safe: any reasoning failure degrades to the fallback path
        logger.warning("Reasoning service failed, using fallback decision: %s", e)
        return None

    if not result.ok:
        logger.warning("Reasoning response rejected, using fallback decision: %s", result.error)
        return None

    if result.corrected_fields:
        logger.info(
            "Reasoning response fields replaced by deterministic values: %s",
            ", ".join(result.corrected_fields),
        )
    return result.decision


def analyze_incident(
    snippets: Optional[Sequence[EvidenceSnippet]],
    config: Optional[CityPulseConfig] = None,
    reasoner: Optional[Reasoner] = None,
) -> AIDecision:
    """
    Produce an incident decision from evidence snippets.

    Never raises for reasoning failures: any error from the reasoning
    service downgrades to the deterministic fallback.

    Args:
        snippets: Evidence snippets (may be empty)
        config: Optional configuration (uses DEFAULT_CONFIG if not provided)
        reasoner: Optional reasoning client; built from config when omitted

    Returns:
        Validated AIDecision with severity and confidence in [0, 1]
    """
    if not snippets:
        return EMPTY_EVIDENCE_DECISION

    if config is None:
        config = DEFAULT_CONFIG

    if reasoner is None:
        try:
            reasoner = get_reasoning_client(config)
        except Exception as e:
            logger.warning("Could not create reasoning client: %s", e)
            reasoner = None

    decision = None
    if reasoner is not None:
        decision = _reason_with_service(reasoner, snippets)
    else:
        logger.info("Reasoning service not configured, using fallback decision")

    if decision is None:
        decision = generate_fallback_decision(snippets)

    return apply_confidence_adjustments(decision, snippets)


def reasoning_info(config: Optional[CityPulseConfig] = None) -> Dict[str, Any]:
    """Describe the reasoning service and the decision contract"""
    if config is None:
        config = DEFAULT_CONFIG
    return {
        "service": "LLM Incident Analyzer",
        "provider": config.llm_provider,
        "model": config.llm_model,
        "configured": config.reasoning_enabled,
        "input_format": {
            "snippets": [{
                "type": "flood|fire|smoke|vehicle|person",
                "confidence": "0.0-1.0",
                "text": "OCR text or null",
                "frame": "frame_XX.jpg",
            }]
        },
        "output_format": {
            "incident_type": "|".join(t.value for t in IncidentType),
            "severity": "0.0-1.0",
            "location_hint": "string",
            "recommended_action": "string",
            "confidence": "0.0-1.0",
        },
    }


def reasoning_health(
    config: Optional[CityPulseConfig] = None,
    reasoner: Optional[Reasoner] = None,
) -> Dict[str, Any]:
    """Probe the decision engine with a single synthetic snippet"""
    if config is None:
        config = DEFAULT_CONFIG
    probe = [EvidenceSnippet(type="fire", confidence=0.9, text="TEST", frame="test.jpg")]
    decision = analyze_incident(probe, config, reasoner)
    return {
        "status": "healthy",
        "provider": config.llm_provider,
        "model": config.llm_model,
        "configured": config.reasoning_enabled,
        "test_result": "pass" if decision.incident_type != IncidentType.UNKNOWN.value else "degraded",
    }
