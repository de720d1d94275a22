"""
CityPulse Reasoning Service

Optional LLM integration that turns evidence snippets into an incident
decision. Talks to any OpenAI-compatible chat completions endpoint (Groq by
default). Callers MUST treat every failure here as recoverable.
"""

import logging
from typing import Optional, Sequence

import openai

from citypulse.config import CityPulseConfig
from citypulse.errors import UpstreamServiceError
from citypulse.fallback import mean_confidence
from citypulse.schemas import EvidenceSnippet

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are an emergency incident analyzer. Your task is to analyze evidence from disaster scenes and make incident decisions.

CRITICAL RULES:
1. Output ONLY valid JSON - no explanations, no markdown, no extra text
2. Be conservative with confidence scores - penalize uncertainty heavily
3. If evidence is weak or conflicting, lower the confidence score significantly
4. Base severity on the potential danger to human life and property
5. Extract location hints from OCR text when available

OUTPUT SCHEMA (STRICT - DO NOT DEVIATE):
{
  "incident_type": "flood|fire|smoke|vehicle_accident|person_in_danger|unknown",
  "severity": 0.0-1.0,
  "location_hint": "extracted from OCR or 'Unknown'",
  "recommended_action": "specific emergency response action",
  "confidence": 0.0-1.0
}

CONFIDENCE SCORING RULES:
- Multiple consistent evidence types: +0.2
- High confidence detections (>0.85): +0.15
- OCR text confirming incident: +0.15
- Single evidence source: -0.2
- Conflicting evidence: -0.3
- Low detection confidence (<0.7): -0.2
- No OCR text: -0.1

SEVERITY SCORING RULES:
- Fire detected: base 0.8
- Flood detected: base 0.75
- Person in danger: +0.15
- Vehicle involved: +0.1
- Multiple hazards: +0.1
- Smoke only (no fire): base 0.5

RESPOND WITH JSON ONLY."""


def distinct_types(snippets: Sequence[EvidenceSnippet]) -> list:
    """Snippet types in first-seen order"""
    seen = []
    for snippet in snippets:
        if snippet.type not in seen:
            seen.append(snippet.type)
    return seen


def build_prompt(snippets: Sequence[EvidenceSnippet]) -> str:
    """
    Build the user prompt from evidence snippets.

    Args:
        snippets: Non-empty list of evidence snippets

    Returns:
        Prompt text listing each snippet and aggregate statistics
    """
    evidence_list = "\n\n".join(
        f"Evidence {i}:\n"
        f"- Type: {s.type}\n"
        f"- Confidence: {s.confidence * 100:.1f}%\n"
        f"- OCR Text: {s.text or 'None'}\n"
        f"- Frame: {s.frame}"
        for i, s in enumerate(snippets, start=1)
    )

    return f"""Analyze the following evidence snippets from a disaster scene and provide an incident decision.

EVIDENCE:
{evidence_list}

Total evidence items: {len(snippets)}
Types detected: {', '.join(distinct_types(snippets))}
Average confidence: {mean_confidence(snippets) * 100:.1f}%

Provide your incident decision as JSON only."""


class ReasoningClient:
    """
    Chat-completions client for incident reasoning.

    One call per request, low temperature, JSON response format.
    """

    def __init__(self, config: CityPulseConfig, client: Optional[openai.OpenAI] = None):
        if not config.llm_api_key and client is None:
            raise ValueError("Reasoning client requires an API key")
        self.config = config
        self.client = client or openai.OpenAI(
            api_key=config.llm_api_key,
            base_url=config.llm_base_url,
            timeout=config.llm_timeout,
        )

    def reason(self, prompt: str) -> str:
        """
        Send the prompt and return the raw response text.

        Raises:
            UpstreamServiceError: call failed or the response was empty
        """
        try:
            response = self.client.chat.completions.create(
                model=self.config.llm_model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.config.llm_temperature,
                max_tokens=self.config.llm_max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            raise UpstreamServiceError("reasoning", str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise UpstreamServiceError("reasoning", "Empty response from LLM")
        return content


def get_reasoning_client(config: CityPulseConfig) -> Optional[ReasoningClient]:
    """
    Create a reasoning client, or None when the service is not configured.
    """
    if not config.reasoning_enabled:
        return None
    return ReasoningClient(config)
