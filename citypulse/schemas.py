"""
CityPulse Schema Definitions

Core data structures for evidence, decisions and incidents.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from citypulse.errors import ValidationError


class SnippetType(str, Enum):
    """Evidence types accepted from the label detector (priority order)"""
    FLOOD = "flood"
    FIRE = "fire"
    SMOKE = "smoke"
    VEHICLE = "vehicle"
    PERSON = "person"


class IncidentType(str, Enum):
    """Incident classification produced by the decision engine"""
    FLOOD = "flood"
    FIRE = "fire"
    SMOKE = "smoke"
    VEHICLE_ACCIDENT = "vehicle_accident"
    PERSON_IN_DANGER = "person_in_danger"
    UNKNOWN = "unknown"


class IncidentStatus(str, Enum):
    """Confidence gate outcome"""
    AUTO_APPROVED = "auto_approved"
    NEEDS_HUMAN_REVIEW = "needs_human_review"


class SeverityLevel(str, Enum):
    """Hazard severity tier derived from the severity score"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


def round_half_up(value: float, digits: int = 2) -> float:
    """Round to `digits` decimals, halves away from negative infinity"""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def _require(data: Dict[str, Any], key: str, kind: str) -> Any:
    if not isinstance(data, dict):
        raise ValidationError(f"{kind} must be an object")
    if key not in data or data[key] is None:
        raise ValidationError(f"{kind} is missing required field '{key}'")
    return data[key]


def _require_number(data: Dict[str, Any], key: str, kind: str) -> float:
    value = _require(data, key, kind)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{kind}.{key} must be a number")
    return float(value)


def _require_unit_interval(data: Dict[str, Any], key: str) -> float:
    value = _require_number(data, key, "ai_decision")
    if not math.isfinite(value) or not 0.0 <= value <= 1.0:
        raise ValidationError(f"ai_decision.{key} must be between 0.0 and 1.0")
    return value


def frame_id(index: int) -> str:
    """Frame identifier for a 1-based frame index"""
    return f"frame_{index:02d}.jpg"


@dataclass
class FrameRef:
    """One frame handed to OCR and label detection"""
    type: str  # "image", "frame" (extracted from video) or "video" (undecoded)
    path: str
    index: int = 1  # 1-based position in the upload

    @property
    def frame_id(self) -> str:
        """Shared identifier used to re-associate OCR and label results"""
        return frame_id(self.index)

    @property
    def is_undecoded_video(self) -> bool:
        return self.type == "video"


@dataclass
class RawLabel:
    """Label as reported by the detector (confidence on a 0-100 scale)"""
    name: str
    confidence: float
    categories: List[str] = field(default_factory=list)
    instances: int = 0


@dataclass
class LabelResult:
    """Per-frame label, normalised for the snippet generator"""
    frame: str
    label: str
    confidence: float  # 0.0 - 1.0
    category: str  # hazard, important, other, unknown, unprocessed, error
    priority: Optional[str] = None  # high, medium, low, none

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frame": self.frame,
            "label": self.label,
            "confidence": self.confidence,
            "category": self.category,
            "priority": self.priority,
        }


@dataclass
class OcrResult:
    """Per-frame OCR output"""
    frame: str
    text: List[str] = field(default_factory=list)
    frame_number: int = 1
    text_found: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frame": self.frame,
            "text": list(self.text),
            "frame_number": self.frame_number,
            "text_found": self.text_found,
        }


@dataclass(frozen=True)
class EvidenceSnippet:
    """Detected label merged with nearby OCR text for one frame"""
    type: str
    confidence: float  # 0.0 - 1.0, two decimals
    text: Optional[str]
    frame: str

    def has_text(self) -> bool:
        return bool(self.text)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "confidence": self.confidence,
            "text": self.text,
            "frame": self.frame,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvidenceSnippet":
        """Create from dictionary, rejecting malformed input"""
        snippet_type = _require(data, "type", "evidence")
        if not isinstance(snippet_type, str):
            raise ValidationError("evidence.type must be a string")
        text = data.get("text")
        if text is not None and not isinstance(text, str):
            raise ValidationError("evidence.text must be a string or null")
        return cls(
            type=snippet_type.lower(),
            confidence=_require_number(data, "confidence", "evidence"),
            text=text,
            frame=str(data.get("frame") or ""),
        )


@dataclass(frozen=True)
class AIDecision:
    """Validated incident decision"""
    incident_type: str
    severity: float  # 0.0 - 1.0
    location_hint: str
    recommended_action: str
    confidence: float  # 0.0 - 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "incident_type": self.incident_type,
            "severity": self.severity,
            "location_hint": self.location_hint,
            "recommended_action": self.recommended_action,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AIDecision":
        """Create from dictionary, rejecting malformed input"""
        confidence = _require_unit_interval(data, "confidence")
        severity = _require_unit_interval(data, "severity") if data.get("severity") is not None else 0.0

        incident_type = data.get("incident_type") or IncidentType.UNKNOWN.value
        if not isinstance(incident_type, str) or incident_type not in {t.value for t in IncidentType}:
            raise ValidationError(f"ai_decision.incident_type is not a known type: {incident_type!r}")

        return cls(
            incident_type=incident_type,
            severity=severity,
            location_hint=str(data.get("location_hint") or "Unknown"),
            recommended_action=str(data.get("recommended_action") or ""),
            confidence=confidence,
        )


@dataclass(frozen=True)
class Incident:
    """Persisted incident record (append-only)"""
    incident_id: str
    status: IncidentStatus
    ai_decision: AIDecision
    evidence: List[EvidenceSnippet]
    timestamp: str  # ISO-8601

    def to_dict(self) -> Dict[str, Any]:
        return {
            "incident_id": self.incident_id,
            "status": self.status.value,
            "ai_decision": self.ai_decision.to_dict(),
            "evidence": [snippet.to_dict() for snippet in self.evidence],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Incident":
        """Create from a stored dictionary"""
        return cls(
            incident_id=data["incident_id"],
            status=IncidentStatus(data["status"]),
            ai_decision=AIDecision.from_dict(data["ai_decision"]),
            evidence=[EvidenceSnippet.from_dict(e) for e in data.get("evidence", [])],
            timestamp=data["timestamp"],
        )


@dataclass
class DisasterSummary:
    """Hazard flags and severity for one upload"""
    total_disasters: int = 0
    fire_detected: bool = False
    flood_detected: bool = False
    accident_detected: bool = False
    weather_hazard: bool = False
    structural_damage: bool = False
    severity_score: int = 0
    severity_level: SeverityLevel = SeverityLevel.LOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_disasters": self.total_disasters,
            "fire_detected": self.fire_detected,
            "flood_detected": self.flood_detected,
            "accident_detected": self.accident_detected,
            "weather_hazard": self.weather_hazard,
            "structural_damage": self.structural_damage,
            "severity_score": self.severity_score,
            "severity_level": self.severity_level.value,
        }


@dataclass
class DisasterAnalysis:
    """Label buckets per hazard category plus their summary"""
    buckets: Dict[str, List[LabelResult]]
    summary: DisasterSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "disasters": {
                category: [label.to_dict() for label in labels]
                for category, labels in self.buckets.items()
            },
            "summary": self.summary.to_dict(),
        }


@dataclass(frozen=True)
class Recommendation:
    """Emergency response bundle for one hazard category"""
    type: str
    priority: str
    action: str
    resources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "priority": self.priority,
            "action": self.action,
            "resources": list(self.resources),
        }


@dataclass(frozen=True)
class StorageLocation:
    """Where the original upload was stored"""
    bucket: str
    key: str
    placeholder: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"bucket": self.bucket, "key": self.key, "placeholder": self.placeholder}
