"""
CityPulse Incident Store

Confidence gate plus the process-wide incident collection.

The store keeps every incident in memory and rewrites a single JSON
document on each creation. Writers are serialised through one lock and the
document is replaced atomically, so concurrent requests in this process
cannot interleave writes or lose records.
"""

import json
import logging
import os
import tempfile
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from citypulse.config import DEFAULT_CONFIG
from citypulse.errors import PersistenceError, ValidationError
from citypulse.schemas import (
    AIDecision,
    EvidenceSnippet,
    Incident,
    IncidentStatus,
)

logger = logging.getLogger(__name__)


# Confidence gate threshold for auto-approval
CONFIDENCE_THRESHOLD = 0.6


def get_confidence_threshold() -> float:
    """Current confidence gate threshold"""
    return CONFIDENCE_THRESHOLD


def derive_status(confidence: float) -> IncidentStatus:
    """Apply the confidence gate"""
    if confidence >= CONFIDENCE_THRESHOLD:
        return IncidentStatus.AUTO_APPROVED
    return IncidentStatus.NEEDS_HUMAN_REVIEW


def needs_human_review(incident: Incident) -> bool:
    return incident.status == IncidentStatus.NEEDS_HUMAN_REVIEW


def is_auto_approved(incident: Incident) -> bool:
    return incident.status == IncidentStatus.AUTO_APPROVED


def gate_info() -> Dict[str, Any]:
    """Describe the confidence gate"""
    threshold = get_confidence_threshold()
    return {
        "threshold": threshold,
        "description": "Confidence gate for responsible AI decision making",
        "logic": {
            IncidentStatus.AUTO_APPROVED.value: f"confidence >= {threshold}",
            IncidentStatus.NEEDS_HUMAN_REVIEW.value: f"confidence < {threshold}",
        },
        "purpose": "Human-in-the-loop for low confidence decisions",
    }


def check_incident(incident: Dict[str, Any]) -> Dict[str, Any]:
    """
    Report the gate status of an incident object supplied by a caller.

    Raises:
        ValidationError: incident is not an object or has no status
    """
    if not isinstance(incident, dict):
        raise ValidationError("Missing incident object")
    status = incident.get("status")
    if status not in {s.value for s in IncidentStatus}:
        raise ValidationError("incident.status must be auto_approved or needs_human_review")

    decision = incident.get("ai_decision") or {}
    confidence = decision.get("confidence", 0) if isinstance(decision, dict) else 0

    return {
        "incident_id": incident.get("incident_id"),
        "status": status,
        "needs_human_review": status == IncidentStatus.NEEDS_HUMAN_REVIEW.value,
        "is_auto_approved": status == IncidentStatus.AUTO_APPROVED.value,
        "confidence": confidence or 0,
        "threshold": get_confidence_threshold(),
    }


class IncidentStore:
    """
    In-memory incident collection persisted as one JSON document.

    Records are append-only: status is fixed at creation and never
    recomputed.
    """

    def __init__(self, path: str = "data/incidents.json"):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._incidents: List[Incident] = self._load()

    def _load(self) -> List[Incident]:
        """Rehydrate from disk; missing or corrupt files give an empty store"""
        if not self.path.exists():
            logger.info("No incidents file at %s, starting fresh", self.path)
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError("incidents file must contain a JSON list")
            incidents = [Incident.from_dict(item) for item in data]
        except Exception as e:
            logger.warning("Could not load incidents from %s, starting fresh: %s", self.path, e)
            return []

        logger.info("Loaded %d incident(s) from %s", len(incidents), self.path)
        return incidents

    def _persist(self, incidents: Sequence[Incident]) -> None:
        """Atomically replace the incidents file with the given records"""
        payload = [incident.to_dict() for incident in incidents]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=".incidents-", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"Failed to save incidents to {self.path}: {e}") from e

    def create_incident(
        self,
        decision: AIDecision,
        evidence: Sequence[EvidenceSnippet],
    ) -> Incident:
        """
        Create, store and persist an incident.

        A persistence failure is logged and does not fail the call; the
        incident stays available in memory for the rest of the process.

        Args:
            decision: Validated incident decision
            evidence: Snippets the decision was based on

        Returns:
            The created Incident
        """
        incident = Incident(
            incident_id=str(uuid.uuid4()),
            status=derive_status(decision.confidence),
            ai_decision=decision,
            evidence=list(evidence),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

        with self._lock:
            self._incidents.append(incident)
            snapshot = list(self._incidents)
            try:
                self._persist(snapshot)
            except PersistenceError as e:
                logger.error("%s (incident %s kept in memory only)", e, incident.incident_id)

        logger.info(
            "Confidence gate: %.1f%% -> %s (incident %s, total %d)",
            decision.confidence * 100, incident.status.value,
            incident.incident_id, len(snapshot),
        )
        return incident

    # Queries

    def get_all(self) -> List[Incident]:
        with self._lock:
            return list(self._incidents)

    def get_by_id(self, incident_id: str) -> Optional[Incident]:
        with self._lock:
            for incident in self._incidents:
                if incident.incident_id == incident_id:
                    return incident
        return None

    def get_by_status(self, status: IncidentStatus) -> List[Incident]:
        status = IncidentStatus(status)
        with self._lock:
            return [i for i in self._incidents if i.status == status]

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            incidents = list(self._incidents)
        return {
            "total": len(incidents),
            IncidentStatus.AUTO_APPROVED.value: sum(1 for i in incidents if is_auto_approved(i)),
            IncidentStatus.NEEDS_HUMAN_REVIEW.value: sum(
                1 for i in incidents if needs_human_review(i)
            ),
        }


# Global store instance
_store_instance: Optional[IncidentStore] = None
_store_lock = threading.Lock()


def get_store(path: Optional[str] = None) -> IncidentStore:
    """Get or create global store instance"""
    global _store_instance
    with _store_lock:
        if _store_instance is None:
            if path is None:
                path = DEFAULT_CONFIG.incidents_file
            _store_instance = IncidentStore(path)
    return _store_instance
