"""
Tests for the confidence gate and the incident store.
"""

import json
import logging
import threading

import pytest

from citypulse.errors import ValidationError
from citypulse.incident_store import (
    CONFIDENCE_THRESHOLD,
    IncidentStore,
    check_incident,
    derive_status,
    gate_info,
)
from citypulse.schemas import AIDecision, EvidenceSnippet, IncidentStatus


# Test fixtures

def create_decision(confidence: float = 0.74, incident_type: str = "flood") -> AIDecision:
    """Helper to create decisions"""
    return AIDecision(
        incident_type=incident_type,
        severity=0.78,
        location_hint="Market Road",
        recommended_action="Dispatch rescue team",
        confidence=confidence,
    )


def create_evidence():
    return [EvidenceSnippet(type="flood", confidence=0.87, text="ROAD CLOSED", frame="frame_01.jpg")]


class TestConfidenceGate:
    """Status derived from confidence"""

    def test_threshold(self):
        assert CONFIDENCE_THRESHOLD == 0.6

    @pytest.mark.parametrize("confidence,status", [
        (0.6, IncidentStatus.AUTO_APPROVED),
        (0.95, IncidentStatus.AUTO_APPROVED),
        (0.59, IncidentStatus.NEEDS_HUMAN_REVIEW),
        (0.0, IncidentStatus.NEEDS_HUMAN_REVIEW),
    ])
    def test_derive_status(self, confidence, status):
        assert derive_status(confidence) == status

    def test_gate_info(self):
        info = gate_info()

        assert info["threshold"] == 0.6
        assert info["logic"]["auto_approved"] == "confidence >= 0.6"

    def test_check_incident(self):
        report = check_incident({
            "incident_id": "abc",
            "status": "needs_human_review",
            "ai_decision": {"confidence": 0.4},
        })

        assert report["needs_human_review"] is True
        assert report["is_auto_approved"] is False
        assert report["confidence"] == 0.4
        assert report["threshold"] == 0.6

    @pytest.mark.parametrize("incident", [None, "x", {}, {"status": "closed"}])
    def test_check_incident_rejects(self, incident):
        with pytest.raises(ValidationError):
            check_incident(incident)


class TestDecisionParsing:
    """AI decisions arriving as plain dicts"""

    def test_defaults(self):
        decision = AIDecision.from_dict({"confidence": 0.5})

        assert decision.incident_type == "unknown"
        assert decision.severity == 0.0
        assert decision.location_hint == "Unknown"

    @pytest.mark.parametrize("data", [
        {"incident_type": "alien", "confidence": 0.9},
        {"incident_type": ["fire"], "confidence": 0.9},
        {"confidence": 1.01},
        {"confidence": float("nan")},
        {"severity": float("inf"), "confidence": 0.9},
        {"severity": -3, "confidence": 0.9},
    ])
    def test_rejects_out_of_range(self, data):
        with pytest.raises(ValidationError):
            AIDecision.from_dict(data)

    def test_bounds_inclusive(self):
        decision = AIDecision.from_dict({"incident_type": "smoke", "severity": 1, "confidence": 0})

        assert decision.severity == 1.0
        assert decision.confidence == 0.0


class TestCreateIncident:
    """Creation and persistence"""

    def test_create_and_persist(self, tmp_path):
        path = tmp_path / "incidents.json"
        store = IncidentStore(str(path))

        incident = store.create_incident(create_decision(0.74), create_evidence())

        assert incident.status == IncidentStatus.AUTO_APPROVED
        assert incident.incident_id
        assert incident.timestamp

        data = json.loads(path.read_text())
        assert len(data) == 1
        assert data[0]["incident_id"] == incident.incident_id
        assert data[0]["status"] == "auto_approved"
        assert data[0]["evidence"][0]["text"] == "ROAD CLOSED"

    def test_low_confidence_needs_review(self, tmp_path):
        store = IncidentStore(str(tmp_path / "incidents.json"))

        incident = store.create_incident(create_decision(0.42), [])

        assert incident.status == IncidentStatus.NEEDS_HUMAN_REVIEW

    def test_ids_unique(self, tmp_path):
        store = IncidentStore(str(tmp_path / "incidents.json"))

        ids = {store.create_incident(create_decision(), []).incident_id for _ in range(10)}

        assert len(ids) == 10

    def test_concurrent_creation_keeps_every_record(self, tmp_path):
        path = tmp_path / "incidents.json"
        store = IncidentStore(str(path))

        threads = [
            threading.Thread(target=store.create_incident, args=(create_decision(), create_evidence()))
            for _ in range(20)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store.get_all()) == 20
        assert len(json.loads(path.read_text())) == 20

    def test_persistence_failure_keeps_memory_record(self, tmp_path, caplog):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("")
        store = IncidentStore(str(blocker / "incidents.json"))

        with caplog.at_level(logging.ERROR, logger="citypulse.incident_store"):
            incident = store.create_incident(create_decision(), create_evidence())

        assert store.get_by_id(incident.incident_id) == incident
        assert any("kept in memory only" in r.getMessage() for r in caplog.records)


class TestRehydration:
    """Loading the store from disk"""

    def test_round_trip(self, tmp_path):
        path = tmp_path / "incidents.json"
        created = IncidentStore(str(path)).create_incident(create_decision(0.3), create_evidence())

        reloaded = IncidentStore(str(path))

        assert reloaded.get_by_id(created.incident_id) == created

    def test_missing_file(self, tmp_path):
        store = IncidentStore(str(tmp_path / "missing.json"))
        assert store.get_all() == []

    @pytest.mark.parametrize("content", ["{not json", '{"incidents": []}', '[{"status": "x"}]'])
    def test_corrupt_file(self, tmp_path, caplog, content):
        path = tmp_path / "incidents.json"
        path.write_text(content)

        with caplog.at_level(logging.WARNING, logger="citypulse.incident_store"):
            store = IncidentStore(str(path))

        assert store.get_all() == []
        assert caplog.records


class TestQueries:
    """Read operations"""

    def test_filters_and_stats(self, tmp_path):
        store = IncidentStore(str(tmp_path / "incidents.json"))
        approved = store.create_incident(create_decision(0.9), [])
        review = store.create_incident(create_decision(0.2), [])
        store.create_incident(create_decision(0.1), [])

        assert store.get_by_status(IncidentStatus.AUTO_APPROVED) == [approved]
        assert store.get_by_status("needs_human_review")[0] == review
        assert store.get_stats() == {"total": 3, "auto_approved": 1, "needs_human_review": 2}
        assert store.get_by_id("does-not-exist") is None

    def test_get_all_returns_copy(self, tmp_path):
        store = IncidentStore(str(tmp_path / "incidents.json"))
        store.create_incident(create_decision(), [])

        store.get_all().clear()

        assert len(store.get_all()) == 1
