"""
Tests for hazard categorization, severity scoring and recommendations.
"""

import pytest

from citypulse.disasters import (
    NO_ACTION_RECOMMENDATION,
    NO_IMMEDIATE_ACTION,
    categorize_disasters,
    classify_label,
    get_emergency_recommendations,
    immediate_action,
    severity_level,
)
from citypulse.schemas import DisasterSummary, LabelResult, SeverityLevel


def create_label(label: str, priority: str = "high", category: str = "hazard") -> LabelResult:
    """Helper to create label results"""
    return LabelResult(
        frame="frame_01.jpg", label=label, confidence=0.9, category=category, priority=priority
    )


class TestClassification:
    """Keyword table precedence"""

    def test_categories(self):
        assert classify_label("Smoke") == "fire"
        assert classify_label("Water") == "flood"
        assert classify_label("Collision") == "accident"
        assert classify_label("Storm") == "weather"
        assert classify_label("Rubble") == "structural"

    def test_first_category_wins(self):
        """'damage' belongs to accident, which precedes structural"""
        assert classify_label("Damaged Building") == "accident"

    def test_unmatched(self):
        assert classify_label("Tree") is None
        assert classify_label("") is None


class TestCategorize:
    """Buckets and summary"""

    def test_buckets_and_summary(self):
        labels = [
            create_label("Fire"),
            create_label("Flood"),
            create_label("Person", priority="medium", category="important"),
            create_label("Explosion"),
        ]

        analysis = categorize_disasters(labels)

        assert [l.label for l in analysis.buckets["fire"]] == ["Fire"]
        assert [l.label for l in analysis.buckets["flood"]] == ["Flood"]
        assert [l.label for l in analysis.buckets["other"]] == ["Explosion"]
        assert analysis.summary.total_disasters == 3
        assert analysis.summary.fire_detected
        assert analysis.summary.flood_detected
        assert not analysis.summary.accident_detected
        assert analysis.summary.severity_score == 40
        assert analysis.summary.severity_level == SeverityLevel.HIGH

    def test_unmatched_low_priority_dropped(self):
        analysis = categorize_disasters([create_label("Tree", priority="low", category="other")])

        assert analysis.summary.total_disasters == 0
        assert analysis.summary.severity_level == SeverityLevel.LOW

    def test_score_capped(self):
        analysis = categorize_disasters([create_label("Fire") for _ in range(6)])

        assert analysis.summary.severity_score == 100
        assert analysis.summary.severity_level == SeverityLevel.CRITICAL

    def test_empty_input(self):
        analysis = categorize_disasters(None)

        assert analysis.summary.total_disasters == 0
        assert set(analysis.buckets) == {"fire", "flood", "accident", "weather", "structural", "other"}

    def test_to_dict_shape(self):
        data = categorize_disasters([create_label("Fire")]).to_dict()

        assert data["disasters"]["fire"][0]["label"] == "Fire"
        assert data["summary"]["severity_level"] == "Medium"


class TestSeverityLevel:
    """Strict tier thresholds"""

    @pytest.mark.parametrize("score,level", [
        (0, SeverityLevel.LOW),
        (10, SeverityLevel.LOW),
        (11, SeverityLevel.MEDIUM),
        (30, SeverityLevel.MEDIUM),
        (31, SeverityLevel.HIGH),
        (60, SeverityLevel.HIGH),
        (61, SeverityLevel.CRITICAL),
    ])
    def test_boundaries(self, score, level):
        assert severity_level(score) == level


class TestRecommendations:
    """Recommendations depend only on summary flags"""

    def test_priority_order(self):
        summary = DisasterSummary(weather_hazard=True, fire_detected=True, flood_detected=True)

        recommendations = get_emergency_recommendations(summary)

        assert [r.type for r in recommendations] == ["fire", "flood", "weather"]
        assert immediate_action(recommendations).startswith("Evacuate immediately")

    def test_no_hazard(self):
        recommendations = get_emergency_recommendations(DisasterSummary())

        assert recommendations == [NO_ACTION_RECOMMENDATION]
        assert recommendations[0].priority == "low"

    def test_immediate_action_without_recommendations(self):
        assert immediate_action([]) == NO_IMMEDIATE_ACTION
