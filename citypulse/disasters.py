"""
CityPulse Disaster Categorizer

Buckets detected labels into hazard categories, scores severity and maps
the result to emergency response recommendations.
"""

from collections import OrderedDict
from typing import Dict, List, Optional, Sequence

from citypulse.schemas import (
    DisasterAnalysis,
    DisasterSummary,
    LabelResult,
    Recommendation,
    SeverityLevel,
)


# Category -> keywords, in precedence order. A label lands in the first match.
DISASTER_KEYWORDS: "OrderedDict[str, tuple]" = OrderedDict([
    ("fire", ("fire", "flame", "smoke", "burning", "blaze", "inferno", "combustion", "ash")),
    ("flood", ("flood", "water", "flooding", "submerged", "inundation", "overflow")),
    ("accident", ("accident", "crash", "collision", "wreck", "damage", "debris", "destruction")),
    ("weather", ("storm", "lightning", "tornado", "hurricane", "cyclone", "thunder", "wind")),
    ("structural", ("collapse", "rubble", "broken", "destroyed", "damaged", "ruins", "earthquake")),
])

OTHER_CATEGORY = "other"

SEVERITY_WEIGHTS: Dict[str, int] = {
    "fire": 20,
    "flood": 20,
    "accident": 15,
    "weather": 10,
    "structural": 15,
}

MAX_SEVERITY_SCORE = 100

# (exclusive lower bound, level), checked top-down
SEVERITY_TIERS = [
    (60, SeverityLevel.CRITICAL),
    (30, SeverityLevel.HIGH),
    (10, SeverityLevel.MEDIUM),
]

# Summary flag -> fixed recommendation, in category priority order
RECOMMENDATIONS = [
    ("fire_detected", Recommendation(
        type="fire",
        priority="critical",
        action="Evacuate immediately. Call fire department (911). Do not use elevators.",
        resources=["Fire Department", "Emergency Medical Services"],
    )),
    ("flood_detected", Recommendation(
        type="flood",
        priority="critical",
        action="Move to higher ground immediately. Avoid walking or driving through flood water.",
        resources=["Emergency Services", "Rescue Teams", "Weather Service"],
    )),
    ("accident_detected", Recommendation(
        type="accident",
        priority="high",
        action="Ensure scene safety. Call emergency services. Provide first aid if trained.",
        resources=["Police", "Ambulance", "Fire Department"],
    )),
    ("weather_hazard", Recommendation(
        type="weather",
        priority="high",
        action="Seek shelter immediately. Stay away from windows. Monitor weather alerts.",
        resources=["Weather Service", "Emergency Management"],
    )),
    ("structural_damage", Recommendation(
        type="structural",
        priority="high",
        action="Evacuate building. Do not enter damaged structures. Call building inspector.",
        resources=["Building Inspector", "Emergency Services", "Structural Engineers"],
    )),
]

NO_ACTION_RECOMMENDATION = Recommendation(
    type="none",
    priority="low",
    action="No immediate emergency detected. Continue monitoring.",
    resources=[],
)

NO_IMMEDIATE_ACTION = "No immediate action required"


def classify_label(label: str) -> Optional[str]:
    """Return the first hazard category whose keywords appear in the label"""
    label_lower = (label or "").lower()
    for category, keywords in DISASTER_KEYWORDS.items():
        if any(keyword in label_lower for keyword in keywords):
            return category
    return None


def calculate_severity_score(buckets: Dict[str, List[LabelResult]]) -> int:
    """Bucket-count weighted score, capped at 100"""
    score = sum(
        weight * len(buckets.get(category, []))
        for category, weight in SEVERITY_WEIGHTS.items()
    )
    return min(MAX_SEVERITY_SCORE, score)


def severity_level(score: int) -> SeverityLevel:
    """Map a severity score to its tier (strict thresholds)"""
    for bound, level in SEVERITY_TIERS:
        if score > bound:
            return level
    return SeverityLevel.LOW


def _empty_buckets() -> Dict[str, List[LabelResult]]:
    buckets: Dict[str, List[LabelResult]] = {category: [] for category in DISASTER_KEYWORDS}
    buckets[OTHER_CATEGORY] = []
    return buckets


def categorize_disasters(label_results: Optional[Sequence[LabelResult]]) -> DisasterAnalysis:
    """
    Categorize label detections into hazard buckets.

    Args:
        label_results: Per-frame label detections

    Returns:
        DisasterAnalysis with buckets and severity summary
    """
    buckets = _empty_buckets()

    for result in label_results or []:
        if result is None or not result.label:
            continue

        category = classify_label(result.label)
        if category is not None:
            buckets[category].append(result)
        elif result.priority == "high":
            buckets[OTHER_CATEGORY].append(result)

    score = calculate_severity_score(buckets)
    summary = DisasterSummary(
        total_disasters=sum(len(labels) for labels in buckets.values()),
        fire_detected=bool(buckets["fire"]),
        flood_detected=bool(buckets["flood"]),
        accident_detected=bool(buckets["accident"]),
        weather_hazard=bool(buckets["weather"]),
        structural_damage=bool(buckets["structural"]),
        severity_score=score,
        severity_level=severity_level(score),
    )
    return DisasterAnalysis(buckets=buckets, summary=summary)


def get_emergency_recommendations(summary: DisasterSummary) -> List[Recommendation]:
    """One recommendation per triggered hazard flag, or a single low-priority one"""
    recommendations = [
        recommendation
        for flag, recommendation in RECOMMENDATIONS
        if getattr(summary, flag)
    ]
    if not recommendations:
        recommendations.append(NO_ACTION_RECOMMENDATION)
    return recommendations


def immediate_action(recommendations: Sequence[Recommendation]) -> str:
    """Action of the highest-priority recommendation"""
    if not recommendations:
        return NO_IMMEDIATE_ACTION
    return recommendations[0].action
