"""
CityPulse Label Detector

Object/label detection over frames with hazard prioritisation. Wraps a YOLO
model; any load or inference failure yields no labels instead of an error.
"""

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

from citypulse.schemas import FrameRef, LabelResult, RawLabel

logger = logging.getLogger(__name__)


HAZARD_KEYWORDS = [
    "fire", "flame", "smoke", "burning", "blaze", "inferno", "combustion",
    "explosion", "flood", "water", "storm", "lightning", "tornado",
    "earthquake", "debris", "damage", "destruction", "emergency",
    "accident", "crash", "collision", "hazard", "danger", "warning",
]

IMPORTANT_KEYWORDS = [
    "person", "people", "human", "crowd", "pedestrian",
    "car", "vehicle", "truck", "bus", "motorcycle", "bicycle",
    "building", "house", "structure", "architecture",
    "road", "street", "highway", "bridge",
]

OTHER_LABEL_MIN_CONFIDENCE = 80.0
MAX_OTHER_LABELS = 5


def _matches(name: str, keywords: Sequence[str]) -> bool:
    name_lower = name.lower()
    return any(keyword in name_lower for keyword in keywords)


def _normalise_confidence(confidence: float) -> float:
    """0-100 detector confidence -> 0-1, rounded to whole percent"""
    return math.floor(confidence + 0.5) / 100


class LabelDetector:
    """
    YOLO-backed label detector.

    The model is loaded lazily on first use. Labels carry confidence on a
    0-100 scale, like the hosted label services this replaces.
    """

    def __init__(
        self,
        model_path: str = "yolov8n.pt",
        min_confidence: float = 50.0,
        max_labels: int = 50,
    ):
        """
        Args:
            model_path: Path to YOLO weights (a hazard-tuned model is expected
                in production; COCO weights still give people/vehicles)
            min_confidence: Minimum label confidence (0-100)
            max_labels: Maximum labels returned per frame
        """
        self.model_path = model_path
        self.min_confidence = min_confidence
        self.max_labels = max_labels
        self._model = None
        self._load_failed = False
        self._lock = threading.Lock()
        # ultralytics models are not safe to share across threads
        self._infer_lock = threading.Lock()

    def _get_model(self):
        with self._lock:
            if self._model is None and not self._load_failed:
                try:
                    from ultralytics import YOLO
                    self._model = YOLO(self.model_path)
                    logger.info("Loaded label model %s", self.model_path)
                except Exception as e:
                    self._load_failed = True
                    logger.warning("Label detection disabled, model load failed: %s", e)
            return self._model

    def detect_labels(self, frame: FrameRef) -> List[RawLabel]:
        """
        Detect labels in one frame.

        Returns an empty list on any failure (fails closed).
        """
        model = self._get_model()
        if model is None:
            return []

        try:
            with self._infer_lock:
                results = model(frame.path, conf=self.min_confidence / 100, verbose=False)
        except Exception as e:
            logger.warning("Label detection failed for %s: %s", frame.path, e)
            return []

        labels: Dict[str, RawLabel] = {}
        for result in results:
            boxes = result.boxes
            if boxes is None:
                continue
            for box in boxes:
                name = str(result.names[int(box.cls[0])])
                confidence = round(float(box.conf[0]) * 100, 2)
                label = labels.get(name)
                if label is None:
                    labels[name] = RawLabel(name=name, confidence=confidence, instances=1)
                else:
                    label.instances += 1
                    label.confidence = max(label.confidence, confidence)

        ranked = sorted(labels.values(), key=lambda l: l.confidence, reverse=True)
        return ranked[:self.max_labels]


def select_relevant_labels(frame_id: str, labels: Sequence[RawLabel]) -> List[LabelResult]:
    """
    Prioritise one frame's labels: hazards first, then important objects,
    then up to five other high-confidence labels.
    """
    hazard = [l for l in labels if _matches(l.name, HAZARD_KEYWORDS)]
    hazard_names = {l.name for l in hazard}

    important = [
        l for l in labels
        if _matches(l.name, IMPORTANT_KEYWORDS) and l.name not in hazard_names
    ]
    important_names = {l.name for l in important}

    other = [
        l for l in labels
        if l.confidence > OTHER_LABEL_MIN_CONFIDENCE
        and l.name not in hazard_names
        and l.name not in important_names
    ][:MAX_OTHER_LABELS]

    results: List[LabelResult] = []
    for group, category, priority in (
        (hazard, "hazard", "high"),
        (important, "important", "medium"),
        (other, "other", "low"),
    ):
        for label in group:
            results.append(LabelResult(
                frame=frame_id,
                label=label.name,
                confidence=_normalise_confidence(label.confidence),
                category=category,
                priority=priority,
            ))

    if not results:
        results.append(LabelResult(
            frame=frame_id, label="Unknown", confidence=0.0, category="unknown", priority="none"
        ))
    return results


def _analyze_frame(frame: FrameRef, detector: LabelDetector) -> List[LabelResult]:
    if frame.is_undecoded_video:
        logger.info("Skipping label detection for unprocessed video file")
        return [LabelResult(frame=frame.frame_id, label="Video", confidence=0.0, category="unprocessed")]

    try:
        labels = detector.detect_labels(frame)
    except Exception as e:
        logger.warning("Label detection failed for frame %s: %s", frame.path, e)
        return [LabelResult(
            frame=frame.frame_id, label="Error", confidence=0.0, category="error", priority="none"
        )]
    return select_relevant_labels(frame.frame_id, labels)


def analyze_frames(
    frames: Optional[Sequence[FrameRef]],
    detector: LabelDetector,
    max_workers: int = 1,
) -> List[LabelResult]:
    """
    Run label detection over all frames.

    Frames may be processed concurrently; results are re-assembled by frame
    identifier in upload order.
    """
    if not frames:
        logger.warning("No frames to analyze")
        return []

    by_frame: Dict[str, List[LabelResult]] = {}
    workers = max(1, min(max_workers, len(frames)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {frame.frame_id: executor.submit(_analyze_frame, frame, detector) for frame in frames}
        for frame_id, future in futures.items():
            by_frame[frame_id] = future.result()

    results: List[LabelResult] = []
    for frame in frames:
        results.extend(by_frame[frame.frame_id])

    hazards = sum(1 for r in results if r.category == "hazard")
    logger.info("Label detection completed: %d label(s), %d hazard(s)", len(results), hazards)
    return results


SUPPORTED_CATEGORIES = [
    "Vehicles", "People", "Animals", "Objects", "Nature", "Buildings",
    "Activities", "Food", "Technology", "Weather", "Transportation",
]

COMMON_LABELS = [
    "Car", "Person", "Building", "Tree", "Road", "Water", "Sky",
    "Animal", "Food", "Vehicle", "Architecture", "Nature", "Urban",
]


def label_info() -> Dict[str, object]:
    """Static description of what the label detector reports"""
    return {
        "status": "success",
        "supportedCategories": list(SUPPORTED_CATEGORIES),
        "commonLabels": list(COMMON_LABELS),
        "confidenceRange": {
            "min": 0.0,
            "max": 1.0,
            "description": "Higher values indicate more confident predictions",
        },
        "frameNaming": "frame_XX.jpg (where XX is zero-padded frame number)",
    }
