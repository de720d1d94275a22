"""
CityPulse Incident Pipeline

One upload in, one gated incident out. Stages run in strict order:
frames -> OCR -> labels -> categorize -> snippets -> decision -> gate ->
store -> cleanup.
"""

import logging
import os
from typing import Any, Dict, List, Optional

from citypulse.config import CityPulseConfig, DEFAULT_CONFIG
from citypulse.decision_engine import Reasoner, analyze_incident
from citypulse.disasters import (
    categorize_disasters,
    get_emergency_recommendations,
    immediate_action,
)
from citypulse.errors import UpstreamServiceError
from citypulse.incident_store import IncidentStore, get_store
from citypulse.media import (
    cleanup_frames,
    delete_local_file,
    extract_frames,
    retain_local_file,
)
from citypulse.media_store import MediaStore, get_media_store
from citypulse.observability import stage
from citypulse.schemas import (
    DisasterAnalysis,
    FrameRef,
    LabelResult,
    Recommendation,
    StorageLocation,
)
from citypulse.snippets import generate_snippets
from citypulse.vision.label_detector import LabelDetector, analyze_frames
from citypulse.vision.ocr import TextExtractor, extract_text_from_frames

logger = logging.getLogger(__name__)


# Holding directory under data_dir for uploads object storage rejected
UNSTORED_DIR = "unstored"


def _emergency_block(analysis: DisasterAnalysis, recommendations: List[Recommendation]) -> Dict[str, Any]:
    return {
        "recommendations": [r.to_dict() for r in recommendations],
        "severity": analysis.summary.severity_level.value,
        "immediate_action": immediate_action(recommendations),
    }


class IncidentPipeline:
    """
    Sequential processing of a single upload.

    Collaborators are injectable so callers (and tests) can swap the label
    detector, text extractor, reasoning client, incident store or media
    store. Anything not supplied is built from config.
    """

    def __init__(
        self,
        config: Optional[CityPulseConfig] = None,
        store: Optional[IncidentStore] = None,
        detector: Optional[LabelDetector] = None,
        extractor: Optional[TextExtractor] = None,
        reasoner: Optional[Reasoner] = None,
        media_store: Optional[MediaStore] = None,
    ):
        self.config = config or DEFAULT_CONFIG
        self.store = store or get_store(self.config.incidents_file)
        self.detector = detector or LabelDetector(
            model_path=self.config.yolo_model,
            min_confidence=self.config.min_label_confidence,
            max_labels=self.config.max_labels,
        )
        self.extractor = extractor or TextExtractor()
        self.reasoner = reasoner
        self.media_store = media_store or get_media_store(self.config)

    def _detect(self, frames: List[FrameRef]) -> List[LabelResult]:
        with stage("labels", frames=len(frames)) as result:
            labels = analyze_frames(frames, self.detector, self.config.max_workers)
            result["labels"] = len(labels)
            result["hazards"] = sum(1 for l in labels if l.category == "hazard")
        return labels

    def _categorize(self, labels: List[LabelResult]):
        with stage("categorize", labels=len(labels)) as result:
            analysis = categorize_disasters(labels)
            recommendations = get_emergency_recommendations(analysis.summary)
            result["severity"] = analysis.summary.severity_level.value
        return analysis, recommendations

    def _store_media(
        self,
        media_path: str,
        filename: str,
        mime_type: str,
        temporary: bool,
    ) -> StorageLocation:
        with stage("store", filename=filename) as result:
            try:
                location = self.media_store.store_file(media_path, filename, mime_type)
            except UpstreamServiceError as e:
                logger.warning("Media storage failed, using local placeholder: %s", e)
                location = StorageLocation(
                    bucket="local",
                    key=self._retain_locally(media_path, filename) if temporary else media_path,
                    placeholder=True,
                )
            result["bucket"] = location.bucket
            result["placeholder"] = location.placeholder
        return location

    def _retain_locally(self, media_path: str, filename: str) -> str:
        """Keep a temp upload under data_dir/unstored; falls back to leaving it in place"""
        directory = os.path.join(self.config.data_dir, UNSTORED_DIR)
        try:
            return retain_local_file(media_path, directory, filename)
        except OSError as e:
            logger.error("Could not move %s to %s, leaving it in place: %s", media_path, directory, e)
            return media_path

    def process_upload(
        self,
        media_path: str,
        filename: str,
        mime_type: str,
        cleanup_source: bool = True,
    ) -> Dict[str, Any]:
        """
        Run the full pipeline over one uploaded file.

        Args:
            media_path: Local path of the uploaded file
            filename: Original file name (used for the storage key)
            mime_type: Upload content type
            cleanup_source: Delete media_path when done (moved under
                data_dir/unstored instead when storage fails)

        Returns:
            Response dict with snippets, labels, disaster analysis,
            recommendations, OCR, the gated incident and the storage location

        Raises:
            PipelineFatalError: media type unsupported or file unreadable
        """
        frames: List[FrameRef] = []
        source_retained = False
        try:
            with stage("frames", mime_type=mime_type) as result:
                frames = extract_frames(media_path, mime_type, self.config)
                result["frames"] = len(frames)

            with stage("ocr", frames=len(frames)) as result:
                ocr_results = extract_text_from_frames(
                    frames, self.extractor, self.config.max_workers
                )
                result["frames_with_text"] = sum(1 for r in ocr_results if r.text_found)

            labels = self._detect(frames)
            analysis, recommendations = self._categorize(labels)

            with stage("snippets", labels=len(labels)) as result:
                snippets = generate_snippets(labels, ocr_results)
                result["snippets"] = len(snippets)

            with stage("decision", snippets=len(snippets)) as result:
                decision = analyze_incident(snippets, self.config, self.reasoner)
                result["incident_type"] = decision.incident_type
                result["confidence"] = decision.confidence

            with stage("gate", confidence=decision.confidence) as result:
                incident = self.store.create_incident(decision, snippets)
                result["status"] = incident.status.value

            location = self._store_media(media_path, filename, mime_type, temporary=cleanup_source)
            # a placeholder location points at the upload itself
            source_retained = location.placeholder
        finally:
            with stage("cleanup", frames=len(frames)):
                cleanup_frames(frames)
                if cleanup_source and not source_retained:
                    delete_local_file(media_path)

        return {
            "status": "processed",
            "media_type": mime_type,
            "frame_count": len(frames),
            "snippets": [s.to_dict() for s in snippets],
            "vision": [l.to_dict() for l in labels],
            "disasters": analysis.to_dict(),
            "emergency": _emergency_block(analysis, recommendations),
            "ocr": [r.to_dict() for r in ocr_results],
            "incident": incident.to_dict(),
            "storage": location.to_dict(),
            "processing": {
                "ocr_frames_processed": sum(1 for r in ocr_results if r.text_found),
                "vision_labels_detected": len(labels),
                "hazards_detected": sum(1 for l in labels if l.category == "hazard"),
                "disasters_identified": analysis.summary.total_disasters,
                "snippets_generated": len(snippets),
            },
        }

    def analyze_vision_only(
        self,
        media_path: str,
        mime_type: str,
        cleanup_source: bool = True,
    ) -> Dict[str, Any]:
        """
        Label detection, categorization and snippets without OCR, reasoning
        or incident creation.

        Raises:
            PipelineFatalError: media type unsupported or file unreadable
        """
        frames: List[FrameRef] = []
        try:
            with stage("frames", mime_type=mime_type) as result:
                frames = extract_frames(media_path, mime_type, self.config)
                result["frames"] = len(frames)

            labels = self._detect(frames)
            analysis, recommendations = self._categorize(labels)
            snippets = generate_snippets(labels, [])
        finally:
            cleanup_frames(frames)
            if cleanup_source:
                delete_local_file(media_path)

        return {
            "snippets": [s.to_dict() for s in snippets],
            "vision": [l.to_dict() for l in labels],
            "disasters": analysis.to_dict(),
            "emergency": _emergency_block(analysis, recommendations),
        }
