"""
CityPulse Vision Package

Label detection and text extraction over uploaded frames.
"""

from citypulse.vision.label_detector import (
    LabelDetector,
    analyze_frames,
    label_info,
    select_relevant_labels,
)
from citypulse.vision.ocr import TextExtractor, extract_text_from_frames

__all__ = [
    "LabelDetector",
    "analyze_frames",
    "label_info",
    "select_relevant_labels",
    "TextExtractor",
    "extract_text_from_frames",
]
