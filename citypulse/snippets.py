"""
CityPulse Evidence Snippet Generator

Merges label detections and OCR text into a short, ranked list of
explainable evidence items.
"""

import logging
from typing import Dict, List, Optional, Sequence

from citypulse.schemas import (
    EvidenceSnippet,
    LabelResult,
    OcrResult,
    SnippetType,
    round_half_up,
)

logger = logging.getLogger(__name__)


# Allow-list in match priority order
ALLOWED_TYPES = [t.value for t in SnippetType]

MIN_LABEL_CONFIDENCE = 0.70
MIN_SNIPPETS = 3
MAX_SNIPPETS = 5


def match_snippet_type(label: str) -> Optional[str]:
    """Return the first allow-listed type contained in the label, if any"""
    label_lower = (label or "").lower()
    for allowed_type in ALLOWED_TYPES:
        if allowed_type in label_lower:
            return allowed_type
    return None


def _is_usable_line(line: str) -> bool:
    return len(line) > 0 and not line.startswith("[OCR") and "Video file" not in line


def build_ocr_index(ocr_results: Optional[Sequence[OcrResult]]) -> Dict[str, List[str]]:
    """Map frame identifier -> usable OCR lines (frames without text are skipped)"""
    index: Dict[str, List[str]] = {}
    for ocr in ocr_results or []:
        if not ocr.text_found or not ocr.text:
            continue
        index[ocr.frame] = [line for line in ocr.text if _is_usable_line(line)]
    return index


def find_frame_text(frame: str, ocr_index: Dict[str, List[str]]) -> Optional[str]:
    """First usable OCR line of the first frame key that matches `frame`"""
    for key, lines in ocr_index.items():
        if key in frame or frame in key:
            return lines[0] if lines else None
    return None


def generate_snippets(
    label_results: Optional[Sequence[LabelResult]],
    ocr_results: Optional[Sequence[OcrResult]],
) -> List[EvidenceSnippet]:
    """
    Generate evidence snippets from label and OCR results.

    Args:
        label_results: Per-frame label detections (confidence 0-1)
        ocr_results: Per-frame OCR results

    Returns:
        Snippets sorted by confidence (highest first). At most 5; when
        fewer than 3 qualify, all of them.
    """
    if not label_results:
        return []

    ocr_index = build_ocr_index(ocr_results)
    snippets: List[EvidenceSnippet] = []

    for result in label_results:
        if result is None or result.confidence <= MIN_LABEL_CONFIDENCE:
            continue

        snippet_type = match_snippet_type(result.label)
        if snippet_type is None:
            continue

        snippets.append(EvidenceSnippet(
            type=snippet_type,
            confidence=round_half_up(result.confidence, 2),
            text=find_frame_text(result.frame, ocr_index),
            frame=result.frame,
        ))

    # sorted() is stable, ties keep detection order
    snippets = sorted(snippets, key=lambda s: s.confidence, reverse=True)
    limit = min(MAX_SNIPPETS, max(MIN_SNIPPETS, len(snippets)))

    logger.debug(
        "Generated %d snippet(s) from %d label(s)", min(limit, len(snippets)), len(label_results)
    )
    return snippets[:limit]
