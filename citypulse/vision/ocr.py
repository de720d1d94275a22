"""
CityPulse Text Extraction

OCR over frames using Tesseract. Failures yield no text, never an error
string embedded as data.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

import cv2
import pytesseract

from citypulse.schemas import FrameRef, OcrResult

logger = logging.getLogger(__name__)


class TextExtractor:
    """Tesseract OCR for scene text (street signs, banners, notices)"""

    def __init__(self, lang: str = "eng"):
        self.lang = lang

    def extract_text(self, frame: FrameRef) -> List[str]:
        """
        Extract trimmed, non-empty text lines from one frame.

        Returns an empty list on any failure.
        """
        if frame.is_undecoded_video:
            return []

        image = cv2.imread(frame.path)
        if image is None:
            logger.warning("OCR skipped, could not read image %s", frame.path)
            return []

        try:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
            text = pytesseract.image_to_string(gray, lang=self.lang)
        except Exception as e:
            logger.warning("OCR failed for %s: %s", frame.path, e)
            return []

        return [line.strip() for line in text.splitlines() if line.strip()]


def extract_text_from_frames(
    frames: Optional[Sequence[FrameRef]],
    extractor: TextExtractor,
    max_workers: int = 1,
) -> List[OcrResult]:
    """
    Run OCR over all frames, returning results in frame order.

    Frames may be processed concurrently; results are keyed by frame
    identifier, not completion order.
    """
    if not frames:
        return []

    by_frame: Dict[str, List[str]] = {}
    workers = max(1, min(max_workers, len(frames)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {frame.frame_id: executor.submit(extractor.extract_text, frame) for frame in frames}
        for frame_id, future in futures.items():
            try:
                by_frame[frame_id] = future.result()
            except Exception as e:
                logger.warning("OCR failed for %s: %s", frame_id, e)
                by_frame[frame_id] = []

    results = [
        OcrResult(
            frame=frame.frame_id,
            text=by_frame[frame.frame_id],
            frame_number=frame.index,
            text_found=len(by_frame[frame.frame_id]) > 0,
        )
        for frame in frames
    ]

    found = sum(1 for r in results if r.text_found)
    logger.info("OCR completed: %d/%d frame(s) had readable text", found, len(results))
    return results
