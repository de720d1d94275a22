"""
CityPulse Media Preprocessing

Turns an uploaded image or video into the frames OCR and label detection
run on.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

import cv2

from citypulse.config import CityPulseConfig, DEFAULT_CONFIG
from citypulse.errors import PipelineFatalError, UnsupportedMediaType
from citypulse.schemas import FrameRef

logger = logging.getLogger(__name__)


def is_image(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and mime_type.startswith("image/")


def is_video(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and mime_type.startswith("video/")


def ensure_readable(media_path: str) -> None:
    """
    Raises:
        PipelineFatalError: the uploaded file is missing or unreadable
    """
    path = Path(media_path)
    if not path.is_file() or not os.access(path, os.R_OK):
        raise PipelineFatalError(f"Uploaded file is missing or unreadable: {media_path}")


def extract_frames(
    media_path: str,
    mime_type: str,
    config: Optional[CityPulseConfig] = None,
) -> List[FrameRef]:
    """
    Split media into frames.

    Images are a single frame. Videos are sampled at the configured frame
    indices; when sampling fails the video itself is returned as a single
    undecoded frame.

    Raises:
        UnsupportedMediaType: mime type is neither image/* nor video/*
        PipelineFatalError: file is missing or unreadable
    """
    if config is None:
        config = DEFAULT_CONFIG

    if not (is_image(mime_type) or is_video(mime_type)):
        raise UnsupportedMediaType(mime_type)

    ensure_readable(media_path)

    if is_image(mime_type):
        return [FrameRef(type="image", path=media_path, index=1)]

    Path(config.upload_dir).mkdir(parents=True, exist_ok=True)
    output_dir = Path(tempfile.mkdtemp(dir=config.upload_dir, prefix="frames-"))
    try:
        frames = sample_video_frames(media_path, config.frame_indices, output_dir)
    except Exception as e:
        logger.warning("Frame extraction failed, treating video as single frame: %s", e)
        frames = []

    if not frames:
        shutil.rmtree(output_dir, ignore_errors=True)
        logger.warning("No frames extracted from %s, treating video as single frame", media_path)
        return [FrameRef(type="video", path=media_path, index=1)]

    logger.info("Extracted %d frame(s) from %s", len(frames), media_path)
    return frames


def sample_video_frames(
    video_path: str,
    frame_indices: Sequence[int],
    output_dir: Path,
) -> List[FrameRef]:
    """
    Read the requested frame indices from a video and save them as JPEGs.

    Indices past the end of the video are skipped.
    """
    capture = cv2.VideoCapture(video_path)
    if not capture.isOpened():
        raise IOError(f"Cannot open video: {video_path}")

    output_dir.mkdir(parents=True, exist_ok=True)
    frames: List[FrameRef] = []
    try:
        for frame_index in sorted(set(frame_indices)):
            capture.set(cv2.CAP_PROP_POS_FRAMES, frame_index)
            ok, image = capture.read()
            if not ok or image is None:
                continue

            ref = FrameRef(type="frame", path="", index=len(frames) + 1)
            frame_path = output_dir / ref.frame_id
            if not cv2.imwrite(str(frame_path), image):
                raise IOError(f"Cannot write frame to {frame_path}")
            ref.path = str(frame_path)
            frames.append(ref)
    finally:
        capture.release()

    return frames


def cleanup_frames(frames: Sequence[FrameRef]) -> None:
    """Remove extracted frame files and their temp directory"""
    directories = set()
    for frame in frames:
        if frame.type != "frame":
            continue
        try:
            os.remove(frame.path)
        except OSError as e:
            logger.debug("Could not remove frame %s: %s", frame.path, e)
        directories.add(os.path.dirname(frame.path))

    for directory in directories:
        shutil.rmtree(directory, ignore_errors=True)


def save_upload(data: bytes, filename: str, upload_dir: str) -> str:
    """Write uploaded bytes to a temp file and return its path"""
    Path(upload_dir).mkdir(parents=True, exist_ok=True)
    suffix = Path(filename or "").suffix
    fd, path = tempfile.mkstemp(dir=upload_dir, suffix=suffix)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    return path


def delete_local_file(path: str) -> None:
    try:
        os.remove(path)
    except OSError as e:
        logger.warning("Failed to delete temp file %s: %s", path, e)


def retain_local_file(path: str, directory: str, filename: str) -> str:
    """
    Move a temp upload into a local holding directory and return its new path.

    Used when object storage is unavailable so the evidence media survives
    upload cleanup.
    """
    Path(directory).mkdir(parents=True, exist_ok=True)
    fd, target = tempfile.mkstemp(dir=directory, prefix="unstored-", suffix=f"-{Path(filename or 'upload').name}")
    os.close(fd)
    shutil.move(path, target)
    return target
