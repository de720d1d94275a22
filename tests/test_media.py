"""
Tests for media preprocessing and the media store.
"""

import json
import os

import cv2
import numpy as np
import pytest

from citypulse.config import CityPulseConfig
from citypulse.errors import PipelineFatalError, UnsupportedMediaType, UpstreamServiceError
from citypulse.media import cleanup_frames, extract_frames, retain_local_file, save_upload
from citypulse.schemas import FrameRef
from citypulse.media_store import MediaStore


def create_config(tmp_path) -> CityPulseConfig:
    return CityPulseConfig(upload_dir=str(tmp_path / "uploads"))


def write_video(path, frame_count: int = 70) -> bool:
    """Write a small MJPG video; returns False if the codec is unavailable"""
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (64, 48))
    if not writer.isOpened():
        return False
    for i in range(frame_count):
        writer.write(np.full((48, 64, 3), i % 255, dtype=np.uint8))
    writer.release()
    return True


class TestExtractFrames:
    """Image and video frame extraction"""

    def test_image_is_single_frame(self, tmp_path):
        image = tmp_path / "scene.jpg"
        image.write_bytes(b"jpeg bytes")

        frames = extract_frames(str(image), "image/jpeg", create_config(tmp_path))

        assert len(frames) == 1
        assert frames[0].type == "image"
        assert frames[0].frame_id == "frame_01.jpg"

    def test_unsupported_type(self, tmp_path):
        doc = tmp_path / "report.pdf"
        doc.write_bytes(b"%PDF")

        with pytest.raises(UnsupportedMediaType):
            extract_frames(str(doc), "application/pdf", create_config(tmp_path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(PipelineFatalError):
            extract_frames(str(tmp_path / "gone.jpg"), "image/jpeg", create_config(tmp_path))

    def test_undecodable_video_degrades(self, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"definitely not a video")

        frames = extract_frames(str(video), "video/mp4", create_config(tmp_path))

        assert len(frames) == 1
        assert frames[0].type == "video"
        assert frames[0].is_undecoded_video

    def test_video_sampled_at_indices(self, tmp_path):
        video = tmp_path / "clip.avi"
        if not write_video(video):
            pytest.skip("MJPG writer not available")

        frames = extract_frames(str(video), "video/x-msvideo", create_config(tmp_path))

        assert [f.frame_id for f in frames] == ["frame_01.jpg", "frame_02.jpg", "frame_03.jpg"]
        assert all(os.path.isfile(f.path) for f in frames)

        cleanup_frames(frames)

        assert not any(os.path.exists(f.path) for f in frames)
        assert not os.path.exists(os.path.dirname(frames[0].path))

    def test_concurrent_videos_get_separate_frame_dirs(self, tmp_path, monkeypatch):
        def fake_sample(video_path, frame_indices, output_dir):
            frames = []
            for position, _ in enumerate(frame_indices, start=1):
                path = output_dir / f"frame_{position:02d}.jpg"
                path.write_bytes(b"frame")
                frames.append(FrameRef(type="frame", path=str(path), index=position))
            return frames

        monkeypatch.setattr("citypulse.media.sample_video_frames", fake_sample)
        monkeypatch.setattr("time.time", lambda: 1700000000.0)
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"video bytes")
        config = create_config(tmp_path)

        first = extract_frames(str(video), "video/mp4", config)
        second = extract_frames(str(video), "video/mp4", config)

        first_dir = os.path.dirname(first[0].path)
        second_dir = os.path.dirname(second[0].path)
        assert first_dir != second_dir
        assert os.path.basename(first_dir).startswith("frames-")

        cleanup_frames(first)

        assert not os.path.exists(first_dir)
        assert all(os.path.exists(frame.path) for frame in second)

class TestUploads:
    """Temporary upload files"""

    def test_save_upload_keeps_suffix(self, tmp_path):
        path = save_upload(b"data", "photo.png", str(tmp_path / "uploads"))

        assert path.endswith(".png")
        with open(path, "rb") as f:
            assert f.read() == b"data"

    def test_retain_local_file_moves_upload(self, tmp_path):
        upload = save_upload(b"data", "photo.png", str(tmp_path / "uploads"))
        holding = tmp_path / "data" / "unstored"

        kept = retain_local_file(upload, str(holding), "../photo.png")

        assert not os.path.exists(upload)
        assert os.path.dirname(kept) == str(holding)
        assert kept.endswith("-photo.png")
        with open(kept, "rb") as f:
            assert f.read() == b"data"


class TestMediaStore:
    """Local object storage"""

    def test_store(self, tmp_path):
        store = MediaStore(root=str(tmp_path), bucket="media")

        location = store.store(b"video", "flood.mp4", "video/mp4")

        assert location.bucket == "media"
        assert location.key.startswith("raw/")
        assert location.key.endswith("-flood.mp4")
        assert not location.placeholder
        assert store.exists(location.key)
        with open(f"{store.object_path(location.key)}.meta.json") as f:
            assert json.load(f) == {"content_type": "video/mp4", "size": 5}

    def test_directory_parts_dropped(self, tmp_path):
        store = MediaStore(root=str(tmp_path), bucket="media")

        location = store.store(b"x", "../../etc/passwd", "image/png")

        assert "/" not in location.key[len("raw/"):]

    def test_write_failure(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store = MediaStore(root=str(blocker), bucket="media")

        with pytest.raises(UpstreamServiceError) as exc_info:
            store.store(b"x", "a.jpg", "image/jpeg")

        assert exc_info.value.service == "storage"
