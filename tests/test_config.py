"""
Tests for environment configuration and logging helpers.
"""

import logging

import pytest

from citypulse.config import CityPulseConfig
from citypulse.observability import stage


class TestConfigFromEnv:
    """Environment variable handling"""

    def test_defaults(self, monkeypatch):
        for name in ("GROQ_API_KEY", "CITYPULSE_LLM_API_KEY", "CITYPULSE_DATA_DIR", "CITYPULSE_FRAME_INDICES"):
            monkeypatch.delenv(name, raising=False)

        config = CityPulseConfig.from_env()

        assert config.llm_api_key is None
        assert not config.reasoning_enabled
        assert config.incidents_file.endswith("incidents.json")
        assert config.frame_indices == (0, 30, 60)

    def test_placeholder_key_ignored(self, monkeypatch):
        monkeypatch.delenv("CITYPULSE_LLM_API_KEY", raising=False)
        monkeypatch.setenv("GROQ_API_KEY", "your_groq_api_key_here")

        assert not CityPulseConfig.from_env().reasoning_enabled

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GROQ_API_KEY", "gsk_test")
        monkeypatch.setenv("CITYPULSE_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("CITYPULSE_FRAME_INDICES", "5, 10")

        config = CityPulseConfig.from_env()

        assert config.reasoning_enabled
        assert config.incidents_file == str(tmp_path / "incidents.json")
        assert config.frame_indices == (5, 10)


class TestStageEvents:
    """Stage boundary logging"""

    def test_success(self, caplog):
        with caplog.at_level(logging.INFO, logger="citypulse.pipeline"):
            with stage("ocr", frames=3) as result:
                result["frames_with_text"] = 1

        events = [(r.stage, r.event) for r in caplog.records]
        assert events == [("ocr", "stage_start"), ("ocr", "stage_success")]
        assert "frames_with_text=1" in caplog.records[-1].getMessage()
        assert caplog.records[-1].duration_ms >= 0

    def test_failure_reraised(self, caplog):
        with caplog.at_level(logging.INFO, logger="citypulse.pipeline"):
            with pytest.raises(ValueError):
                with stage("frames"):
                    raise ValueError("bad media")

        assert caplog.records[-1].event == "stage_failure"
        assert caplog.records[-1].levelno == logging.ERROR
