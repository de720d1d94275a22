"""
CityPulse Configuration

Reasoning service, storage locations and vision settings.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


# Value shipped in the example .env; treated as "not configured"
PLACEHOLDER_API_KEY = "your_groq_api_key_here"


def _api_key_from_env() -> Optional[str]:
    key = os.getenv("CITYPULSE_LLM_API_KEY") or os.getenv("GROQ_API_KEY")
    if not key or key == PLACEHOLDER_API_KEY:
        return None
    return key


def _frame_indices_from_env() -> Tuple[int, ...]:
    raw = os.getenv("CITYPULSE_FRAME_INDICES", "0,30,60")
    return tuple(int(part) for part in raw.split(",") if part.strip())


@dataclass
class CityPulseConfig:
    """Configuration for the CityPulse incident pipeline"""

    # Reasoning service (OpenAI-compatible chat completions endpoint)
    llm_api_key: Optional[str] = None
    llm_base_url: str = "https://api.groq.com/openai/v1"
    llm_provider: str = "Groq"
    llm_model: str = "llama-3.1-70b-versatile"
    llm_temperature: float = 0.1
    llm_max_tokens: int = 500
    llm_timeout: float = 30.0

    # Storage
    data_dir: str = "data"
    incidents_file: str = "data/incidents.json"
    storage_root: str = "data/media"
    storage_bucket: str = "citypulse-media"
    upload_dir: str = "tmp"

    # Vision
    yolo_model: str = "yolov8n.pt"
    min_label_confidence: float = 50.0
    max_labels: int = 50
    frame_indices: Tuple[int, ...] = field(default_factory=lambda: (0, 30, 60))
    max_workers: int = 4

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 5000

    # Logging
    log_level: str = "INFO"

    @property
    def reasoning_enabled(self) -> bool:
        """True when an API key for the reasoning service is configured"""
        return bool(self.llm_api_key)

    @classmethod
    def from_env(cls) -> "CityPulseConfig":
        """Create config from environment variables"""
        data_dir = os.getenv("CITYPULSE_DATA_DIR", "data")
        return cls(
            llm_api_key=_api_key_from_env(),
            llm_base_url=os.getenv(
                "CITYPULSE_LLM_BASE_URL", "https://api.groq.com/openai/v1"
            ),
            llm_provider=os.getenv("CITYPULSE_LLM_PROVIDER", "Groq"),
            llm_model=os.getenv("CITYPULSE_LLM_MODEL", "llama-3.1-70b-versatile"),
            llm_timeout=float(os.getenv("CITYPULSE_LLM_TIMEOUT", "30")),
            data_dir=data_dir,
            incidents_file=os.getenv(
                "CITYPULSE_INCIDENTS_FILE", os.path.join(data_dir, "incidents.json")
            ),
            storage_root=os.getenv(
                "CITYPULSE_STORAGE_ROOT", os.path.join(data_dir, "media")
            ),
            storage_bucket=os.getenv("CITYPULSE_STORAGE_BUCKET", "citypulse-media"),
            upload_dir=os.getenv("CITYPULSE_UPLOAD_DIR", "tmp"),
            yolo_model=os.getenv("CITYPULSE_YOLO_MODEL", "yolov8n.pt"),
            min_label_confidence=float(
                os.getenv("CITYPULSE_MIN_LABEL_CONFIDENCE", "50")
            ),
            frame_indices=_frame_indices_from_env(),
            max_workers=int(os.getenv("CITYPULSE_MAX_WORKERS", "4")),
            api_host=os.getenv("CITYPULSE_API_HOST", "0.0.0.0"),
            api_port=int(os.getenv("CITYPULSE_API_PORT", "5000")),
            log_level=os.getenv("CITYPULSE_LOG_LEVEL", "INFO"),
        )


# Global default config
DEFAULT_CONFIG = CityPulseConfig.from_env()
