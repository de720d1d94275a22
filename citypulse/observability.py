"""
CityPulse Observability

Logging setup and stage-boundary events for the incident pipeline.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator

logger = logging.getLogger("citypulse.pipeline")


def setup_logging(level: str = "INFO") -> None:
    """Configure root logger for citypulse."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )


def _format_fields(fields: Dict[str, Any]) -> str:
    return " ".join(f"{key}={value}" for key, value in fields.items())


@contextmanager
def stage(name: str, **fields: Any) -> Iterator[Dict[str, Any]]:
    """
    Emit start/success/failure events around one pipeline stage.

    The yielded dict can be filled with result fields; they are attached to
    the success event. Exceptions are logged and re-raised unchanged.

    Usage:
        with stage("ocr", frames=3) as result:
            lines = run_ocr(...)
            result["frames_with_text"] = 2
    """
    started = time.monotonic()
    result: Dict[str, Any] = {}
    logger.info(
        "stage_start stage=%s %s", name, _format_fields(fields),
        extra={"stage": name, "event": "stage_start"},
    )
    try:
        yield result
    except Exception as e:
        elapsed_ms = round((time.monotonic() - started) * 1000, 1)
        logger.error(
            "stage_failure stage=%s duration_ms=%s error=%s",
            name, elapsed_ms, e,
            extra={"stage": name, "event": "stage_failure", "duration_ms": elapsed_ms},
        )
        raise
    elapsed_ms = round((time.monotonic() - started) * 1000, 1)
    logger.info(
        "stage_success stage=%s duration_ms=%s %s",
        name, elapsed_ms, _format_fields(result),
        extra={"stage": name, "event": "stage_success", "duration_ms": elapsed_ms},
    )
