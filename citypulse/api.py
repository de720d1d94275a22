"""
CityPulse FastAPI Server

HTTP surface for uploads, decisions and the incident store.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from citypulse import __version__
from citypulse.config import CityPulseConfig, DEFAULT_CONFIG
from citypulse.decision_engine import (
    Reasoner,
    analyze_incident,
    reasoning_health,
    reasoning_info,
)
from citypulse.errors import PipelineFatalError, UnsupportedMediaType, ValidationError
from citypulse.incident_store import IncidentStore, check_incident, gate_info, get_store
from citypulse.media import save_upload
from citypulse.observability import setup_logging
from citypulse.pipeline import IncidentPipeline
from citypulse.schemas import AIDecision, EvidenceSnippet, IncidentStatus
from citypulse.vision import label_info

logger = logging.getLogger(__name__)


# FastAPI app
app = FastAPI(
    title="CityPulse API",
    description="Incident decision pipeline with a human-in-the-loop confidence gate",
    version=__version__,
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:5174"],  # Vite default ports
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependencies

_pipeline: Optional[IncidentPipeline] = None


def get_config() -> CityPulseConfig:
    return DEFAULT_CONFIG


def get_pipeline() -> IncidentPipeline:
    """Get or create the process-wide pipeline"""
    global _pipeline
    if _pipeline is None:
        _pipeline = IncidentPipeline(DEFAULT_CONFIG)
    return _pipeline


def get_incident_store() -> IncidentStore:
    return get_store()


def get_reasoner() -> Optional[Reasoner]:
    """Reasoning client override; None builds one from config per call"""
    return None


# Error mapping

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})


@app.exception_handler(UnsupportedMediaType)
async def unsupported_media_handler(request: Request, exc: UnsupportedMediaType):
    return JSONResponse(
        status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
        content={"error": str(exc), "mime_type": exc.mime_type},
    )


@app.exception_handler(PipelineFatalError)
async def pipeline_fatal_handler(request: Request, exc: PipelineFatalError):
    logger.error("Upload could not be processed: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "Upload could not be processed", "details": str(exc)},
    )


# Request models

class SnippetsRequest(BaseModel):
    """Body for /llm/analyze; items are validated as evidence snippets"""
    snippets: List[Dict[str, Any]]


class IncidentCreateRequest(BaseModel):
    """Body for /incident/create"""
    ai_decision: Dict[str, Any]
    evidence: List[Dict[str, Any]]


class IncidentCheckRequest(BaseModel):
    """Body for /incident/check"""
    incident: Dict[str, Any]


def _parse_snippets(items: List[Dict[str, Any]]) -> List[EvidenceSnippet]:
    return [EvidenceSnippet.from_dict(item) for item in items]


def _incident_list(incidents) -> Dict[str, Any]:
    return {"count": len(incidents), "incidents": [i.to_dict() for i in incidents]}


# Endpoints

@app.get("/")
async def root():
    """API root endpoint"""
    return {"service": "CityPulse API", "version": __version__, "status": "operational"}


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.post("/upload")
def upload_media(
    file: UploadFile = File(...),
    pipeline: IncidentPipeline = Depends(get_pipeline),
):
    """
    Run the full incident pipeline over an uploaded image or video.

    Returns snippets, labels, disaster analysis, recommendations, OCR
    results, the gated incident and the storage location.
    """
    if not file.filename:
        raise ValidationError("No file uploaded")

    mime_type = file.content_type or ""
    path = save_upload(file.file.read(), file.filename, pipeline.config.upload_dir)
    logger.info("Upload received: %s (%s)", file.filename, mime_type)
    return pipeline.process_upload(path, file.filename, mime_type)


@app.post("/vision/analyze")
def vision_analyze(
    file: UploadFile = File(...),
    pipeline: IncidentPipeline = Depends(get_pipeline),
):
    """Label detection, hazard categorization and snippets (no OCR, no incident)"""
    if not file.filename:
        raise ValidationError("No file uploaded")

    path = save_upload(file.file.read(), file.filename, pipeline.config.upload_dir)
    return pipeline.analyze_vision_only(path, file.content_type or "")


@app.post("/llm/analyze")
def llm_analyze(
    request: SnippetsRequest,
    config: CityPulseConfig = Depends(get_config),
    reasoner: Optional[Reasoner] = Depends(get_reasoner),
):
    """Decide an incident from evidence snippets; returns the decision only"""
    snippets = _parse_snippets(request.snippets)
    logger.info("Decision request with %d snippet(s)", len(snippets))
    return analyze_incident(snippets, config, reasoner).to_dict()


@app.get("/vision/labels")
async def vision_labels():
    return label_info()


@app.get("/llm/info")
async def llm_info(config: CityPulseConfig = Depends(get_config)):
    return reasoning_info(config)


@app.get("/llm/health")
def llm_health(
    config: CityPulseConfig = Depends(get_config),
    reasoner: Optional[Reasoner] = Depends(get_reasoner),
):
    """Probe the decision engine with a synthetic snippet"""
    try:
        return reasoning_health(config, reasoner)
    except Exception as e:
        logger.error("Decision engine health probe failed: %s", e)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "error": str(e)},
        )


# Incident endpoints (fixed paths before /incident/{incident_id})

@app.get("/incident/all")
async def list_incidents(store: IncidentStore = Depends(get_incident_store)):
    return _incident_list(store.get_all())


@app.get("/incident/stats")
async def incident_stats(store: IncidentStore = Depends(get_incident_store)):
    return store.get_stats()


@app.get("/incident/gate")
async def incident_gate():
    return gate_info()


@app.get("/incident/status/review")
async def incidents_needing_review(store: IncidentStore = Depends(get_incident_store)):
    return _incident_list(store.get_by_status(IncidentStatus.NEEDS_HUMAN_REVIEW))


@app.get("/incident/status/approved")
async def incidents_auto_approved(store: IncidentStore = Depends(get_incident_store)):
    return _incident_list(store.get_by_status(IncidentStatus.AUTO_APPROVED))


@app.post("/incident/create")
def create_incident(
    request: IncidentCreateRequest,
    store: IncidentStore = Depends(get_incident_store),
):
    """
    Create an incident from a decision and its evidence.

    Status is derived from the decision confidence by the confidence gate.
    """
    decision = AIDecision.from_dict(request.ai_decision)
    evidence = _parse_snippets(request.evidence)
    return store.create_incident(decision, evidence).to_dict()


@app.post("/incident/check")
async def incident_check(request: IncidentCheckRequest):
    return check_incident(request.incident)


@app.get("/incident/{incident_id}")
async def get_incident(incident_id: str, store: IncidentStore = Depends(get_incident_store)):
    incident = store.get_by_id(incident_id)
    if incident is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Incident not found")
    return incident.to_dict()


# Main entry point for CLI

def main(config: Optional[CityPulseConfig] = None):
    """Run API server"""
    import uvicorn

    config = config or DEFAULT_CONFIG
    setup_logging(config.log_level)

    logger.info("Starting CityPulse API on %s:%d", config.api_host, config.api_port)
    logger.info("Docs: http://localhost:%d/docs", config.api_port)

    uvicorn.run(
        "citypulse.api:app",
        host=config.api_host,
        port=config.api_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
