"""
CityPulse Error Taxonomy

Exceptions raised across the incident pipeline.

- ValidationError: malformed caller input, rejected before any stage runs.
- UpstreamServiceError: label detection, OCR, reasoning or storage failed.
  Always caught where the service is used and turned into a degraded result.
- PersistenceError: the incident file could not be written. Logged, never
  surfaced to the caller.
- PipelineFatalError: the upload cannot be processed at all (unsupported
  media, unreadable file). Surfaced to the caller; no incident is created.
"""


class CityPulseError(Exception):
    """Base class for all CityPulse errors"""


class ValidationError(CityPulseError):
    """Caller input is missing required fields or has the wrong types"""


class UpstreamServiceError(CityPulseError):
    """An external collaborator (vision, OCR, reasoning, storage) failed"""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service


class PersistenceError(CityPulseError):
    """Durable incident storage could not be written"""


class PipelineFatalError(CityPulseError):
    """The uploaded media cannot be processed"""


class UnsupportedMediaType(PipelineFatalError):
    """The mime type is neither image/* nor video/*"""

    def __init__(self, mime_type: str):
        super().__init__(f"Unsupported media type: {mime_type or 'unknown'}")
        self.mime_type = mime_type
