"""Core domain entities, exceptions and constants."""

from .entities import (
    Point, QRPosition, QRLocation, FinderPatternCandidate, DecodedQR,
    DetectionOptions, DetectionProgress, DetectionRequest, DetectionResult,
    WorkerStatus, DetectionState,
)
from .exceptions import (
    ApplicationError, DetectionError, InputError, DecodeError,
    TransformTimeoutError, BackendUnavailableError, ConfigError, ValidationError,
)
from .constants import APP_NAME, VERSION, SUPPORTED_IMAGE_FORMATS, NO_QR

__all__ = [
    "Point", "QRPosition", "QRLocation", "FinderPatternCandidate", "DecodedQR",
    "DetectionOptions", "DetectionProgress", "DetectionRequest", "DetectionResult",
    "WorkerStatus", "DetectionState",
    "ApplicationError", "DetectionError", "InputError", "DecodeError",
    "TransformTimeoutError", "BackendUnavailableError", "ConfigError", "ValidationError",
    "APP_NAME", "VERSION", "SUPPORTED_IMAGE_FORMATS", "NO_QR",
]
