"""QR code detection engine for stylized, rendered QR images."""

from .core.constants import VERSION as __version__, NO_QR
from .core.entities import (
    DetectionOptions, DetectionProgress, DetectionResult, FinderPatternCandidate,
    QRLocation, QRPosition, Point, WorkerStatus,
)
from .config.settings import Config, load_config
from .services.engine import DetectionEngine, get_detection_engine, reset_detection_engine
from .api import (
    detect_from_array, detect_from_bytes, detect_from_file,
    is_qr_code_readable, verify_qr_code, read_qr_code, VerificationResult,
)

__all__ = [
    "__version__", "NO_QR",
    "DetectionOptions", "DetectionProgress", "DetectionResult", "FinderPatternCandidate",
    "QRLocation", "QRPosition", "Point", "WorkerStatus",
    "Config", "load_config",
    "DetectionEngine", "get_detection_engine", "reset_detection_engine",
    "detect_from_array", "detect_from_bytes", "detect_from_file",
    "is_qr_code_readable", "verify_qr_code", "read_qr_code", "VerificationResult",
]
