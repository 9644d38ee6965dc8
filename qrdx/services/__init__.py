"""Services package: worker lifecycle, decoding and detection orchestration."""

from .worker_manager import WorkerManager
from .decoder import Decoder, OpenCVDecoder, ZBarDecoder, create_decoder
from .strategies import Strategy, build_catalog
from .detection_service import DetectionService
from .engine import DetectionEngine, get_detection_engine, reset_detection_engine

__all__ = [
    "WorkerManager",
    "Decoder", "OpenCVDecoder", "ZBarDecoder", "create_decoder",
    "Strategy", "build_catalog",
    "DetectionService",
    "DetectionEngine", "get_detection_engine", "reset_detection_engine",
]
