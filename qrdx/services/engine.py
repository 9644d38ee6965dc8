"""Detection engine facade.

``DetectionEngine`` owns everything one detection session needs: the worker
manager (status and pending requests), the decoder and the orchestrator.
``get_detection_engine()`` returns a lazily created process-wide instance.
"""
from __future__ import annotations
import logging
import threading
from typing import Any, List, Optional

from ..backends.channels import channel_factory as make_channel_factory
from ..backends.protocol import TransformKind
from ..config.settings import Config
from ..core.entities import (
    DetectionOptions, DetectionResult, FinderPatternCandidate, ProgressCallback, WorkerStatus,
)
from .decoder import Decoder, create_decoder
from .detection_service import DetectionService
from .worker_manager import ChannelFactory, WorkerManager

logger = logging.getLogger(__name__)

class DetectionEngine:
    """Wires worker manager, decoder and orchestrator together."""

    def __init__(self, config: Optional[Config] = None,
                 channel_factory: Optional[ChannelFactory] = None,
                 decoder: Optional[Decoder] = None):
        self.config = config or Config()
        self.worker_manager = WorkerManager(
            channel_factory or make_channel_factory(self.config.worker_mode),
            request_timeout=self.config.request_timeout_s,
            init_timeout=self.config.init_timeout_s,
        )
        self.decoder = decoder or create_decoder(self.config.decoder, self.config.inversion_attempts)
        self.detection_service = DetectionService(
            self.worker_manager, self.decoder,
            extended_strategies=self.config.extended_strategies,
            region_scan=self.config.region_scan,
        )

    async def init(self, backend_module: Optional[str] = None) -> WorkerStatus:
        """Start the backend worker; safe to call repeatedly."""
        return await self.worker_manager.init(backend_module or self.config.backend_module)

    def status(self) -> WorkerStatus:
        return self.worker_manager.status()

    async def dispatch(self, kind: TransformKind, image: Any, **params: Any) -> Optional[Any]:
        return await self.worker_manager.dispatch(kind, image, **params)

    async def _ensure_backend(self, options: DetectionOptions) -> None:
        # A recorded failure is not retried implicitly; call init() to retry
        status = self.status()
        if options.use_opencv_backend and not status.ready and not status.loading and status.error is None:
            await self.init()

    async def detect(self, image, options: Optional[DetectionOptions] = None,
                     on_progress: Optional[ProgressCallback] = None,
                     **overrides: Any) -> List[DetectionResult]:
        """Detect QR codes in an image buffer.

        Args:
            image: numpy array (RGBA, RGB or grayscale)
            options: Per-run options; built from the config when omitted
            on_progress: Called with a DetectionProgress per strategy
            **overrides: DetectionOptions fields overriding the config defaults

        Returns:
            List[DetectionResult]: Empty when nothing decodes
        """
        if options is None:
            options = self.config.to_detection_options(**overrides)
        await self._ensure_backend(options)
        return await self.detection_service.detect(image, options, on_progress)

    async def locate_finder_patterns(self, image,
                                     options: Optional[DetectionOptions] = None) -> List[FinderPatternCandidate]:
        options = options or self.config.to_detection_options()
        await self._ensure_backend(options)
        return await self.detection_service.find_finder_patterns(image, options)

    def close(self) -> None:
        self.worker_manager.close()

    async def __aenter__(self) -> DetectionEngine:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

# Global engine
_detection_engine: Optional[DetectionEngine] = None
_engine_lock = threading.Lock()

def get_detection_engine(config: Optional[Config] = None) -> DetectionEngine:
    """Get the process-wide engine, creating it on first use.

    ``config`` only takes effect on the call that creates the engine.
    """
    global _detection_engine
    if _detection_engine is None:
        with _engine_lock:
            if _detection_engine is None:
                _detection_engine = DetectionEngine(config)
    return _detection_engine

def reset_detection_engine() -> None:
    """Close and forget the process-wide engine."""
    global _detection_engine
    with _engine_lock:
        engine, _detection_engine = _detection_engine, None
    if engine is not None:
        engine.close()
