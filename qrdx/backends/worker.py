"""Backend worker loop.

Runs inside the background worker (a spawned process or a dedicated
thread). Reads request envelopes from one queue and writes replies to
another until it receives ``shutdown`` or the ``None`` sentinel.
"""

import importlib
import logging
from typing import Any, Callable, Dict

import numpy as np

from . import transforms
from .finder_patterns import locate_finder_patterns
from .protocol import (
    INIT, INIT_ERROR, INIT_PROGRESS, INIT_SUCCESS, SHUTDOWN,
    Message, TransformKind, error_type, parse_kind, result_type,
)

logger = logging.getLogger(__name__)

def _morphology(image: np.ndarray, kernel_size: int = 9, shape: str = transforms.ELLIPSE, **_) -> np.ndarray:
    return transforms.morphology(image, kernel_size, shape)

def _adaptive_threshold(image: np.ndarray, block_size: int = 21, c: float = 5, **_) -> np.ndarray:
    return transforms.adaptive_threshold(image, block_size, c)

def _otsu_threshold(image: np.ndarray, **_) -> np.ndarray:
    return transforms.otsu_threshold(image)

def _sharpen(image: np.ndarray, **_) -> np.ndarray:
    return transforms.sharpen(image)

def _dot_morphology(image: np.ndarray, dilate_size: int = 5, close_size: int = 9, **_) -> np.ndarray:
    return transforms.dot_morphology(image, dilate_size, close_size)

def _open_close(image: np.ndarray, open_size: int = 3, close_size: int = 9, **_) -> np.ndarray:
    return transforms.open_close(image, open_size, close_size)

def _unsharp(image: np.ndarray, strength: float = 1.5, radius: float = 1.0, **_) -> np.ndarray:
    return transforms.unsharp(image, strength, radius)

def _highpass(image: np.ndarray, strength: float = 1.0, **_) -> np.ndarray:
    return transforms.highpass(image, strength)

def _finder_patterns(image: np.ndarray, **_):
    return [candidate.to_dict() for candidate in locate_finder_patterns(image)]

HANDLERS: Dict[TransformKind, Callable[..., Any]] = {
    TransformKind.MORPHOLOGY: _morphology,
    TransformKind.ADAPTIVE_THRESHOLD: _adaptive_threshold,
    TransformKind.OTSU_THRESHOLD: _otsu_threshold,
    TransformKind.SHARPEN: _sharpen,
    TransformKind.DOT_MORPHOLOGY: _dot_morphology,
    TransformKind.OPEN_CLOSE: _open_close,
    TransformKind.UNSHARP: _unsharp,
    TransformKind.HIGHPASS: _highpass,
    TransformKind.DETECT_FINDER_PATTERNS: _finder_patterns,
}

_missing = set(TransformKind) - set(HANDLERS)
if _missing:
    raise RuntimeError(f"Worker has no handler for: {sorted(k.value for k in _missing)}")

class BackendWorker:
    """Stateful message handler; one instance per worker."""

    def __init__(self, emit: Callable[[Message], None]):
        self._emit = emit
        self.backend = None

    @property
    def ready(self) -> bool:
        return self.backend is not None

    def handle(self, message: Message) -> bool:
        """Process one message. Returns False once the worker should stop."""
        msg_type = message.get("type")
        msg_id = message.get("id")

        if msg_type == SHUTDOWN:
            return False
        if msg_type == INIT:
            self._init(msg_id, message.get("backend_module", "cv2"))
            return True

        kind = parse_kind(msg_type) if isinstance(msg_type, str) else None
        if kind is None:
            logger.warning(f"Ignoring unknown message type: {msg_type!r}")
            return True
        if not self.ready:
            self._emit({"type": error_type(kind), "id": msg_id, "error": "Backend not initialized"})
            return True

        params = {k: v for k, v in message.items() if k not in ("type", "id", "image")}
        try:
            result = HANDLERS[kind](message["image"], **params)
        except Exception as e:
            logger.debug(f"Transform {kind.value} failed: {e}")
            self._emit({"type": error_type(kind), "id": msg_id, "error": str(e)})
        else:
            self._emit({"type": result_type(kind), "id": msg_id, "result": result})
        return True

    def _init(self, msg_id: Any, module_name: str) -> None:
        if self.ready:
            self._emit({"type": INIT_SUCCESS, "id": msg_id})
            return
        self._emit({"type": INIT_PROGRESS, "id": msg_id, "percent": 10,
                    "message": f"Loading {module_name}..."})
        try:
            module = importlib.import_module(module_name)
        except Exception as e:
            self._emit({"type": INIT_ERROR, "id": msg_id,
                        "error": f"Failed to load backend '{module_name}': {e}"})
            return
        self._emit({"type": INIT_PROGRESS, "id": msg_id, "percent": 60,
                    "message": "Warming up backend..."})
        try:
            # Exercise one transform so the first real request is not the slow one
            transforms.otsu_threshold(np.full((8, 8, 4), 255, dtype=np.uint8))
        except Exception as e:
            self._emit({"type": INIT_ERROR, "id": msg_id, "error": f"Backend warm-up failed: {e}"})
            return
        self.backend = module
        version = getattr(module, "__version__", "unknown")
        self._emit({"type": INIT_PROGRESS, "id": msg_id, "percent": 100,
                    "message": f"{module_name} {version} ready"})
        self._emit({"type": INIT_SUCCESS, "id": msg_id, "version": version})

def serve(request_queue, response_queue) -> None:
    """Worker entry point: loop until shutdown or the ``None`` sentinel."""
    worker = BackendWorker(response_queue.put)
    while True:
        message = request_queue.get()
        if message is None:
            break
        try:
            if not worker.handle(message):
                break
        except Exception:
            logger.exception("Unhandled error in backend worker")
