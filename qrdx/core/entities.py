"""Domain entities (data-only structures) used across the detection engine."""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .constants import (
    DEFAULT_KERNEL_SIZE, MIN_KERNEL_SIZE, MAX_KERNEL_SIZE,
    DEFAULT_MAX_IMAGE_SIZE, DEFAULT_TIMEOUT_MS,
)
from .exceptions import ValidationError
from ..utils.geometry import bounding_box

@dataclass(frozen=True, slots=True)
class Point:
    x: float
    y: float

@dataclass(frozen=True, slots=True)
class QRPosition:
    """Axis-aligned bounding box of a decoded code."""
    x: float
    y: float
    width: float
    height: float

@dataclass(frozen=True, slots=True)
class QRLocation:
    top_left: Point
    top_right: Point
    bottom_right: Point
    bottom_left: Point

    def corners(self) -> Tuple[Point, Point, Point, Point]:
        return (self.top_left, self.top_right, self.bottom_right, self.bottom_left)

    def to_position(self) -> QRPosition:
        """Bounding rectangle of the four corners."""
        return QRPosition(*bounding_box((p.x, p.y) for p in self.corners()))

    def scaled(self, sx: float, sy: Optional[float] = None) -> QRLocation:
        """Multiply x by ``sx`` and y by ``sy`` (defaults to ``sx``)."""
        sy = sx if sy is None else sy
        return QRLocation(*(Point(p.x * sx, p.y * sy) for p in self.corners()))

    def shifted(self, dx: float, dy: float) -> QRLocation:
        return QRLocation(*(Point(p.x + dx, p.y + dy) for p in self.corners()))

@dataclass(frozen=True, slots=True)
class FinderPatternCandidate:
    """A contour that may be one of the three corner eyes.

    ``nesting_level`` counts nested child contours; it feeds the triplet
    score but never filters a candidate out.
    """
    x: int
    y: int
    width: int
    height: int
    center_x: float
    center_y: float
    area: float
    nesting_level: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FinderPatternCandidate:
        return cls(**{k: data[k] for k in cls.__dataclass_fields__})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def scaled(self, sx: float, sy: Optional[float] = None) -> FinderPatternCandidate:
        sy = sx if sy is None else sy
        if sx == 1.0 and sy == 1.0:
            return self
        return FinderPatternCandidate(
            x=int(round(self.x * sx)),
            y=int(round(self.y * sy)),
            width=int(round(self.width * sx)),
            height=int(round(self.height * sy)),
            center_x=self.center_x * sx,
            center_y=self.center_y * sy,
            area=self.area * sx * sy,
            nesting_level=self.nesting_level,
        )

@dataclass(frozen=True, slots=True)
class DecodedQR:
    """Raw decoder output before it is turned into a DetectionResult."""
    data: str
    location: QRLocation

    @property
    def position(self) -> QRPosition:
        return self.location.to_position()

@dataclass(slots=True)
class DetectionOptions:
    kernel_size: int = DEFAULT_KERNEL_SIZE
    use_opencv_backend: bool = True
    max_image_size: int = DEFAULT_MAX_IMAGE_SIZE
    detect_multiple: bool = False
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    return_detailed_info: bool = False

    def validate(self) -> None:
        """Raise ValidationError for values outside the supported ranges."""
        if not isinstance(self.kernel_size, int) or isinstance(self.kernel_size, bool):
            raise ValidationError(f"kernel_size must be an int, got {self.kernel_size!r}")
        if not MIN_KERNEL_SIZE <= self.kernel_size <= MAX_KERNEL_SIZE:
            raise ValidationError(
                f"kernel_size must be within {MIN_KERNEL_SIZE}..{MAX_KERNEL_SIZE}, got {self.kernel_size}"
            )
        if self.kernel_size % 2 == 0:
            raise ValidationError(f"kernel_size must be odd, got {self.kernel_size}")
        if self.max_image_size <= 0:
            raise ValidationError(f"max_image_size must be positive, got {self.max_image_size}")
        if self.timeout_ms <= 0:
            raise ValidationError(f"timeout_ms must be positive, got {self.timeout_ms}")

@dataclass(frozen=True, slots=True)
class DetectionProgress:
    strategy_name: str
    percent: int
    message: str
    completed_strategies: Tuple[str, ...] = ()

ProgressCallback = Callable[[DetectionProgress], None]

@dataclass(slots=True)
class DetectionRequest:
    image: Any  # numpy ndarray (RGBA, RGB or grayscale)
    options: DetectionOptions = field(default_factory=DetectionOptions)
    on_progress: Optional[ProgressCallback] = None

    @property
    def width(self) -> int:
        return 0 if self.image is None or getattr(self.image, "ndim", 0) < 2 else int(self.image.shape[1])

    @property
    def height(self) -> int:
        return 0 if self.image is None or getattr(self.image, "ndim", 0) < 2 else int(self.image.shape[0])

@dataclass(slots=True)
class DetectionResult:
    decoded_text: str
    position: QRPosition
    strategy_name: str
    corner_locations: Optional[QRLocation] = None
    confidence: Optional[float] = None
    finder_patterns: Optional[List[FinderPatternCandidate]] = None
    processed_image: Any = None  # numpy ndarray snapshot, detailed mode only
    cropped_image: Any = None  # numpy ndarray crop of the input, detailed mode only

    def to_dict(self, include_images: bool = True) -> Dict[str, Any]:
        # Local import keeps entities free of OpenCV at import time
        from ..utils.image_utils import encode_png_data_url

        d: Dict[str, Any] = {
            "decoded_text": self.decoded_text,
            "position": asdict(self.position),
            "strategy_name": self.strategy_name,
            "corner_locations": asdict(self.corner_locations) if self.corner_locations else None,
            "confidence": self.confidence,
            "finder_patterns": [fp.to_dict() for fp in self.finder_patterns] if self.finder_patterns else None,
        }
        if include_images:
            d["processed_image_url"] = encode_png_data_url(self.processed_image) if self.processed_image is not None else None
            d["cropped_image_url"] = encode_png_data_url(self.cropped_image) if self.cropped_image is not None else None
        return d

@dataclass(frozen=True, slots=True)
class WorkerStatus:
    """Readiness snapshot of the background worker.

    ``ready`` and ``loading`` never hold at the same time.
    """
    ready: bool = False
    loading: bool = False
    progress_percent: int = 0
    status_message: str = "Not initialized"
    error: Optional[str] = None

    def __post_init__(self):
        if self.ready and self.loading:
            raise ValueError("WorkerStatus cannot be ready and loading at once")

class DetectionState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE_SUCCESS = "done-success"
    DONE_EMPTY = "done-empty"
    DONE_PARTIAL = "done-partial"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES

    def advance(self, new: DetectionState) -> DetectionState:
        """Return ``new`` if a run may move there from this state."""
        if new not in _TRANSITIONS[self]:
            raise ValueError(f"Illegal detection state change {self.value} -> {new.value}")
        return new

_TERMINAL_STATES = frozenset({DetectionState.DONE_SUCCESS, DetectionState.DONE_EMPTY, DetectionState.DONE_PARTIAL})

_TRANSITIONS = {
    DetectionState.IDLE: frozenset({DetectionState.RUNNING}),
    DetectionState.RUNNING: _TERMINAL_STATES,
    DetectionState.DONE_SUCCESS: frozenset(),
    DetectionState.DONE_EMPTY: frozenset(),
    DetectionState.DONE_PARTIAL: frozenset(),
}
