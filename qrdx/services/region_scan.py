"""Decode-only passes over rescaled copies and sub-regions of an image.

Small or off-center codes are often missed on the whole frame. Each scan
yields :class:`ScanView` buffers (a rescaled copy, an upscaled corner, a
sliding window) together with the mapping from view pixels back to the
image the views were cut from.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterator

import numpy as np

from ..core.entities import QRLocation
from ..utils.image_utils import add_quiet_zone, resize_to

TRANSPARENT_RESCALE = "transparent-rescale"
CORNER_SCAN = "corner-scan"
SLIDING_WINDOW = "sliding-window"

# Transparent inputs: whole-frame rescales on a wide quiet zone
TRANSPARENT_SCALES = (1.0, 1.5, 2.0, 0.75)
TRANSPARENT_PADDING = 50
MAX_RESCALED_PIXELS = 4_000_000

# (name, x, y, width, height) as fractions of the frame
CORNER_REGIONS = (
    ("top-right", 0.7, 0.0, 0.3, 0.35),
    ("top-left", 0.0, 0.0, 0.35, 0.35),
    ("bottom-right", 0.65, 0.65, 0.35, 0.35),
    ("bottom-left", 0.0, 0.65, 0.35, 0.35),
    ("top-center", 0.25, 0.0, 0.5, 0.35),
    ("top-edge", 0.2, 0.0, 0.6, 0.3),
    ("center", 0.25, 0.25, 0.5, 0.5),
)
CORNER_UPSCALES = (2.0, 2.5, 3.0, 1.5)
CORNER_PADDING = 40
MAX_REGION_PIXELS = 3_000_000
MIN_REGION_SIDE = 100

WINDOW_RATIOS = (0.5, 0.4, 0.3)
WINDOW_GRID = 3
MAX_WINDOW_PIXELS = 2_000_000

@dataclass(frozen=True)
class ScanView:
    """A buffer to decode and the affine map back to the source frame.

    A point ``(x, y)`` in ``image`` corresponds to
    ``(x * scale_x + offset_x, y * scale_y + offset_y)`` in the source.
    """
    label: str
    image: np.ndarray
    scale_x: float
    scale_y: float
    offset_x: float = 0.0
    offset_y: float = 0.0

    def to_source(self, location: QRLocation) -> QRLocation:
        return location.scaled(self.scale_x, self.scale_y).shifted(self.offset_x, self.offset_y)

def _padded_view(label: str, image: np.ndarray, padding: int, scale_x: float, scale_y: float,
                 origin_x: float = 0.0, origin_y: float = 0.0) -> ScanView:
    return ScanView(label, add_quiet_zone(image, padding), scale_x, scale_y,
                    origin_x - padding * scale_x, origin_y - padding * scale_y)

def transparent_views(image: np.ndarray) -> Iterator[ScanView]:
    """The whole frame at 1x, 1.5x, 2x and 0.75x, each on a 50 px quiet zone."""
    h, w = image.shape[:2]
    for scale in TRANSPARENT_SCALES:
        width, height = int(w * scale), int(h * scale)
        if width < 1 or height < 1 or width * height > MAX_RESCALED_PIXELS:
            continue
        resized = resize_to(image, width, height)
        yield _padded_view(f"{scale:g}x", resized, TRANSPARENT_PADDING, w / width, h / height)

def corner_views(image: np.ndarray) -> Iterator[ScanView]:
    """Corners, the top band and the center, each upscaled on a 40 px quiet zone.

    Upscaled regions smaller than 100 px on a side or larger than 3 MP are
    skipped.
    """
    h, w = image.shape[:2]
    for name, fx, fy, fw, fh in CORNER_REGIONS:
        rx, ry = int(w * fx), int(h * fy)
        rw, rh = int(w * fw), int(h * fh)
        if rw < 1 or rh < 1:
            continue
        region = image[ry:ry + rh, rx:rx + rw]
        for upscale in CORNER_UPSCALES:
            tw, th = int(rw * upscale), int(rh * upscale)
            if tw < MIN_REGION_SIDE or th < MIN_REGION_SIDE or tw * th > MAX_REGION_PIXELS:
                continue
            yield _padded_view(f"{name}@{upscale:g}x", resize_to(region, tw, th), CORNER_PADDING,
                               rw / tw, rh / th, rx, ry)

def window_views(image: np.ndarray) -> Iterator[ScanView]:
    """A 3x3 grid of windows at 50%, 40% and 30% of the frame.

    Windows are upscaled 2x, or 2.5x below 40%, without extra padding.
    """
    h, w = image.shape[:2]
    for ratio in WINDOW_RATIOS:
        ww, wh = int(w * ratio), int(h * ratio)
        if ww < 1 or wh < 1:
            continue
        upscale = 2.5 if ratio < 0.4 else 2.0
        tw, th = int(ww * upscale), int(wh * upscale)
        if tw * th > MAX_WINDOW_PIXELS:
            continue
        step_x = (w - ww) // (WINDOW_GRID - 1) or 1
        step_y = (h - wh) // (WINDOW_GRID - 1) or 1
        for gy in range(WINDOW_GRID):
            for gx in range(WINDOW_GRID):
                x = min(gx * step_x, w - ww)
                y = min(gy * step_y, h - wh)
                window = resize_to(image[y:y + wh, x:x + ww], tw, th)
                yield ScanView(f"{round(ratio * 100)}%@{gx},{gy}", window, ww / tw, wh / th, x, y)

SCANS: Dict[str, Callable[[np.ndarray], Iterator[ScanView]]] = {
    TRANSPARENT_RESCALE: transparent_views,
    CORNER_SCAN: corner_views,
    SLIDING_WINDOW: window_views,
}

def scan_views(scan: str, image: np.ndarray) -> Iterator[ScanView]:
    if scan not in SCANS:
        raise ValueError(f"Unknown scan: {scan!r} (expected one of {sorted(SCANS)})")
    return SCANS[scan](image)
