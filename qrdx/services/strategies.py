"""Ordered catalog of preprocessing strategies."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..backends.protocol import TransformKind
from ..backends.transforms import ELLIPSE, RECT
from ..core.constants import DEFAULT_KERNEL_SIZE
from .region_scan import CORNER_SCAN, SLIDING_WINDOW, TRANSPARENT_RESCALE

DIRECT = "direct"

@dataclass(frozen=True)
class Strategy:
    """One named attempt: a worker transform (or none) plus its parameters.

    ``scan`` names a decode-only region scan instead of a transform.
    """
    name: str
    kind: Optional[TransformKind] = None
    params: Dict[str, Any] = field(default_factory=dict)
    scan: Optional[str] = None

    @property
    def requires_worker(self) -> bool:
        return self.kind is not None

def build_catalog(kernel_size: int = DEFAULT_KERNEL_SIZE, extended: bool = False,
                  region_scan: bool = False) -> List[Strategy]:
    """Strategies in priority order; ``direct`` is always first.

    Args:
        kernel_size: Morphology kernel size (odd)
        extended: Append the rect-kernel, Laplacian and high-pass passes
        region_scan: Append the transparent rescale, corner and sliding-window scans

    Returns:
        List[Strategy]: Fresh list, safe to mutate
    """
    k = kernel_size
    catalog = [
        Strategy(DIRECT),
        Strategy("morphology-ellipse", TransformKind.MORPHOLOGY, {"kernel_size": k, "shape": ELLIPSE}),
        Strategy("adaptive-threshold", TransformKind.ADAPTIVE_THRESHOLD, {"block_size": 21, "c": 5}),
        Strategy("otsu-threshold", TransformKind.OTSU_THRESHOLD),
        Strategy("sharpen", TransformKind.UNSHARP, {"strength": 1.5, "radius": 1.0}),
        Strategy("dot-morphology", TransformKind.DOT_MORPHOLOGY, {"dilate_size": max(3, k - 4), "close_size": k}),
        Strategy("open-close", TransformKind.OPEN_CLOSE, {"open_size": 3, "close_size": k}),
    ]
    if extended:
        catalog += [
            Strategy("morphology-rect", TransformKind.MORPHOLOGY, {"kernel_size": k, "shape": RECT}),
            Strategy("laplacian-sharpen", TransformKind.SHARPEN),
            Strategy("highpass", TransformKind.HIGHPASS, {"strength": 2.0}),
        ]
    if region_scan:
        catalog += [Strategy(name, scan=name) for name in (TRANSPARENT_RESCALE, CORNER_SCAN, SLIDING_WINDOW)]
    return catalog
