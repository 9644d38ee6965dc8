"""Bit-matrix decoder adapters.

The decoder itself is an opaque capability: given an RGBA buffer it either
returns a payload with corner locations or nothing. Adapters translate their
library's failures into DecodeError; those, and anything unexpected, count
as "no code found".
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import cv2
import numpy as np

from ..core.entities import DecodedQR, Point, QRLocation
from ..core.exceptions import ConfigError, DecodeError
from ..utils.image_utils import to_gray

logger = logging.getLogger(__name__)

ATTEMPT_BOTH = "attempt_both"
DONT_INVERT = "dont_invert"

# Corners spanning this much of both dimensions with a tiny payload are
# almost always a false positive on the whole canvas.
FULL_FRAME_FRACTION = 0.95
MIN_FULL_FRAME_PAYLOAD = 3

class Decoder(ABC):
    """Common decode flow: grayscale, optional inversion retry, sanity checks."""

    name = "base"

    def __init__(self, inversion_attempts: str = ATTEMPT_BOTH):
        if inversion_attempts not in (ATTEMPT_BOTH, DONT_INVERT):
            raise ValueError(f"Unknown inversion_attempts: {inversion_attempts!r}")
        self.inversion_attempts = inversion_attempts

    @abstractmethod
    def _decode_gray(self, gray: np.ndarray, multiple: bool) -> List[DecodedQR]:
        """Decode a grayscale buffer; raises DecodeError when the library fails."""
        pass

    def _variants(self, image: np.ndarray):
        gray = to_gray(image)
        yield gray
        if self.inversion_attempts == ATTEMPT_BOTH:
            yield cv2.bitwise_not(gray)

    def decode_all(self, image: np.ndarray, width: int, height: int,
                   multiple: bool = True) -> List[DecodedQR]:
        """All plausible codes in the buffer (empty list when none)."""
        for variant in self._variants(image):
            try:
                found = self._decode_gray(variant, multiple)
            except DecodeError as e:
                logger.debug(f"{self.name} decoder failed: {e}")
                continue
            except Exception as e:
                logger.warning(f"Unexpected {type(e).__name__} from {self.name} decoder: {e}")
                continue
            accepted = [qr for qr in found if self._plausible(qr, width, height)]
            if accepted:
                return accepted
        return []

    def decode(self, image: np.ndarray, width: int, height: int) -> Optional[DecodedQR]:
        found = self.decode_all(image, width, height, multiple=False)
        return found[0] if found else None

    @staticmethod
    def _plausible(qr: DecodedQR, width: int, height: int) -> bool:
        data = qr.data or ""
        if not data.strip():
            return False
        pos = qr.position
        if (pos.width > width * FULL_FRAME_FRACTION and pos.height > height * FULL_FRAME_FRACTION
                and len(data) < MIN_FULL_FRAME_PAYLOAD):
            logger.debug(f"Rejecting full-frame decode with short payload {data!r}")
            return False
        return True

def _location_from_points(points: Sequence[Sequence[float]]) -> QRLocation:
    """Build a QRLocation from four corners in top-left, clockwise order."""
    p = [Point(float(x), float(y)) for x, y in points]
    return QRLocation(top_left=p[0], top_right=p[1], bottom_right=p[2], bottom_left=p[3])

def order_corners(points: Sequence[Sequence[float]]) -> List[Sequence[float]]:
    """Sort four unordered points into top-left, top-right, bottom-right, bottom-left."""
    pts = np.asarray(points, dtype=np.float64)
    sums = pts.sum(axis=1)
    diffs = pts[:, 0] - pts[:, 1]
    return [pts[np.argmin(sums)], pts[np.argmax(diffs)], pts[np.argmax(sums)], pts[np.argmin(diffs)]]

class OpenCVDecoder(Decoder):
    """``cv2.QRCodeDetector`` (default)."""

    name = "opencv"

    def _decode_gray(self, gray: np.ndarray, multiple: bool) -> List[DecodedQR]:
        # One detector per call; decode runs on executor threads
        detector = cv2.QRCodeDetector()
        try:
            if multiple:
                ok, texts, points, _ = detector.detectAndDecodeMulti(gray)
            else:
                text, points, _ = detector.detectAndDecode(gray)
        except cv2.error as e:
            raise DecodeError(f"QRCodeDetector: {e}") from e

        if multiple:
            if not ok or points is None:
                return []
            return [DecodedQR(text, _location_from_points(pts))
                    for text, pts in zip(texts, points) if text]

        if not text or points is None:
            return []
        return [DecodedQR(text, _location_from_points(points.reshape(-1, 2)[:4]))]

class ZBarDecoder(Decoder):
    """ZBar through ``pyzbar`` (``pip install qrdx-detection[zbar]``)."""

    name = "zbar"

    def __init__(self, inversion_attempts: str = ATTEMPT_BOTH):
        super().__init__(inversion_attempts)
        try:
            from pyzbar import pyzbar
        except ImportError as e:
            raise ConfigError("The zbar decoder needs the pyzbar package and the zbar shared library") from e
        self._pyzbar = pyzbar

    def _decode_gray(self, gray: np.ndarray, multiple: bool) -> List[DecodedQR]:
        try:
            symbols = self._pyzbar.decode(gray, symbols=[self._pyzbar.ZBarSymbol.QRCODE])
        except self._pyzbar.PyZbarError as e:
            raise DecodeError(f"zbar: {e}") from e
        results = []
        for symbol in symbols:
            polygon = [(pt.x, pt.y) for pt in symbol.polygon]
            if len(polygon) != 4:
                r = symbol.rect
                polygon = [(r.left, r.top), (r.left + r.width, r.top),
                           (r.left + r.width, r.top + r.height), (r.left, r.top + r.height)]
            text = symbol.data.decode("utf-8", errors="replace")
            results.append(DecodedQR(text, _location_from_points(order_corners(polygon))))
            if not multiple:
                break
        return results

_DECODERS = {
    OpenCVDecoder.name: OpenCVDecoder,
    ZBarDecoder.name: ZBarDecoder,
}

def create_decoder(name: str = "opencv", inversion_attempts: str = ATTEMPT_BOTH) -> Decoder:
    """Instantiate a decoder by name."""
    if name not in _DECODERS:
        raise ValueError(f"Unknown decoder: {name!r} (expected one of {sorted(_DECODERS)})")
    return _DECODERS[name](inversion_attempts)
