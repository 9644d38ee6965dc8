"""Image buffer utilities shared by the orchestrator and the worker.

Buffers are numpy ``uint8`` arrays. The canonical layout handed to decoders
and transforms is RGBA (H×W×4), matching what a rendered canvas produces.
"""

import base64
import io
from pathlib import Path
from typing import Tuple, Union

import cv2
import numpy as np
from PIL import Image

from ..core.constants import SUPPORTED_IMAGE_FORMATS
from ..core.exceptions import InputError

def is_empty_image(image) -> bool:
    """True for None, non-arrays and zero-sized buffers."""
    if image is None or not isinstance(image, np.ndarray):
        return True
    return image.ndim < 2 or image.shape[0] == 0 or image.shape[1] == 0

def to_rgba(image: np.ndarray) -> np.ndarray:
    """Normalize a grayscale, RGB or RGBA buffer to RGBA uint8."""
    if image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    channels = image.shape[2]
    if channels == 4:
        return image
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_RGB2RGBA)
    if channels == 1:
        return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2RGBA)
    raise InputError(f"Unsupported channel count: {channels}")

def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert an RGBA/RGB/gray buffer to single-channel gray."""
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)

def gray_to_rgba(gray: np.ndarray) -> np.ndarray:
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2RGBA)

def has_transparency(image: np.ndarray, min_fraction: float = 0.01) -> bool:
    """True when more than ``min_fraction`` of the pixels are not opaque."""
    if image.ndim != 3 or image.shape[2] != 4:
        return False
    transparent = np.count_nonzero(image[:, :, 3] < 250)
    return transparent > image.shape[0] * image.shape[1] * min_fraction

def flatten_transparency(image: np.ndarray) -> np.ndarray:
    """Composite an RGBA buffer onto a white background (alpha becomes 255)."""
    rgba = to_rgba(image)
    alpha = rgba[:, :, 3:4].astype(np.float32) / 255.0
    if np.all(alpha >= 1.0):
        return rgba.copy()
    rgb = rgba[:, :, :3].astype(np.float32)
    flattened = np.rint(rgb * alpha + 255.0 * (1.0 - alpha)).astype(np.uint8)
    out = np.empty_like(rgba)
    out[:, :, :3] = flattened
    out[:, :, 3] = 255
    return out

def add_quiet_zone(image: np.ndarray, padding: int = 40) -> np.ndarray:
    """Surround the buffer with a white border of ``padding`` pixels."""
    rgba = to_rgba(image)
    return cv2.copyMakeBorder(
        rgba, padding, padding, padding, padding,
        cv2.BORDER_CONSTANT, value=(255, 255, 255, 255)
    )

def resize_to_max(image: np.ndarray, max_size: int) -> Tuple[np.ndarray, Tuple[float, float]]:
    """Downscale so the longest side is at most ``max_size``.

    Returns the (possibly unchanged) image and the ``(sx, sy)`` factors that
    map x and y coordinates in the returned image back to the input image.
    Each axis is truncated to whole pixels separately, so the two factors
    differ slightly on non-square inputs.
    """
    h, w = image.shape[:2]
    longest = max(h, w)
    if longest <= max_size:
        return image, (1.0, 1.0)

    scale = max_size / float(longest)
    new_w = max(1, int(w * scale))
    new_h = max(1, int(h * scale))
    resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA)
    return resized, (w / float(new_w), h / float(new_h))

def resize_to(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize to an exact size: area averaging to shrink, cubic to enlarge."""
    h, w = image.shape[:2]
    if (w, h) == (width, height):
        return image
    interpolation = cv2.INTER_AREA if width * height < w * h else cv2.INTER_CUBIC
    return cv2.resize(image, (width, height), interpolation=interpolation)

def crop_region(image: np.ndarray, x: float, y: float, width: float, height: float,
                padding: int = 30) -> np.ndarray:
    """Crop a padded box out of ``image``, clamped to its bounds."""
    h, w = image.shape[:2]
    x1 = max(0, int(x) - padding)
    y1 = max(0, int(y) - padding)
    x2 = min(w, int(np.ceil(x + width)) + padding)
    y2 = min(h, int(np.ceil(y + height)) + padding)
    return image[y1:y2, x1:x2].copy()

def encode_png_data_url(image: np.ndarray) -> str:
    """Encode an RGBA/RGB/gray buffer as a ``data:image/png;base64`` URL."""
    if image.ndim == 3 and image.shape[2] == 4:
        bgr = cv2.cvtColor(image, cv2.COLOR_RGBA2BGRA)
    elif image.ndim == 3:
        bgr = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
    else:
        bgr = image
    ok, buf = cv2.imencode(".png", bgr)
    if not ok:
        raise ValueError("PNG encoding failed")
    return "data:image/png;base64," + base64.b64encode(buf.tobytes()).decode("ascii")

def load_image(source: Union[str, Path, bytes]) -> np.ndarray:
    """Load an image file or encoded bytes into an RGBA array via Pillow.

    Paths must carry one of :data:`SUPPORTED_IMAGE_FORMATS` as suffix;
    bytes are sniffed by Pillow.
    """
    if not isinstance(source, (bytes, bytearray)):
        suffix = Path(source).suffix.lower()
        if suffix not in SUPPORTED_IMAGE_FORMATS:
            raise InputError(f"Unsupported image format {suffix or '(none)'!r}: {source}")
    try:
        if isinstance(source, (bytes, bytearray)):
            img = Image.open(io.BytesIO(source))
        else:
            img = Image.open(Path(source))
        img.load()
    except (OSError, ValueError) as e:
        raise InputError(f"Failed to load image: {e}") from e
    if img.mode != "RGBA":
        img = img.convert("RGBA")
    return np.array(img)
