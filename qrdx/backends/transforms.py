"""Image transforms executed inside the backend worker.

Each transform takes an RGBA ``uint8`` buffer, works on its grayscale
version and returns a new RGBA buffer of the same size. Morphology runs on
the inverted image so that dark modules are the foreground being grown or
shrunk, and is inverted back before returning.
"""

import cv2
import numpy as np

from ..utils.image_utils import to_gray, gray_to_rgba

ELLIPSE = "ellipse"
RECT = "rect"

_SHAPES = {
    ELLIPSE: cv2.MORPH_ELLIPSE,
    RECT: cv2.MORPH_RECT,
}

def _kernel(shape: str, size: int) -> np.ndarray:
    if shape not in _SHAPES:
        raise ValueError(f"Unknown kernel shape: {shape!r}")
    if size < 1:
        raise ValueError(f"Kernel size must be positive, got {size}")
    return cv2.getStructuringElement(_SHAPES[shape], (size, size))

def _odd(value: int, name: str) -> int:
    if value < 3 or value % 2 == 0:
        raise ValueError(f"{name} must be an odd number >= 3, got {value}")
    return value

def morphology(image: np.ndarray, kernel_size: int, shape: str = ELLIPSE) -> np.ndarray:
    """Morphological close: fuses disconnected stylized modules."""
    inverted = cv2.bitwise_not(to_gray(image))
    closed = cv2.morphologyEx(inverted, cv2.MORPH_CLOSE, _kernel(shape, kernel_size))
    return gray_to_rgba(cv2.bitwise_not(closed))

def adaptive_threshold(image: np.ndarray, block_size: int = 21, c: float = 5) -> np.ndarray:
    """Local Gaussian threshold for gradient fills and uneven contrast."""
    gray = to_gray(image)
    binary = cv2.adaptiveThreshold(
        gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY,
        _odd(block_size, "block_size"), c
    )
    return gray_to_rgba(binary)

def otsu_threshold(image: np.ndarray) -> np.ndarray:
    """Global Otsu threshold after a light 3x3 blur."""
    blurred = cv2.GaussianBlur(to_gray(image), (3, 3), 0)
    _, binary = cv2.threshold(blurred, 0, 255, cv2.THRESH_BINARY | cv2.THRESH_OTSU)
    return gray_to_rgba(binary)

_SHARPEN_KERNEL = np.array([[0, -1, 0],
                            [-1, 5, -1],
                            [0, -1, 0]], dtype=np.float32)

def sharpen(image: np.ndarray) -> np.ndarray:
    """3x3 Laplacian sharpening."""
    filtered = cv2.filter2D(to_gray(image), cv2.CV_8U, _SHARPEN_KERNEL)
    return gray_to_rgba(filtered)

def dot_morphology(image: np.ndarray, dilate_size: int, close_size: int) -> np.ndarray:
    """Heavy elliptical dilate then rectangular close, for dotted bodies."""
    inverted = cv2.bitwise_not(to_gray(image))
    dilated = cv2.morphologyEx(inverted, cv2.MORPH_DILATE, _kernel(ELLIPSE, dilate_size))
    closed = cv2.morphologyEx(dilated, cv2.MORPH_CLOSE, _kernel(RECT, close_size))
    return gray_to_rgba(cv2.bitwise_not(closed))

def open_close(image: np.ndarray, open_size: int, close_size: int) -> np.ndarray:
    """Open (drop specks) then close (reconnect modules)."""
    inverted = cv2.bitwise_not(to_gray(image))
    opened = cv2.morphologyEx(inverted, cv2.MORPH_OPEN, _kernel(ELLIPSE, open_size))
    closed = cv2.morphologyEx(opened, cv2.MORPH_CLOSE, _kernel(RECT, close_size))
    return gray_to_rgba(cv2.bitwise_not(closed))

def unsharp(image: np.ndarray, strength: float = 1.5, radius: float = 1.0) -> np.ndarray:
    """Unsharp mask: ``gray * (1 + strength) - blur * strength``."""
    if radius <= 0:
        raise ValueError(f"radius must be positive, got {radius}")
    gray = to_gray(image)
    blur = cv2.GaussianBlur(gray, (0, 0), radius)
    sharp = cv2.addWeighted(gray, 1 + strength, blur, -strength, 0)
    return gray_to_rgba(sharp)

def highpass(image: np.ndarray, strength: float = 1.0) -> np.ndarray:
    """High-pass boost: 3x3 kernel of ``-strength`` around ``8 * strength + 1``."""
    kernel = np.full((3, 3), -float(strength), dtype=np.float32)
    kernel[1, 1] = 8.0 * strength + 1.0
    filtered = cv2.filter2D(to_gray(image), cv2.CV_8U, kernel)
    return gray_to_rgba(filtered)
