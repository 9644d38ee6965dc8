"""Convenience entry points built on the process-wide detection engine.

All functions are coroutines. Each accepts an optional ``engine``; by default
the shared engine from :func:`get_detection_engine` is used and its backend
worker is started on first use.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Union

import numpy as np

from .core.constants import NO_QR
from .core.entities import DetectionOptions, DetectionResult, ProgressCallback
from .core.exceptions import DetectionError
from .services.engine import DetectionEngine, get_detection_engine
from .utils.image_utils import is_empty_image, load_image

logger = logging.getLogger(__name__)

ImageSource = Union[str, Path, bytes, bytearray, np.ndarray]

@dataclass
class VerificationResult:
    valid: bool
    actual_data: Optional[str] = None
    result: Optional[DetectionResult] = None

def _load(source: ImageSource) -> Optional[np.ndarray]:
    if source is None or isinstance(source, np.ndarray):
        return source
    return load_image(source)

async def detect_from_array(image: np.ndarray, options: Optional[DetectionOptions] = None,
                            on_progress: Optional[ProgressCallback] = None,
                            engine: Optional[DetectionEngine] = None,
                            **overrides: Any) -> List[DetectionResult]:
    """Detect QR codes in an RGBA, RGB or grayscale array."""
    engine = engine or get_detection_engine()
    return await engine.detect(image, options, on_progress, **overrides)

async def detect_from_bytes(data: bytes, options: Optional[DetectionOptions] = None,
                            on_progress: Optional[ProgressCallback] = None,
                            engine: Optional[DetectionEngine] = None,
                            **overrides: Any) -> List[DetectionResult]:
    """Detect QR codes in encoded image bytes (PNG, JPEG, ...).

    Raises:
        InputError: The bytes are not a readable image
    """
    return await detect_from_array(load_image(data), options, on_progress, engine, **overrides)

async def detect_from_file(path: Union[str, Path], options: Optional[DetectionOptions] = None,
                           on_progress: Optional[ProgressCallback] = None,
                           engine: Optional[DetectionEngine] = None,
                           **overrides: Any) -> List[DetectionResult]:
    """Detect QR codes in an image file.

    Raises:
        InputError: The file is missing or not a readable image
    """
    return await detect_from_array(load_image(path), options, on_progress, engine, **overrides)

async def is_qr_code_readable(source: ImageSource,
                              engine: Optional[DetectionEngine] = None) -> bool:
    """True when at least one QR code decodes from ``source``."""
    try:
        results = await detect_from_array(_load(source), engine=engine, return_detailed_info=False)
    except DetectionError as e:
        logger.debug(f"Readability check failed: {e}")
        return False
    return len(results) > 0

async def verify_qr_code(source: ImageSource, expected_data: str,
                         options: Optional[DetectionOptions] = None,
                         engine: Optional[DetectionEngine] = None) -> VerificationResult:
    """Check that ``source`` decodes to ``expected_data``.

    When several codes are found any exact match wins; otherwise the first
    decoded payload is reported as ``actual_data``.
    """
    try:
        results = await detect_from_array(_load(source), options, engine=engine)
    except DetectionError as e:
        logger.debug(f"Verification failed: {e}")
        return VerificationResult(valid=False)

    if not results:
        return VerificationResult(valid=False)
    for result in results:
        if result.decoded_text == expected_data:
            return VerificationResult(valid=True, actual_data=result.decoded_text, result=result)
    return VerificationResult(valid=False, actual_data=results[0].decoded_text, result=results[0])

async def read_qr_code(source: Optional[ImageSource], return_full_data: bool = False,
                       engine: Optional[DetectionEngine] = None) -> Union[str, DetectionResult]:
    """Payload of the first readable code, or the ``NO_QR`` sentinel.

    Missing or empty images, unreadable files and images without a code all
    yield ``NO_QR``.
    """
    try:
        image = _load(source)
    except DetectionError as e:
        logger.debug(f"Could not load image: {e}")
        return NO_QR
    if is_empty_image(image):
        return NO_QR

    results = await detect_from_array(image, engine=engine)
    if not results:
        return NO_QR
    return results[0] if return_full_data else results[0].decoded_text
