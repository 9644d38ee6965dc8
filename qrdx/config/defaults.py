"""Default configuration values."""

from typing import Any, Dict

from ..core.constants import (
    DEFAULT_KERNEL_SIZE, DEFAULT_MAX_IMAGE_SIZE, DEFAULT_TIMEOUT_MS,
    DEFAULT_BACKEND_MODULE, DEFAULT_REQUEST_TIMEOUT_S, DEFAULT_INIT_TIMEOUT_S,
)

DEFAULT_CONFIG: Dict[str, Any] = {
    # Detection defaults (mirrored into DetectionOptions)
    "kernel_size": DEFAULT_KERNEL_SIZE,  # odd, 3..51
    "use_opencv_backend": True,
    "max_image_size": DEFAULT_MAX_IMAGE_SIZE,
    "detect_multiple": False,
    "timeout_ms": DEFAULT_TIMEOUT_MS,
    "return_detailed_info": False,

    # Strategy catalog
    "extended_strategies": False,  # append morphology-rect / laplacian-sharpen / highpass
    "region_scan": False,  # append transparent-rescale / corner-scan / sliding-window

    # Backend worker
    "worker_mode": "process",  # process | thread
    "backend_module": DEFAULT_BACKEND_MODULE,
    "request_timeout_s": DEFAULT_REQUEST_TIMEOUT_S,
    "init_timeout_s": DEFAULT_INIT_TIMEOUT_S,

    # Decoder
    "decoder": "opencv",  # opencv | zbar
    "inversion_attempts": "attempt_both",  # attempt_both | dont_invert

    # Logging
    "log_level": "INFO",
    "structured_logging": False,
    "log_to_file": False,
    "log_dir": "logs",
}
