"""Engine-wide constants."""

APP_NAME = "qrdx-detection"
VERSION = "1.0.0"

SUPPORTED_IMAGE_FORMATS = (".png", ".jpg", ".jpeg", ".bmp", ".gif", ".webp", ".tif", ".tiff")

# Detection option defaults and bounds
DEFAULT_KERNEL_SIZE = 9
MIN_KERNEL_SIZE = 3
MAX_KERNEL_SIZE = 51
DEFAULT_MAX_IMAGE_SIZE = 1500
DEFAULT_TIMEOUT_MS = 30000

# Worker lifecycle
DEFAULT_BACKEND_MODULE = "cv2"
DEFAULT_REQUEST_TIMEOUT_S = 10.0
DEFAULT_INIT_TIMEOUT_S = 30.0

# Sentinel returned by the convenience API when no code is readable
NO_QR = "NO_QR"
