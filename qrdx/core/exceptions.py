"""Custom exceptions for the detection engine."""

class ApplicationError(Exception):
    """Base application error."""
    pass

class DetectionError(ApplicationError):
    """Base exception for detection-related errors."""
    pass

class InputError(DetectionError):
    """No image, or an empty image, was supplied."""
    pass

class DecodeError(DetectionError):
    """The bit decoder could not recover a payload."""
    pass

class TransformTimeoutError(DetectionError):
    """A backend transform did not answer within its per-call timeout."""
    pass

class BackendUnavailableError(DetectionError):
    """The image-processing backend is not running or could not be reached."""
    pass

class ConfigError(ApplicationError):
    """Configuration-related errors."""
    pass

class ValidationError(ApplicationError):
    """Data validation errors."""
    pass
