"""Message protocol spoken across the worker boundary.

Every message is a dict envelope ``{"type": ..., "id": ..., **payload}``.
Requests carry a :class:`TransformKind` value as their type; the worker
answers with ``"<kind>-result"`` (payload ``result``) or ``"<kind>-error"``
(payload ``error``), echoing the request ``id``.
"""
from enum import Enum
from typing import Any, Dict, Optional

class TransformKind(str, Enum):
    """Closed set of operations the worker understands."""
    MORPHOLOGY = "morphology"
    ADAPTIVE_THRESHOLD = "adaptive-threshold"
    OTSU_THRESHOLD = "otsu-threshold"
    SHARPEN = "sharpen"
    DOT_MORPHOLOGY = "dot-morphology"
    OPEN_CLOSE = "open-close"
    UNSHARP = "unsharp"
    HIGHPASS = "highpass"
    DETECT_FINDER_PATTERNS = "detect-finder-patterns"

# Lifecycle message types
INIT = "init"
INIT_SUCCESS = "init-success"
INIT_ERROR = "init-error"
INIT_PROGRESS = "init-progress"
SHUTDOWN = "shutdown"
# Emitted by a channel, never by the worker itself, when the worker dies
WORKER_ERROR = "worker-error"

RESULT_SUFFIX = "-result"
ERROR_SUFFIX = "-error"

Message = Dict[str, Any]

def result_type(kind: TransformKind) -> str:
    return kind.value + RESULT_SUFFIX

def error_type(kind: TransformKind) -> str:
    return kind.value + ERROR_SUFFIX

def make_request(kind: TransformKind, request_id: str, **payload: Any) -> Message:
    return {"type": kind.value, "id": request_id, **payload}

def parse_kind(message_type: str) -> Optional[TransformKind]:
    """Map a request type string to its TransformKind, or None if unknown."""
    try:
        return TransformKind(message_type)
    except ValueError:
        return None
