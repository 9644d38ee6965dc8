"""Backend worker: protocol, transforms, finder localizer and channels."""

from .protocol import TransformKind
from .channels import WorkerChannel, ProcessChannel, ThreadChannel, create_channel, channel_factory
from .finder_patterns import locate_finder_patterns

__all__ = [
    "TransformKind",
    "WorkerChannel",
    "ProcessChannel",
    "ThreadChannel",
    "create_channel",
    "channel_factory",
    "locate_finder_patterns",
]
