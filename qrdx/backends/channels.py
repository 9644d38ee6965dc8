"""Message channels to the backend worker.

A channel owns the worker (process or thread) plus a reader thread that
pulls replies off the response queue and hands them to ``on_message``.
``on_message`` is called from the reader thread; callers that live on an
event loop are expected to marshal it themselves.
"""

import logging
import queue
import threading
from abc import ABC, abstractmethod
from multiprocessing import get_context
from typing import Callable, Optional

import numpy as np

from ..core.exceptions import BackendUnavailableError
from .protocol import SHUTDOWN, WORKER_ERROR, Message
from .worker import serve

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Message], None]

PROCESS = "process"
THREAD = "thread"

class WorkerChannel(ABC):
    """Bidirectional envelope channel to one worker."""

    mode = ""
    POLL_INTERVAL = 0.5

    def __init__(self):
        self._on_message: Optional[MessageHandler] = None
        self._reader: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._requests = None
        self._responses = None

    @abstractmethod
    def _spawn(self) -> None:
        """Create queues and start the worker."""
        pass

    @abstractmethod
    def _worker_alive(self) -> bool:
        pass

    @abstractmethod
    def _join_worker(self, timeout: float) -> None:
        pass

    @property
    def is_open(self) -> bool:
        return self._reader is not None and not self._stop_event.is_set()

    def start(self, on_message: MessageHandler) -> None:
        if self._reader is not None:
            raise BackendUnavailableError("Channel already started")
        self._on_message = on_message
        try:
            self._spawn()
        except Exception as e:
            raise BackendUnavailableError(f"Failed to start worker: {e}") from e
        self._reader = threading.Thread(
            target=self._read_loop, name=f"qrdx-{self.mode}-reader", daemon=True
        )
        self._reader.start()
        logger.debug(f"{self.mode} channel started")

    def send(self, message: Message) -> None:
        if not self.is_open:
            raise BackendUnavailableError("Worker channel is closed")
        self._requests.put(self._prepare(message))

    def _prepare(self, message: Message) -> Message:
        return message

    def _read_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                message = self._responses.get(timeout=self.POLL_INTERVAL)
            except queue.Empty:
                if not self._worker_alive():
                    if not self._stop_event.is_set():
                        logger.error("Backend worker exited unexpectedly")
                        self._deliver({"type": WORKER_ERROR, "error": "Backend worker exited unexpectedly"})
                    break
                continue
            except (EOFError, OSError) as e:
                if not self._stop_event.is_set():
                    self._deliver({"type": WORKER_ERROR, "error": f"Worker channel broken: {e}"})
                break
            self._deliver(message)

    def _deliver(self, message: Message) -> None:
        try:
            self._on_message(message)
        except Exception:
            logger.exception("Error delivering worker message")

    def close(self, timeout: float = 2.0) -> None:
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        if self._requests is not None:
            try:
                self._requests.put({"type": SHUTDOWN})
            except Exception as e:
                logger.debug(f"Could not send shutdown: {e}")
            self._join_worker(timeout)
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout)
        logger.debug(f"{self.mode} channel closed")

class ProcessChannel(WorkerChannel):
    """Worker in a separate spawn-context process."""

    mode = PROCESS

    def __init__(self):
        super().__init__()
        self._process = None

    def _spawn(self) -> None:
        ctx = get_context("spawn")
        self._requests = ctx.Queue()
        self._responses = ctx.Queue()
        self._process = ctx.Process(
            target=serve, args=(self._requests, self._responses),
            name="qrdx-backend", daemon=True
        )
        self._process.start()

    def _worker_alive(self) -> bool:
        return self._process is not None and self._process.is_alive()

    def _join_worker(self, timeout: float) -> None:
        if self._process is None:
            return
        self._process.join(timeout)
        if self._process.is_alive():
            logger.warning("Backend process did not exit, terminating")
            self._process.terminate()
            self._process.join(timeout)

class ThreadChannel(WorkerChannel):
    """Worker on a dedicated daemon thread in this process."""

    mode = THREAD

    def __init__(self):
        super().__init__()
        self._thread: Optional[threading.Thread] = None

    def _spawn(self) -> None:
        self._requests = queue.Queue()
        self._responses = queue.Queue()
        self._thread = threading.Thread(
            target=serve, args=(self._requests, self._responses),
            name="qrdx-backend", daemon=True
        )
        self._thread.start()

    def _prepare(self, message: Message) -> Message:
        # Buffers cross by value, same as the process channel
        return {k: (v.copy() if isinstance(v, np.ndarray) else v) for k, v in message.items()}

    def _worker_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _join_worker(self, timeout: float) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

_CHANNELS = {
    PROCESS: ProcessChannel,
    THREAD: ThreadChannel,
}

def create_channel(worker_mode: str = PROCESS) -> WorkerChannel:
    try:
        return _CHANNELS[worker_mode]()
    except KeyError:
        raise ValueError(f"Unknown worker mode: {worker_mode!r} (expected one of {sorted(_CHANNELS)})") from None

def channel_factory(worker_mode: str = PROCESS) -> Callable[[], WorkerChannel]:
    """Validate ``worker_mode`` now, build channels later."""
    if worker_mode not in _CHANNELS:
        raise ValueError(f"Unknown worker mode: {worker_mode!r}")
    return lambda: create_channel(worker_mode)
