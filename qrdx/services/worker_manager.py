"""Lifecycle and request correlation for the backend worker.

All state (status, pending futures, the in-flight init) is touched only on
the event loop thread. The channel's reader thread hands every incoming
message over with ``loop.call_soon_threadsafe``.
"""
from __future__ import annotations
import asyncio
import itertools
import logging
from typing import Any, Callable, Dict, Optional

from ..backends.channels import WorkerChannel
from ..backends.protocol import (
    INIT, INIT_ERROR, INIT_PROGRESS, INIT_SUCCESS, WORKER_ERROR,
    ERROR_SUFFIX, RESULT_SUFFIX, Message, TransformKind, make_request,
)
from ..core.constants import DEFAULT_BACKEND_MODULE, DEFAULT_INIT_TIMEOUT_S, DEFAULT_REQUEST_TIMEOUT_S
from ..core.entities import WorkerStatus
from ..core.exceptions import BackendUnavailableError, TransformTimeoutError

logger = logging.getLogger(__name__)

ChannelFactory = Callable[[], WorkerChannel]

class WorkerManager:
    """Owns one long-lived backend worker and its readiness status."""

    def __init__(self, channel_factory: ChannelFactory,
                 request_timeout: float = DEFAULT_REQUEST_TIMEOUT_S,
                 init_timeout: float = DEFAULT_INIT_TIMEOUT_S):
        self._channel_factory = channel_factory
        self.request_timeout = request_timeout
        self.init_timeout = init_timeout

        self._channel: Optional[WorkerChannel] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._status = WorkerStatus()
        self._pending: Dict[str, asyncio.Future] = {}
        self._init_future: Optional[asyncio.Future] = None
        self._ids = itertools.count(1)

    def status(self) -> WorkerStatus:
        """Snapshot of the current status (immutable value)."""
        return self._status

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    async def init(self, backend_module: str = DEFAULT_BACKEND_MODULE) -> WorkerStatus:
        """Start the worker and load the backend; idempotent.

        Concurrent callers share one in-flight initialization. Failures are
        recorded in the returned status, never raised.
        """
        if self._status.ready:
            return self._status
        if self._init_future is not None:
            await asyncio.shield(self._init_future)
            return self._status

        self._init_future = asyncio.get_running_loop().create_future()
        try:
            await self._start(backend_module)
        except Exception as e:
            logger.exception("Backend initialization crashed")
            self._status = WorkerStatus(status_message="Initialization failed", error=str(e))
        finally:
            future, self._init_future = self._init_future, None
            if not future.done():
                future.set_result(self._status)
        return self._status

    async def _start(self, backend_module: str) -> None:
        if self._channel is not None:
            # Stale channel from a failed attempt
            self._close_channel()

        self._loop = asyncio.get_running_loop()
        self._status = WorkerStatus(loading=True, status_message="Starting backend worker...")
        logger.info(f"Initializing backend worker ({backend_module})")

        channel = self._channel_factory()
        try:
            channel.start(self._post)
        except BackendUnavailableError as e:
            logger.error(f"Backend worker failed to start: {e}")
            self._status = WorkerStatus(status_message="Backend unavailable", error=str(e))
            return
        self._channel = channel

        request_id = self._next_id(INIT)
        future = self._loop.create_future()
        self._pending[request_id] = future
        try:
            channel.send({"type": INIT, "id": request_id, "backend_module": backend_module})
            reply = await asyncio.wait_for(future, self.init_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Backend initialization timed out after {self.init_timeout}s")
            self._status = WorkerStatus(status_message="Initialization timed out",
                                        error=f"No response within {self.init_timeout}s")
            self._close_channel()
            return
        except BackendUnavailableError as e:
            self._status = WorkerStatus(status_message="Backend unavailable", error=str(e))
            self._close_channel()
            return
        finally:
            self._pending.pop(request_id, None)

        if reply is None:
            # Worker died during init; status already records it
            return
        if reply.get("type") == INIT_SUCCESS:
            version = reply.get("version", "")
            self._status = WorkerStatus(ready=True, progress_percent=100,
                                        status_message=f"Backend ready {version}".strip())
            logger.info("Backend worker ready")
        else:
            error = reply.get("error", "Unknown initialization error")
            self._status = WorkerStatus(status_message="Initialization failed", error=error)
            logger.error(f"Backend initialization failed: {error}")
            self._close_channel()

    async def call(self, kind: TransformKind, image: Any, **params: Any) -> Optional[Any]:
        """Run one transform in the worker, raising when it cannot answer.

        Returns the transform output, or None when the worker reports an
        error for this request.

        Raises:
            BackendUnavailableError: The backend is not ready or the request could not be sent
            TransformTimeoutError: No reply arrived within ``request_timeout``
        """
        if not self._status.ready or self._channel is None:
            raise BackendUnavailableError("Backend is not ready")

        request_id = self._next_id(kind.value)
        # Replies go to whichever loop is currently using the worker
        self._loop = asyncio.get_running_loop()
        future = self._loop.create_future()
        self._pending[request_id] = future
        try:
            self._channel.send(make_request(kind, request_id, image=image, **params))
            return await asyncio.wait_for(future, self.request_timeout)
        except asyncio.TimeoutError:
            raise TransformTimeoutError(f"{kind.value} timed out after {self.request_timeout}s") from None
        finally:
            self._pending.pop(request_id, None)

    async def dispatch(self, kind: TransformKind, image: Any, **params: Any) -> Optional[Any]:
        """Run one transform in the worker.

        Returns the transform output, or None when the backend is not ready,
        the worker reports an error, or no reply arrives in time.
        """
        if not self._status.ready or self._channel is None:
            return None
        try:
            return await self.call(kind, image, **params)
        except TransformTimeoutError as e:
            logger.warning(str(e))
        except BackendUnavailableError as e:
            logger.warning(f"{kind.value} not sent: {e}")
        return None

    def _post(self, message: Message) -> None:
        """Called on the channel reader thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._handle_message, message)
        except RuntimeError:
            # Loop closed between the check and the call
            logger.debug("Dropped worker message after loop shutdown")

    def _resolve(self, request_id: Any, value: Any) -> None:
        future = self._pending.get(request_id)
        if future is None:
            logger.debug(f"No pending request for id {request_id!r}")
            return
        if not future.done():
            future.set_result(value)

    def _handle_message(self, message: Message) -> None:
        msg_type = message.get("type", "")
        request_id = message.get("id")

        if msg_type == INIT_PROGRESS:
            if self._status.loading:
                self._status = WorkerStatus(
                    loading=True,
                    progress_percent=int(message.get("percent", self._status.progress_percent)),
                    status_message=message.get("message", self._status.status_message),
                )
        elif msg_type in (INIT_SUCCESS, INIT_ERROR):
            self._resolve(request_id, message)
        elif msg_type == WORKER_ERROR:
            error = message.get("error", "Backend worker stopped")
            logger.error(f"Backend worker error: {error}")
            self._status = WorkerStatus(status_message="Backend worker stopped", error=error)
            self._fail_pending()
            self._close_channel()
        elif msg_type.endswith(RESULT_SUFFIX):
            self._resolve(request_id, message.get("result"))
        elif msg_type.endswith(ERROR_SUFFIX):
            logger.debug(f"Worker reported {msg_type}: {message.get('error')}")
            self._resolve(request_id, None)
        else:
            logger.warning(f"Unknown worker message type: {msg_type!r}")

    def _fail_pending(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_result(None)

    def _close_channel(self) -> None:
        channel, self._channel = self._channel, None
        if channel is not None:
            try:
                channel.close()
            except Exception as e:
                logger.warning(f"Error closing worker channel: {e}")

    def close(self) -> None:
        """Stop the worker, resolve outstanding requests with None, reset status."""
        self._fail_pending()
        self._close_channel()
        self._status = WorkerStatus()
        logger.info("Backend worker closed")
