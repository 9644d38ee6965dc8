"""Detection orchestration: strategy loop, progress, timeout."""
from __future__ import annotations
import asyncio
import logging
from typing import List, Optional, Set, Tuple

import numpy as np

from ..backends.finder_patterns import locate_finder_patterns
from ..backends.protocol import TransformKind
from ..core.entities import (
    DecodedQR, DetectionOptions, DetectionProgress, DetectionRequest, DetectionResult,
    DetectionState, FinderPatternCandidate, ProgressCallback,
)
from ..core.exceptions import InputError
from ..core.logging_config import CorrelationContext
from ..utils.image_utils import (
    add_quiet_zone, crop_region, flatten_transparency, has_transparency, is_empty_image, resize_to_max,
)
from .decoder import Decoder
from .region_scan import TRANSPARENT_RESCALE, scan_views
from .strategies import DIRECT, Strategy, build_catalog
from .worker_manager import WorkerManager

logger = logging.getLogger(__name__)

# Borderless renders often need a quiet zone before the decoder locks on
QUIET_ZONE_PADDING = 40
CROP_PADDING = 30

COMPLETE = "complete"

class DetectionService:
    """Runs the strategy catalog against one image until a code decodes."""

    def __init__(self, worker_manager: WorkerManager, decoder: Decoder,
                 extended_strategies: bool = False, region_scan: bool = False):
        self.worker_manager = worker_manager
        self.decoder = decoder
        self.extended_strategies = extended_strategies
        self.region_scan = region_scan

    async def detect(self, image, options: Optional[DetectionOptions] = None,
                     on_progress: Optional[ProgressCallback] = None) -> List[DetectionResult]:
        """Detect QR codes in ``image``; never raises for "not found"."""
        return await self.run(DetectionRequest(image=image, options=options or DetectionOptions(),
                                               on_progress=on_progress))

    async def run(self, request: DetectionRequest) -> List[DetectionResult]:
        notify = self._notifier(request.on_progress)
        with CorrelationContext():
            try:
                return await self._run(request, notify)
            except InputError as e:
                logger.info(f"Detection skipped: {e}")
                notify(DetectionProgress(COMPLETE, 100, "No image supplied"))
                return []
            except Exception as e:
                logger.exception("Detection aborted")
                notify(DetectionProgress(COMPLETE, 100, f"Detection failed: {e}"))
                return []

    @staticmethod
    def _notifier(callback: Optional[ProgressCallback]):
        def notify(progress: DetectionProgress) -> None:
            if callback is None:
                return
            try:
                callback(progress)
            except Exception as e:
                logger.warning(f"Error in progress callback: {e}")
        return notify

    def _backend_usable(self, options: DetectionOptions) -> bool:
        return options.use_opencv_backend and self.worker_manager.status().ready

    def _applies(self, strategy: Strategy, options: DetectionOptions, transparent: bool) -> bool:
        if strategy.requires_worker and not self._backend_usable(options):
            logger.debug(f"Skipping {strategy.name}: backend unavailable")
            return False
        if strategy.scan == TRANSPARENT_RESCALE and not transparent:
            logger.debug(f"Skipping {strategy.name}: input is opaque")
            return False
        return True

    async def _run(self, request: DetectionRequest, notify) -> List[DetectionResult]:
        state = DetectionState.IDLE
        if is_empty_image(request.image):
            raise InputError("No image supplied")
        options = request.options
        options.validate()

        transparent = has_transparency(request.image)
        source = flatten_transparency(request.image)
        prepared, scale = resize_to_max(source, options.max_image_size)
        catalog = build_catalog(options.kernel_size, self.extended_strategies, self.region_scan)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + options.timeout_ms / 1000.0
        completed: List[str] = []
        results: List[DetectionResult] = []
        seen: Set[str] = set()
        previous, state = state, state.advance(DetectionState.RUNNING)
        logger.debug(f"Detection {previous.value} -> {state.value}: {request.width}x{request.height}, "
                     f"{len(catalog)} strategies, scale {scale[0]:.3f}x{scale[1]:.3f}")

        for index, strategy in enumerate(catalog):
            if not self._applies(strategy, options, transparent):
                continue
            remaining = deadline - loop.time()
            if remaining <= 0:
                state = state.advance(DetectionState.DONE_PARTIAL)
                break

            notify(DetectionProgress(strategy.name, int(index * 100 / len(catalog)),
                                     f"Trying {strategy.name}...", tuple(completed)))
            try:
                processed, found = await asyncio.wait_for(
                    self._attempt(strategy, prepared, options.detect_multiple), remaining
                )
            except asyncio.TimeoutError:
                logger.info(f"Detection budget of {options.timeout_ms}ms exhausted during {strategy.name}")
                state = state.advance(DetectionState.DONE_PARTIAL)
                break

            fresh = [qr for qr in found if qr.data not in seen]
            for qr in fresh:
                seen.add(qr.data)
                results.append(await self._build_result(qr, strategy, processed, source, scale, options))
            if fresh:
                logger.info(f"Decoded {len(fresh)} code(s) with {strategy.name}")
                if not options.detect_multiple:
                    break
            completed.append(strategy.name)

        if not state.is_terminal:
            state = state.advance(DetectionState.DONE_SUCCESS if results else DetectionState.DONE_EMPTY)
        logger.debug(f"Detection {state.value}: {len(results)} result(s), tried {completed}")

        if results:
            message = f"Found {len(results)} QR code(s)"
        elif state is DetectionState.DONE_PARTIAL:
            message = "Timed out before a QR code was found"
        else:
            message = "No QR code found"
        notify(DetectionProgress(COMPLETE, 100, message, tuple(completed)))
        return results

    async def _attempt(self, strategy: Strategy, image: np.ndarray,
                       multiple: bool) -> Tuple[Optional[np.ndarray], List[DecodedQR]]:
        """Transform (if needed) and decode; returns the buffer that was decoded."""
        if strategy.scan is not None:
            return await self._scan(strategy, image, multiple)
        if strategy.requires_worker:
            processed = await self.worker_manager.dispatch(strategy.kind, image, **strategy.params)
            if processed is None:
                return None, []
        else:
            processed = image

        found = await self._decode(processed, multiple)
        if found or strategy.name != DIRECT:
            return processed, found

        padded = add_quiet_zone(processed, QUIET_ZONE_PADDING)
        found = await self._decode(padded, multiple)
        return padded, [DecodedQR(qr.data, qr.location.shifted(-QUIET_ZONE_PADDING, -QUIET_ZONE_PADDING))
                        for qr in found]

    async def _scan(self, strategy: Strategy, image: np.ndarray,
                    multiple: bool) -> Tuple[Optional[np.ndarray], List[DecodedQR]]:
        """Decode each view of a region scan; stops at the first hit unless ``multiple``."""
        hits: List[DecodedQR] = []
        decoded_view: Optional[np.ndarray] = None
        for view in scan_views(strategy.scan, image):
            found = await self._decode(view.image, multiple)
            if not found:
                continue
            logger.debug(f"{strategy.name}: hit in view {view.label}")
            hits.extend(DecodedQR(qr.data, view.to_source(qr.location)) for qr in found)
            decoded_view = view.image
            if not multiple:
                break
        return decoded_view, hits

    async def _decode(self, image: np.ndarray, multiple: bool) -> List[DecodedQR]:
        h, w = image.shape[:2]
        loop = asyncio.get_running_loop()
        if multiple:
            return await loop.run_in_executor(None, self.decoder.decode_all, image, w, h)
        found = await loop.run_in_executor(None, self.decoder.decode, image, w, h)
        return [found] if found else []

    async def _build_result(self, qr: DecodedQR, strategy: Strategy, processed: Optional[np.ndarray],
                            source: np.ndarray, scale: Tuple[float, float],
                            options: DetectionOptions) -> DetectionResult:
        location = qr.location.scaled(*scale)
        position = location.to_position()
        result = DetectionResult(
            decoded_text=qr.data,
            position=position,
            strategy_name=strategy.name,
            corner_locations=location,
        )
        if options.return_detailed_info:
            result.processed_image = processed
            result.cropped_image = crop_region(source, position.x, position.y,
                                               position.width, position.height, CROP_PADDING)
            result.finder_patterns = await self.find_finder_patterns(source, options)
        return result

    async def find_finder_patterns(self, image: np.ndarray,
                                   options: Optional[DetectionOptions] = None) -> List[FinderPatternCandidate]:
        """Locate finder patterns, in the worker when it is usable, else in-process.

        Large images are downscaled first; coordinates refer to ``image``.
        """
        options = options or DetectionOptions()
        prepared, scale = resize_to_max(flatten_transparency(image), options.max_image_size)
        if self._backend_usable(options):
            raw = await self.worker_manager.dispatch(TransformKind.DETECT_FINDER_PATTERNS, prepared)
            candidates = [FinderPatternCandidate.from_dict(d) for d in raw] if raw is not None else []
        else:
            loop = asyncio.get_running_loop()
            candidates = await loop.run_in_executor(None, locate_finder_patterns, prepared)
        return [c.scaled(*scale) for c in candidates]
