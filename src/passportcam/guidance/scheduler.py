"""
Single-flight scheduling of face detection over a live frame stream.

Frames arrive on the camera's thread. At most one detection runs per scheduler:
a frame that arrives while one is in flight is dropped, never queued. Accepted
frames are detected on a dedicated worker, the detector call is bounded by a
timeout, and the finished DetectionResult is posted to a single result sink
(typically the thread that owns UI state). The in-flight flag is cleared on the
sink's thread after the consumer has seen the result.

A detector whose call outlived its timeout is claimed until that call returns;
frames and one-shot lookups meanwhile skip detection instead of queueing behind it.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from functools import partial
from typing import Any, Callable, List, Optional, Protocol, Sequence, Set

from passportcam.core.models import (
    DetectionResult,
    ExpandedFaceInfo,
    FaceCandidate,
    GuidanceParams,
)
from passportcam.detection.base import FaceDetector, prepare_frame
from passportcam.guidance.evaluator import evaluate_position

logger = logging.getLogger(__name__)

ResultCallback = Callable[[DetectionResult], None]

# ids of detectors with a detect() call still running, across schedulers and one-shot calls
_active_lock = threading.Lock()
_active: Set[int] = set()


def _claim(detector: FaceDetector) -> bool:
    with _active_lock:
        if id(detector) in _active:
            return False
        _active.add(id(detector))
        return True


def _unclaim(detector: FaceDetector) -> None:
    with _active_lock:
        _active.discard(id(detector))


def _submit_detect(
    executor: ThreadPoolExecutor,
    detector: FaceDetector,
    image: Any,
    rotation: int = 0,
) -> Optional[Future]:
    """
    Submit one detect() call unless the detector is still busy with an earlier one.

    The claim is dropped when the call finishes or is cancelled, so a call that
    outlived its timeout keeps the detector closed to new work until it returns.
    """
    if not _claim(detector):
        return None
    try:
        future = executor.submit(detector.detect, image, rotation)
    except RuntimeError:
        _unclaim(detector)
        raise
    future.add_done_callback(lambda _f: _unclaim(detector))
    return future


class ResultSink(Protocol):
    """Runs a callback on the context that owns detection results."""

    def post(self, callback: Callable[[], None]) -> None:
        ...


class ImmediateSink:
    """Runs callbacks right away on the posting (worker) thread."""

    def post(self, callback: Callable[[], None]) -> None:
        callback()


class QueueSink:
    """
    Collects callbacks for a thread that polls.

    The owning thread calls `drain()` from its loop; callbacks run there.
    """

    def __init__(self) -> None:
        self._queue: "queue.SimpleQueue[Callable[[], None]]" = queue.SimpleQueue()

    def post(self, callback: Callable[[], None]) -> None:
        self._queue.put(callback)

    def drain(self, max_items: Optional[int] = None) -> int:
        ran = 0
        while max_items is None or ran < max_items:
            try:
                callback = self._queue.get_nowait()
            except queue.Empty:
                break
            callback()
            ran += 1
        return ran


class TkSink:
    """Posts callbacks onto a Tk main loop via `widget.after(0, ...)`."""

    def __init__(self, widget: Any):
        self._widget = widget

    def post(self, callback: Callable[[], None]) -> None:
        self._widget.after(0, callback)


def build_result(
    candidates: Sequence[FaceCandidate],
    frame_width: int,
    frame_height: int,
    params: GuidanceParams,
) -> DetectionResult:
    """Expand raw candidates to head+shoulder boxes and evaluate the framing."""
    faces: List[ExpandedFaceInfo] = []
    for candidate in candidates:
        info = ExpandedFaceInfo.from_candidate(candidate, params.expansion_ratio, frame_width, frame_height)
        if info.expanded_box.is_empty:
            continue
        faces.append(info)
    status = evaluate_position(faces, frame_width, frame_height, params)
    return DetectionResult(
        faces=tuple(faces),
        status=status,
        is_processing=False,
        frame_width=frame_width,
        frame_height=frame_height,
    )


def detect_with_timeout(
    detector: FaceDetector,
    image: Any,
    rotation: int = 0,
    timeout: float = GuidanceParams.one_shot_timeout,
) -> List[FaceCandidate]:
    """
    Run one detection on a private thread and wait at most `timeout` seconds.

    Expiry or failure gives an empty list, and so does a detector that is still
    busy with an earlier call that timed out. Meant for one-off lookups (e.g. the
    face center of a captured still) where the caller can block.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="face-detect-once")
    try:
        future = _submit_detect(executor, detector, image, rotation)
        if future is None:
            logger.warning("Face detector still busy with an earlier call; skipping detection")
            return []
        return list(future.result(timeout=timeout))
    except FutureTimeout:
        logger.warning("One-shot face detection timed out after %.1fs", timeout)
        future.cancel()
        return []
    except Exception:
        logger.exception("One-shot face detection failed")
        return []
    finally:
        executor.shutdown(wait=False)


class DetectionScheduler:
    """
    Latest-wins, single-flight sampler in front of one FaceDetector.

    Usage:
        sink = QueueSink()
        with DetectionScheduler(detector, on_result, sink=sink) as scheduler:
            for frame in frames:
                scheduler.submit(frame, rotation=90)
                sink.drain()
    """

    def __init__(
        self,
        detector: FaceDetector,
        on_result: ResultCallback,
        sink: Optional[ResultSink] = None,
        params: Optional[GuidanceParams] = None,
        owns_detector: bool = False,
    ):
        self._detector = detector
        self._on_result = on_result
        self._sink: ResultSink = sink or ImmediateSink()
        self.params = params or GuidanceParams()
        self._owns_detector = owns_detector

        # Non-blocking acquire is the atomic test-and-set for the in-flight flag.
        self._in_flight = threading.Lock()
        self._released = threading.Event()
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="face-detect-worker")
        self._inference = ThreadPoolExecutor(max_workers=1, thread_name_prefix="face-detect")

    def __enter__(self) -> "DetectionScheduler":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    @property
    def is_busy(self) -> bool:
        return self._in_flight.locked()

    @property
    def is_released(self) -> bool:
        return self._released.is_set()

    def submit(self, frame: Any, rotation: int = 0) -> bool:
        """Offer a frame; returns False when it was dropped."""
        if self._released.is_set():
            return False
        if not self._in_flight.acquire(blocking=False):
            logger.debug("Detection in flight; dropping frame")
            return False
        try:
            self._worker.submit(self._run, frame, rotation)
        except RuntimeError:
            # released between the check above and the submit
            self._in_flight.release()
            return False
        return True

    def detect_once(self, image: Any, rotation: int = 0) -> DetectionResult:
        """Blocking detection bounded by `one_shot_timeout`; bypasses the single-flight flag."""
        if self._released.is_set():
            return build_result((), 0, 0, self.params)
        return self._detect_result(image, rotation, self.params.one_shot_timeout)

    def release(self) -> None:
        if self._released.is_set():
            return
        self._released.set()
        self._worker.shutdown(wait=False, cancel_futures=True)
        self._inference.shutdown(wait=False, cancel_futures=True)
        if self._owns_detector:
            self._detector.release()
        logger.debug("Detection scheduler released")

    # ---------- worker side ----------

    def _run(self, frame: Any, rotation: int) -> None:
        try:
            result = self._detect_result(frame, rotation, self.params.stream_timeout)
        except Exception:
            logger.exception("Detection cycle failed")
            result = build_result((), 0, 0, self.params)
        try:
            self._sink.post(partial(self._publish, result))
        except Exception:
            logger.exception("Failed to post detection result")
            self._in_flight.release()

    def _publish(self, result: DetectionResult) -> None:
        try:
            if self._released.is_set():
                logger.debug("Discarding detection result delivered after release")
                return
            self._on_result(result)
        except Exception:
            logger.exception("Detection result consumer failed")
        finally:
            self._in_flight.release()

    def _detect_result(self, image: Any, rotation: int, timeout: float) -> DetectionResult:
        rgb = prepare_frame(image, rotation)
        if rgb is None:
            return build_result((), 0, 0, self.params)
        h, w = rgb.shape[:2]
        return build_result(self._bounded_detect(rgb, timeout), w, h, self.params)

    def _bounded_detect(self, rgb: Any, timeout: float) -> List[FaceCandidate]:
        try:
            future = _submit_detect(self._inference, self._detector, rgb)
        except RuntimeError:
            return []
        if future is None:
            logger.debug("Detector still busy with a timed-out call; skipping frame")
            return []
        try:
            return list(future.result(timeout=timeout))
        except FutureTimeout:
            logger.warning("Face detection timed out after %.1fs", timeout)
            future.cancel()
            return []
        except Exception:
            logger.exception("Face detection failed")
            return []
