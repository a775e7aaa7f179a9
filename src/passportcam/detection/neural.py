"""
Model-based face detector.

Boxes come straight from a face box model; confidence is a two-level proxy
(1.0 when the face carries a stable tracking identity, 0.8 otherwise), not a
calibrated probability.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Protocol, Tuple

import cv2
import numpy as np

from passportcam.core.geometry import Point, Rect
from passportcam.core.models import FaceCandidate
from passportcam.core.resources import ResourceGuard
from passportcam.detection.base import prepare_frame

logger = logging.getLogger(__name__)

TRACKED_CONFIDENCE = 1.0
UNTRACKED_CONFIDENCE = 0.8
MIN_FACE_FRACTION = 0.15


@dataclass(frozen=True)
class RawFace:
    box: Rect
    tracking_id: Optional[int] = None
    landmarks: Tuple[Point, ...] = ()


class FaceBoxModel(Protocol):
    def process(self, rgb: np.ndarray) -> List[RawFace]:
        ...

    def close(self) -> None:
        ...


def iou(a: Rect, b: Rect) -> float:
    inter = a.intersect(b).area
    union = a.area + b.area - inter
    return inter / union if union > 0 else 0.0


class IdentityTracker:
    """
    Greedy IoU matcher that gives faces a stable identity across frames.

    A face gets an id only once it has been matched to a face from the previous
    frame; a face seen for the first time has no identity yet.
    """

    def __init__(self, iou_threshold: float = 0.3):
        self.iou_threshold = iou_threshold
        self._ids = itertools.count(1)
        self._previous: List[Tuple[Rect, int]] = []

    def update(self, boxes: List[Rect]) -> List[Optional[int]]:
        free = list(self._previous)
        assigned: List[Optional[int]] = []
        current: List[Tuple[Rect, int]] = []
        for box in boxes:
            best_i, best_score = -1, self.iou_threshold
            for i, (prev_box, _) in enumerate(free):
                score = iou(box, prev_box)
                if score >= best_score:
                    best_i, best_score = i, score
            if best_i >= 0:
                _, track_id = free.pop(best_i)
                assigned.append(track_id)
            else:
                track_id = next(self._ids)
                assigned.append(None)
            current.append((box, track_id))
        self._previous = current
        return assigned

    def reset(self) -> None:
        self._previous = []


class YuNetModel:
    """OpenCV YuNet face detector (`cv2.FaceDetectorYN`) with optional tracking."""

    def __init__(
        self,
        model_path: str | Path,
        score_threshold: float = 0.6,
        nms_threshold: float = 0.3,
        top_k: int = 50,
        tracking: bool = True,
    ):
        path = Path(model_path)
        if not path.exists():
            raise FileNotFoundError(f"YuNet model not found: {path}")
        self._net = cv2.FaceDetectorYN.create(
            str(path), "", (320, 320), score_threshold, nms_threshold, top_k
        )
        self._tracker: Optional[IdentityTracker] = IdentityTracker() if tracking else None
        logger.info("YuNet loaded from %s", path)

    def process(self, rgb: np.ndarray) -> List[RawFace]:
        h, w = rgb.shape[:2]
        bgr = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
        self._net.setInputSize((w, h))
        _, rows = self._net.detect(bgr)
        if rows is None:
            rows = np.zeros((0, 15), dtype=np.float32)

        boxes = [Rect.from_xywh(*row[:4]) for row in rows]
        landmarks = [
            tuple((float(row[4 + 2 * i]), float(row[5 + 2 * i])) for i in range(5))
            for row in rows
        ]
        ids: List[Optional[int]] = [None] * len(boxes)
        if self._tracker is not None:
            ids = self._tracker.update(boxes)
        return [RawFace(box=b, tracking_id=t, landmarks=lm) for b, t, lm in zip(boxes, ids, landmarks)]

    def close(self) -> None:
        self._net = None
        self._tracker = None


class NeuralFaceDetector:
    """Detector backed by a face box model; boxes are accepted as the model reports them."""

    def __init__(self, model: Optional[FaceBoxModel], min_face_fraction: float = MIN_FACE_FRACTION):
        self._model: ResourceGuard[FaceBoxModel] = ResourceGuard(model, lambda m: m.close())
        self.min_face_fraction = min_face_fraction
        if model is None:
            logger.warning("NeuralFaceDetector created without a model; detection disabled")

    @staticmethod
    def from_yunet(model_path: str | Path, **kwargs: Any) -> "NeuralFaceDetector":
        """Build a detector on YuNet; a missing or broken model gives a no-op detector."""
        try:
            model: Optional[FaceBoxModel] = YuNetModel(model_path, **kwargs)
        except Exception as e:
            logger.error("Failed to initialize YuNet: %s", e)
            model = None
        return NeuralFaceDetector(model)

    @property
    def is_available(self) -> bool:
        return self._model.is_open

    def detect(self, image: Any, rotation: int = 0) -> List[FaceCandidate]:
        if not self._model.is_open:
            return []
        rgb = prepare_frame(image, rotation)
        if rgb is None:
            return []
        h, w = rgb.shape[:2]
        min_side = self.min_face_fraction * min(w, h)

        with self._model.borrow() as model:
            if model is None:
                return []
            try:
                raw = model.process(rgb)
            except Exception:
                logger.exception("Face detection failed")
                return []

        results: List[FaceCandidate] = []
        for face in raw:
            box = face.box
            if box.is_empty or min(box.width, box.height) < min_side:
                continue
            tracked = face.tracking_id is not None
            results.append(
                FaceCandidate(
                    bounding_box=box,
                    confidence=TRACKED_CONFIDENCE if tracked else UNTRACKED_CONFIDENCE,
                    tracked=tracked,
                    landmarks=tuple(face.landmarks),
                )
            )
        logger.debug("Detected %d faces", len(results))
        return results

    def release(self) -> None:
        self._model.close()
        logger.debug("Face detector released")
