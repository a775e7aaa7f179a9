"""
Heuristic face detector built on eye geometry.

A locator reports the midpoint between the eyes, the eye distance and a
confidence for each face. The detector turns each observation into a face box
biased downward (chin and shoulders) and drops implausible ones.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

import numpy as np

from passportcam.core.geometry import Rect
from passportcam.core.models import FaceCandidate
from passportcam.core.resources import ResourceGuard
from passportcam.detection.base import prepare_frame

logger = logging.getLogger(__name__)

MIN_EYE_DISTANCE = 50.0
MIN_CONFIDENCE = 0.5
MAX_AREA_FRACTION = 0.9


@dataclass(frozen=True)
class EyePair:
    mid_x: float
    mid_y: float
    eye_distance: float
    confidence: float
    right_eye: Optional[tuple] = None
    left_eye: Optional[tuple] = None


EyeLocator = Callable[[np.ndarray], Sequence[EyePair]]


def candidate_from_eyes(eyes: EyePair, width: int, height: int) -> Optional[FaceCandidate]:
    """Apply the eye-geometry policy to one observation; None means rejected."""
    d = eyes.eye_distance
    if d < MIN_EYE_DISTANCE:
        logger.debug("Rejected face with too small eye distance: %.1f", d)
        return None
    if eyes.confidence < MIN_CONFIDENCE:
        logger.debug("Rejected face with low confidence: %.2f", eyes.confidence)
        return None
    if eyes.mid_x < 0 or eyes.mid_y < 0 or eyes.mid_x > width or eyes.mid_y > height:
        return None

    left = max(int(eyes.mid_x - d), 0)
    top = max(int(eyes.mid_y - d), 0)
    right = min(int(eyes.mid_x + d), width)
    bottom = min(int(eyes.mid_y + d * 1.5), height)
    if right <= left or bottom <= top:
        return None

    box_area = (right - left) * (bottom - top)
    if box_area > width * height * MAX_AREA_FRACTION:
        return None

    landmarks = tuple(p for p in (eyes.right_eye, eyes.left_eye) if p is not None)
    return FaceCandidate(
        bounding_box=Rect(float(left), float(top), float(right), float(bottom)),
        confidence=float(eyes.confidence),
        landmarks=landmarks,
    )


class MediaPipeEyeLocator:
    """Eye keypoints from MediaPipe short-range face detection."""

    def __init__(self, min_detection_confidence: float = 0.3, model_selection: int = 0):
        import mediapipe as mp

        self._detector = mp.solutions.face_detection.FaceDetection(
            model_selection=model_selection,
            min_detection_confidence=min_detection_confidence,
        )

    def __call__(self, rgb: np.ndarray) -> List[EyePair]:
        if self._detector is None:
            return []
        h, w = rgb.shape[:2]
        results = self._detector.process(rgb)
        if not results or not results.detections:
            return []

        out: List[EyePair] = []
        for det in results.detections:
            kps = det.location_data.relative_keypoints
            if len(kps) < 2:
                continue
            # MediaPipe keypoint order: right eye, left eye, nose tip, mouth, ears
            rx, ry = kps[0].x * w, kps[0].y * h
            lx, ly = kps[1].x * w, kps[1].y * h
            out.append(
                EyePair(
                    mid_x=(rx + lx) / 2.0,
                    mid_y=(ry + ly) / 2.0,
                    eye_distance=math.hypot(lx - rx, ly - ry),
                    confidence=float(det.score[0]) if det.score else 0.0,
                    right_eye=(rx, ry),
                    left_eye=(lx, ly),
                )
            )
        return out

    def close(self) -> None:
        if self._detector is not None:
            self._detector.close()
            self._detector = None


class GeometricFaceDetector:
    """
    Eye-distance/confidence based detector.

    Usage:
        det = GeometricFaceDetector()
        faces = det.detect(rgb_frame)
        det.release()
    """

    def __init__(self, locator: Optional[EyeLocator] = None, max_faces: int = 1):
        self.max_faces = max_faces
        if locator is None:
            try:
                locator = MediaPipeEyeLocator()
            except Exception as e:
                logger.error("Failed to initialize MediaPipe face detection: %s", e)
        self._locator: ResourceGuard[EyeLocator] = ResourceGuard(locator, _close_locator)

    @property
    def is_available(self) -> bool:
        return self._locator.is_open

    def detect(self, image: Any, rotation: int = 0) -> List[FaceCandidate]:
        if not self._locator.is_open:
            logger.debug("GeometricFaceDetector not initialized")
            return []

        rgb = prepare_frame(image, rotation)
        if rgb is None:
            return []
        h, w = rgb.shape[:2]

        with self._locator.borrow() as locator:
            if locator is None:
                return []
            try:
                observations = list(locator(rgb))[: self.max_faces]
            except Exception:
                logger.exception("Face detection failed")
                return []

        logger.debug("Eye locator raw found %d faces", len(observations))
        results: List[FaceCandidate] = []
        for eyes in observations:
            candidate = candidate_from_eyes(eyes, w, h)
            if candidate is not None:
                results.append(candidate)
        logger.debug("Final face count: %d", len(results))
        return results

    def release(self) -> None:
        self._locator.close()


def _close_locator(locator: EyeLocator) -> None:
    close = getattr(locator, "close", None)
    if close is not None:
        close()
