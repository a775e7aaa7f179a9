from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple

from passportcam.core.geometry import Point, Rect, expand


class FacePositionStatus(Enum):
    """Framing verdict for the primary face, with the hint shown to the user."""
    NO_FACE = "Face not detected"
    TOO_FAR = "Move closer"
    GOOD = "Good position"
    TOO_CLOSE = "Move back"
    NOT_CENTERED = "Center your face"

    @property
    def hint(self) -> str:
        return self.value


@dataclass(frozen=True)
class GuidanceParams:
    """
    Constants that drive live framing guidance.

    center_tolerance:
        Max offset of the face center from the frame center, as a fraction of the
        frame dimension on each axis.
    min_face_ratio / max_face_ratio:
        Face box area over frame area; below min is too far, above max is too close.
    expansion_ratio:
        Scale applied to a face box about its center to approximate head+shoulders.
    stream_timeout / one_shot_timeout:
        Seconds to wait for a single detector call in streaming and one-shot mode.
    """
    center_tolerance: float = 0.15
    min_face_ratio: float = 0.08
    max_face_ratio: float = 0.35
    expansion_ratio: float = 1.5
    stream_timeout: float = 3.0
    one_shot_timeout: float = 5.0


@dataclass(frozen=True)
class FaceCandidate:
    """A single face reported by a detector, in detector-input pixel space."""
    bounding_box: Rect
    confidence: float
    tracked: bool = False
    landmarks: Tuple[Point, ...] = ()


@dataclass(frozen=True)
class ExpandedFaceInfo:
    bounding_box: Rect
    expanded_box: Rect
    confidence: float
    head_width: float
    head_height: float
    shoulder_width: float
    shoulder_height: float
    landmarks: Tuple[Point, ...] = ()

    @staticmethod
    def from_candidate(
        candidate: FaceCandidate,
        ratio: float,
        image_width: float,
        image_height: float,
    ) -> "ExpandedFaceInfo":
        box = candidate.bounding_box
        expanded = expand(box, ratio, Rect.from_size(image_width, image_height))
        return ExpandedFaceInfo(
            bounding_box=box,
            expanded_box=expanded,
            confidence=candidate.confidence,
            head_width=box.width,
            head_height=box.height,
            shoulder_width=box.width * 2.0,
            shoulder_height=box.height * 0.8,
            landmarks=candidate.landmarks,
        )


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of one completed detection cycle; superseded by the next."""
    faces: Tuple[ExpandedFaceInfo, ...]
    status: FacePositionStatus
    is_processing: bool = False
    frame_width: int = 0
    frame_height: int = 0

    @property
    def primary(self) -> ExpandedFaceInfo | None:
        return self.faces[0] if self.faces else None


@dataclass(frozen=True)
class CaptureParams:
    """
    Parameters for turning a captured still into the final photo.

    standard:
        Opaque standard id passed to the compliance engine (see app.engine.Standard).
    remove_background:
        If True, the background is replaced with white before hand-off.
    jpeg_quality:
        Quality for JPEG bytes produced locally.
    """
    standard: int = 0
    remove_background: bool = False
    jpeg_quality: int = 95
    guidance: GuidanceParams = field(default_factory=GuidanceParams)
