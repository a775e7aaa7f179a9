from __future__ import annotations

from typing import Any, Optional, Sequence

from passportcam.core.geometry import area_ratio
from passportcam.core.models import FacePositionStatus, GuidanceParams

_DEFAULT_PARAMS = GuidanceParams()


def evaluate_position(
    faces: Sequence[Any],
    image_width: float,
    image_height: float,
    params: Optional[GuidanceParams] = None,
) -> FacePositionStatus:
    """
    Classify how well the primary face is framed.

    Only the first face counts. Centering is checked before size, so a face that
    is both off-center and too large reports NOT_CENTERED. `faces` holds anything
    with a `bounding_box` Rect (FaceCandidate or ExpandedFaceInfo).
    """
    p = params or _DEFAULT_PARAMS
    if not faces or image_width <= 0 or image_height <= 0:
        return FacePositionStatus.NO_FACE

    box = faces[0].bounding_box
    cx, cy = box.center
    horizontal_offset = abs(cx - image_width / 2.0) / image_width
    vertical_offset = abs(cy - image_height / 2.0) / image_height
    if horizontal_offset > p.center_tolerance or vertical_offset > p.center_tolerance:
        return FacePositionStatus.NOT_CENTERED

    face_ratio = area_ratio(box, image_width, image_height)
    if face_ratio < p.min_face_ratio:
        return FacePositionStatus.TOO_FAR
    if face_ratio > p.max_face_ratio:
        return FacePositionStatus.TOO_CLOSE
    return FacePositionStatus.GOOD
