"""Draw live guidance (face oval + hint) onto a letterboxed preview surface."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from passportcam.core.geometry import Rect, letterbox, transform_rect
from passportcam.core.models import DetectionResult, FacePositionStatus

# RGB
STATUS_COLORS: Dict[FacePositionStatus, Tuple[int, int, int]] = {
    FacePositionStatus.GOOD: (0, 255, 0),
    FacePositionStatus.TOO_FAR: (255, 255, 0),
    FacePositionStatus.TOO_CLOSE: (255, 255, 0),
    FacePositionStatus.NOT_CENTERED: (255, 255, 0),
    FacePositionStatus.NO_FACE: (255, 0, 0),
}


def display_box(result: DetectionResult, view_size: Tuple[int, int]) -> Optional[Rect]:
    """Expanded box of the primary face mapped into view coordinates, or None."""
    face = result.primary
    if face is None or result.frame_width <= 0 or result.frame_height <= 0:
        return None
    return transform_rect(face.expanded_box, (result.frame_width, result.frame_height), view_size)


def render_overlay(
    frame_rgb: np.ndarray,
    result: DetectionResult,
    view_size: Optional[Tuple[int, int]] = None,
    stroke: int = 5,
) -> np.ndarray:
    """
    Fit the frame into a view of `view_size` (letterboxed, black margins), then
    draw the primary face oval and the status hint. Returns a new RGB array.
    """
    h, w = frame_rgb.shape[:2]
    view_w, view_h = view_size or (w, h)
    scale, ox, oy = letterbox((w, h), (view_w, view_h))

    canvas = np.zeros((view_h, view_w, 3), dtype=np.uint8)
    fit_w = max(1, int(round(w * scale)))
    fit_h = max(1, int(round(h * scale)))
    fitted = cv2.resize(frame_rgb, (fit_w, fit_h), interpolation=cv2.INTER_AREA)
    x0, y0 = int(round(ox)), int(round(oy))
    canvas[y0 : y0 + fit_h, x0 : x0 + fit_w] = fitted[: view_h - y0, : view_w - x0]

    color = STATUS_COLORS[result.status]
    box = display_box(result, (view_w, view_h))
    if box is not None and not box.is_empty:
        cx, cy = box.center
        cv2.ellipse(
            canvas,
            (int(round(cx)), int(round(cy))),
            (int(round(box.width / 2.0)), int(round(box.height / 2.0))),
            0.0, 0.0, 360.0,
            color,
            stroke,
        )

    cv2.putText(
        canvas,
        result.status.hint,
        (10, 30),
        cv2.FONT_HERSHEY_SIMPLEX,
        0.8,
        color,
        2,
    )
    return canvas
