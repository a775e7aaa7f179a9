"""Face detector protocol and input normalization shared by all variants."""

from __future__ import annotations

import io
import logging
from typing import Any, List, Optional, Protocol, runtime_checkable

import cv2
import numpy as np
from PIL import Image, ImageOps

from passportcam.core.models import FaceCandidate

logger = logging.getLogger(__name__)

# Frames smaller than this on either side are not worth running a detector on.
MIN_INPUT_SIZE = 64

_ROTATE_CODES = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


@runtime_checkable
class FaceDetector(Protocol):
    """
    Anything that can find faces in a single frame.

    Implementations never raise from `detect`: any failure (model unavailable,
    undecodable input, frame too small) yields an empty list.
    """

    def detect(self, image: Any, rotation: int = 0) -> List[FaceCandidate]:
        ...

    def release(self) -> None:
        ...


def load_rgb(data: bytes) -> Image.Image:
    """Decode encoded image bytes, apply EXIF orientation, return an RGB PIL Image."""
    img = Image.open(io.BytesIO(data))
    img = ImageOps.exif_transpose(img)
    if img.mode != "RGB":
        img = img.convert("RGB")
    return img


def to_rgb_array(image: Any) -> Optional[np.ndarray]:
    """
    Normalize a frame to an HxWx3 uint8 RGB array.

    Accepts an RGB numpy array (grayscale and RGBA are converted), a PIL image or
    encoded image bytes. Returns None when the input cannot be decoded.
    """
    try:
        if isinstance(image, (bytes, bytearray)):
            image = load_rgb(bytes(image))
        if isinstance(image, Image.Image):
            if image.mode != "RGB":
                image = image.convert("RGB")
            return np.asarray(image, dtype=np.uint8)
        arr = np.asarray(image)
    except Exception as e:
        logger.warning("Could not decode frame: %s", e)
        return None

    if arr.ndim == 2:
        arr = np.stack([arr, arr, arr], axis=-1)
    if arr.ndim != 3 or arr.shape[-1] not in (3, 4):
        logger.warning("Unsupported frame shape: %s", arr.shape)
        return None
    if arr.shape[-1] == 4:
        arr = arr[:, :, :3]
    return np.ascontiguousarray(arr.astype(np.uint8))


def upright(rgb: np.ndarray, rotation: int) -> np.ndarray:
    """Rotate a sensor frame clockwise by `rotation` degrees so faces appear upright."""
    if rotation == 0:
        return rgb
    if rotation not in _ROTATE_CODES:
        raise ValueError(f"Unsupported rotation: {rotation}")
    return cv2.rotate(rgb, _ROTATE_CODES[rotation])


def prepare_frame(image: Any, rotation: int = 0) -> Optional[np.ndarray]:
    """Decode, rotate upright and size-check a frame; None means 'no detection possible'."""
    rgb = to_rgb_array(image)
    if rgb is None:
        return None
    try:
        rgb = upright(rgb, rotation)
    except ValueError as e:
        logger.warning("%s", e)
        return None
    h, w = rgb.shape[:2]
    if w < MIN_INPUT_SIZE or h < MIN_INPUT_SIZE:
        logger.warning("Image too small for face detection: %dx%d", w, h)
        return None
    return rgb
