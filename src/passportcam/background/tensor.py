"""
Pixel <-> tensor conversions for the segmentation model.

Input contract: float32 [1, 3, S, S], planar (all R, then all G, then all B),
row-major within a plane, values in [0, 1]. Output: an opacity mask that
reduces to [S, S].
"""

from __future__ import annotations

import numpy as np
import cv2
from PIL import Image

INPUT_SIZE = 1024


def to_planar_tensor(rgb: np.ndarray, size: int = INPUT_SIZE) -> np.ndarray:
    """Resize an HxWx3 uint8 RGB array to size x size and lay it out as [1, 3, S, S]."""
    if rgb.ndim != 3 or rgb.shape[2] != 3:
        raise ValueError(f"expected an HxWx3 RGB array, got shape {rgb.shape}")
    resized = cv2.resize(rgb, (size, size), interpolation=cv2.INTER_LINEAR)
    planar = resized.astype(np.float32).transpose(2, 0, 1) / 255.0
    return np.ascontiguousarray(planar[np.newaxis])


def tensor_to_rgb(tensor: np.ndarray) -> np.ndarray:
    """Inverse of the normalization: [1, 3, S, S] in [0, 1] -> SxSx3 uint8 RGB."""
    if tensor.ndim != 4 or tensor.shape[0] != 1 or tensor.shape[1] != 3:
        raise ValueError(f"expected a [1, 3, S, S] tensor, got shape {tensor.shape}")
    hwc = tensor[0].transpose(1, 2, 0)
    return np.clip(np.rint(hwc * 255.0), 0, 255).astype(np.uint8)


def mask_from_output(output: np.ndarray, size: int = INPUT_SIZE) -> np.ndarray:
    """
    Reduce raw model output to an [S, S] float32 mask clamped to [0, 1].

    Accepts [S, S], [1, S, S] and [1, 1, S, S]. Anything else, or non-finite
    values, raises ValueError.
    """
    arr = np.asarray(output, dtype=np.float32)
    while arr.ndim > 2 and arr.shape[0] == 1:
        arr = arr[0]
    if arr.shape != (size, size):
        raise ValueError(f"malformed mask: expected ({size}, {size}), got {np.shape(output)}")
    if not np.all(np.isfinite(arr)):
        raise ValueError("malformed mask: non-finite values")
    return np.clip(arr, 0.0, 1.0)


def upscale_mask(mask: np.ndarray, width: int, height: int) -> np.ndarray:
    resized = cv2.resize(mask, (width, height), interpolation=cv2.INTER_LINEAR)
    return np.clip(resized, 0.0, 1.0)


def composite_on_white(rgb: np.ndarray, alpha: np.ndarray) -> np.ndarray:
    """Blend source pixels over white with per-pixel opacity `alpha` (HxW)."""
    if rgb.shape[:2] != alpha.shape:
        raise ValueError(f"mask {alpha.shape} does not match image {rgb.shape[:2]}")
    a = alpha[:, :, np.newaxis].astype(np.float32)
    out = rgb.astype(np.float32) * a + 255.0 * (1.0 - a)
    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


def white_image(width: int, height: int) -> Image.Image:
    return Image.new("RGB", (width, height), (255, 255, 255))
