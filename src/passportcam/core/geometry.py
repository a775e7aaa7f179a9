from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

Point = Tuple[float, float]
Size = Tuple[float, float]


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in pixel coordinates (right/bottom exclusive)."""
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def center(self) -> Point:
        return ((self.left + self.right) / 2.0, (self.top + self.bottom) / 2.0)

    @property
    def area(self) -> float:
        if self.is_empty:
            return 0.0
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def intersect(self, other: "Rect") -> "Rect":
        return Rect(
            left=max(self.left, other.left),
            top=max(self.top, other.top),
            right=min(self.right, other.right),
            bottom=min(self.bottom, other.bottom),
        )

    def contains(self, other: "Rect") -> bool:
        return (
            self.left <= other.left
            and self.top <= other.top
            and self.right >= other.right
            and self.bottom >= other.bottom
        )

    @staticmethod
    def from_size(width: float, height: float) -> "Rect":
        return Rect(0.0, 0.0, float(width), float(height))

    @staticmethod
    def from_xywh(x: float, y: float, w: float, h: float) -> "Rect":
        return Rect(float(x), float(y), float(x + w), float(y + h))


def expand(box: Rect, ratio: float, bounds: Rect) -> Rect:
    """
    Scale `box` by `ratio` about its own center, then clamp every edge to `bounds`.

    The result never leaves `bounds`. If clamping inverts the rectangle (box fully
    outside bounds) the returned Rect reports `is_empty`; callers drop it.
    """
    if ratio < 0:
        raise ValueError("ratio must be >= 0")
    cx, cy = box.center
    half_w = box.width * ratio / 2.0
    half_h = box.height * ratio / 2.0

    left = min(max(cx - half_w, bounds.left), bounds.right)
    top = min(max(cy - half_h, bounds.top), bounds.bottom)
    right = max(min(cx + half_w, bounds.right), bounds.left)
    bottom = max(min(cy + half_h, bounds.bottom), bounds.top)
    return Rect(left, top, right, bottom)


def letterbox(source: Size, dest: Size) -> Tuple[float, float, float]:
    """
    Fit `source` inside `dest` under a single uniform scale.

    Returns (scale, offset_x, offset_y) where the offsets are the centering margins.
    """
    src_w, src_h = source
    dst_w, dst_h = dest
    if src_w <= 0 or src_h <= 0:
        raise ValueError("source frame must have a positive size")
    scale = min(dst_w / float(src_w), dst_h / float(src_h))
    offset_x = (dst_w - src_w * scale) / 2.0
    offset_y = (dst_h - src_h * scale) / 2.0
    return scale, offset_x, offset_y


def transform(point: Point, source: Size, dest: Size) -> Point:
    """Map a point from the `source` frame onto a letterboxed `dest` frame."""
    scale, ox, oy = letterbox(source, dest)
    x, y = point
    return (ox + x * scale, oy + y * scale)


def transform_rect(rect: Rect, source: Size, dest: Size) -> Rect:
    left, top = transform((rect.left, rect.top), source, dest)
    right, bottom = transform((rect.right, rect.bottom), source, dest)
    return Rect(left, top, right, bottom)


def upright_size(width: int, height: int, rotation: int) -> Tuple[int, int]:
    """Frame size after applying a sensor rotation of 0/90/180/270 degrees."""
    if rotation not in (0, 90, 180, 270):
        raise ValueError(f"Unsupported rotation: {rotation}")
    if rotation in (90, 270):
        return height, width
    return width, height


def area_ratio(box: Rect, width: float, height: float) -> float:
    image_area = float(width) * float(height)
    if image_area <= 0:
        return 0.0
    return box.area / image_area
