"""
Capture-step command line: run face guidance on a still and produce the photo.

- Detects the face once (bounded wait) and reports framing status + face center
- Optionally replaces the background with white (segmentation model)
- Hands the image to a compliance engine when one is attached; otherwise writes
  the (optionally background-removed) still as JPEG
- Optionally writes a preview with the guidance oval and hint drawn on it

Usage:
  passportcam --input in.jpg --output out.jpg
  passportcam --input in.jpg --output out.jpg --remove-bg --model models/background_remover.onnx
  passportcam --input in.jpg --output out.jpg --detector neural --yunet-model face_detection_yunet.onnx
  passportcam --input in.jpg --output out.jpg --annotate guide.png --view-size 720x1280
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from passportcam.app.engine import Standard
from passportcam.app.session import CaptureSession
from passportcam.background.remover import BackgroundRemover
from passportcam.core.models import CaptureParams, DetectionResult
from passportcam.detection.base import FaceDetector, load_rgb
from passportcam.detection.geometric import GeometricFaceDetector
from passportcam.detection.neural import NeuralFaceDetector
from passportcam.guidance.overlay import render_overlay
from passportcam.guidance.scheduler import build_result, detect_with_timeout

logger = logging.getLogger(__name__)


def _parse_view_size(text: str) -> Tuple[int, int]:
    try:
        w, h = (int(v) for v in text.lower().split("x", 1))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT, got {text!r}")
    if w <= 0 or h <= 0:
        raise argparse.ArgumentTypeError("view size must be positive")
    return w, h


def _build_detector(kind: str, yunet_model: Optional[str]) -> FaceDetector:
    if kind == "neural":
        if not yunet_model:
            raise ValueError("--detector neural requires --yunet-model")
        return NeuralFaceDetector.from_yunet(yunet_model, tracking=False)
    return GeometricFaceDetector()


def _build_remover(model: Optional[str]) -> BackgroundRemover:
    if model:
        return BackgroundRemover.from_model_path(model)
    return BackgroundRemover.from_rembg()


def _save_jpeg(img: Image.Image, path: str, quality: int) -> None:
    if path.lower().endswith((".jpg", ".jpeg")):
        img.save(path, format="JPEG", quality=quality, optimize=True)
    else:
        img.save(path)


def run_capture(
    input_path: str,
    output_path: str,
    detector: FaceDetector,
    remover: Optional[BackgroundRemover] = None,
    params: Optional[CaptureParams] = None,
    annotate_path: Optional[str] = None,
    view_size: Optional[Tuple[int, int]] = None,
) -> DetectionResult:
    """Process one captured still and return the framing result for it."""
    p = params or CaptureParams()
    data = Path(input_path).read_bytes()
    still = load_rgb(data)

    candidates = detect_with_timeout(detector, still, timeout=p.guidance.one_shot_timeout)
    result = build_result(candidates, still.width, still.height, p.guidance)

    session = CaptureSession(detector=detector, remover=remover, params=p)
    try:
        center = result.primary.bounding_box.center if result.primary is not None else None
        out_bytes = session.generate(data, face_center=center)
    finally:
        session.release()

    if out_bytes is not None:
        Path(output_path).write_bytes(out_bytes)
    else:
        _save_jpeg(still, output_path, p.jpeg_quality)

    if annotate_path:
        preview = render_overlay(np.asarray(still), result, view_size)
        Image.fromarray(preview, "RGB").save(annotate_path)

    return result


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Check face framing on a captured still and produce the ID photo.")
    p.add_argument("--input", "-i", required=True, help="Path to the captured still (jpg/png)")
    p.add_argument("--output", "-o", required=True, help="Path to output image (jpg/png)")
    p.add_argument(
        "--standard",
        choices=[s.name.lower() for s in Standard],
        default=Standard.SAUDI_EVISA.name.lower(),
        help="Photo standard passed to the compliance engine",
    )
    p.add_argument("--remove-bg", action="store_true", help="Replace the background with white")
    p.add_argument("--model", help="Segmentation ONNX model (default: rembg isnet-general-use)")
    p.add_argument("--detector", choices=["geometric", "neural"], default="geometric")
    p.add_argument("--yunet-model", help="YuNet ONNX model for --detector neural")
    p.add_argument("--annotate", help="Write a guidance preview image to this path")
    p.add_argument("--view-size", type=_parse_view_size, help="Preview surface size, e.g. 720x1280")
    p.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ...)")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    params = replace(
        CaptureParams(),
        standard=int(Standard[args.standard.upper()]),
        remove_background=args.remove_bg,
    )

    try:
        detector = _build_detector(args.detector, args.yunet_model)
        remover = _build_remover(args.model) if args.remove_bg else None
        result = run_capture(
            input_path=args.input,
            output_path=args.output,
            detector=detector,
            remover=remover,
            params=params,
            annotate_path=args.annotate,
            view_size=args.view_size,
        )
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    print(f"Status: {result.status.name} ({result.status.hint})")
    face = result.primary
    if face is not None:
        cx, cy = face.bounding_box.center
        print(f"Face center: ({cx:.1f}, {cy:.1f})")
    print(f"Saved: {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
