"""
Background replacement with an on-device segmentation model.

Pipeline: resize to 1024x1024 -> planar tensor -> model -> opacity mask ->
upscale to the source size -> composite over white. Any failure gives a plain
white image of the source size; capture is never aborted.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, List, Optional, Protocol

import numpy as np
from PIL import Image

from passportcam.background.tensor import (
    INPUT_SIZE,
    composite_on_white,
    mask_from_output,
    to_planar_tensor,
    upscale_mask,
    white_image,
)
from passportcam.core.resources import ResourceGuard

logger = logging.getLogger(__name__)

DEFAULT_REMBG_MODEL = "isnet-general-use"


class SegmentationModel(Protocol):
    def run(self, tensor: np.ndarray) -> np.ndarray:
        ...

    def close(self) -> None:
        ...


class OnnxSegmentationModel:
    """Segmentation model served by an ONNX Runtime session."""

    def __init__(self, session: Any, input_name: Optional[str] = None):
        self._session = session
        self._input_name = input_name or session.get_inputs()[0].name

    @staticmethod
    def load(model_path: str | Path, providers: Optional[List[str]] = None) -> "OnnxSegmentationModel":
        import onnxruntime as ort

        path = Path(model_path)
        if not path.exists():
            raise FileNotFoundError(f"Segmentation model not found: {path}")
        session = ort.InferenceSession(str(path), providers=providers or ["CPUExecutionProvider"])
        logger.info("Segmentation model loaded from %s", path)
        return OnnxSegmentationModel(session)

    @staticmethod
    def from_rembg(model_name: str = DEFAULT_REMBG_MODEL) -> "OnnxSegmentationModel":
        """Reuse the ONNX session rembg provisions (downloads the model on first use)."""
        from rembg import new_session

        session = new_session(model_name)
        logger.info("Segmentation model provided by rembg: %s", model_name)
        return OnnxSegmentationModel(session.inner_session)

    def run(self, tensor: np.ndarray) -> np.ndarray:
        if self._session is None:
            raise RuntimeError("segmentation session is closed")
        outputs = self._session.run(None, {self._input_name: tensor})
        if not outputs:
            raise ValueError("segmentation model returned no outputs")
        return np.asarray(outputs[0])

    def close(self) -> None:
        self._session = None


class BackgroundRemover:
    """
    Replace the background of a still with white.

    The model is not reentrant: calls on one instance are serialized.

    Usage:
        remover = BackgroundRemover.from_model_path("models/background_remover.onnx")
        out = remover.remove_background(pil_rgb)
        remover.release()
    """

    def __init__(self, model: Optional[SegmentationModel], input_size: int = INPUT_SIZE):
        self.input_size = input_size
        self._model: ResourceGuard[SegmentationModel] = ResourceGuard(model, lambda m: m.close())
        self._run_lock = threading.Lock()
        if model is None:
            logger.warning("BackgroundRemover created without a model; output will be white")

    @staticmethod
    def from_model_path(model_path: str | Path) -> "BackgroundRemover":
        try:
            model: Optional[SegmentationModel] = OnnxSegmentationModel.load(model_path)
        except Exception as e:
            logger.error("Failed to load model: %s", e)
            model = None
        return BackgroundRemover(model)

    @staticmethod
    def from_rembg(model_name: str = DEFAULT_REMBG_MODEL) -> "BackgroundRemover":
        try:
            model: Optional[SegmentationModel] = OnnxSegmentationModel.from_rembg(model_name)
        except Exception as e:
            logger.error("Failed to load rembg model %s: %s", model_name, e)
            model = None
        return BackgroundRemover(model)

    @property
    def is_available(self) -> bool:
        return self._model.is_open

    def remove_background(self, image: Image.Image) -> Image.Image:
        """Return an RGB image of the same size with the background replaced by white."""
        width, height = image.size
        with self._run_lock, self._model.borrow() as model:
            if model is None:
                logger.error("Model not initialized")
                return white_image(width, height)
            try:
                logger.debug("Starting background removal for %dx%d", width, height)
                rgb = np.asarray(image.convert("RGB"), dtype=np.uint8)
                tensor = to_planar_tensor(rgb, self.input_size)
                mask = mask_from_output(model.run(tensor), self.input_size)
                alpha = upscale_mask(mask, width, height)
                out = Image.fromarray(composite_on_white(rgb, alpha), "RGB")
            except Exception as e:
                logger.error("Background removal failed: %s", e)
                return white_image(width, height)
        logger.debug("Background removal complete")
        return out

    def release(self) -> None:
        self._model.close()
        logger.debug("Segmentation resources released")
