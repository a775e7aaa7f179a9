from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

from PIL import Image

from passportcam.app.engine import ComplianceEngine
from passportcam.background.remover import BackgroundRemover
from passportcam.core.models import CaptureParams
from passportcam.detection.base import FaceDetector, load_rgb
from passportcam.guidance.scheduler import detect_with_timeout

logger = logging.getLogger(__name__)


@dataclass
class CaptureSession:
    """
    Everything one capture session owns, constructed and released explicitly.

    The engine handle, the still-image detector and the optional background
    remover are injected; nothing is shared process-wide. The session turns a
    captured still into final photo bytes (capture -> face center -> optional
    background removal -> compliance engine).
    """
    detector: FaceDetector
    engine: Optional[ComplianceEngine] = None
    remover: Optional[BackgroundRemover] = None
    params: CaptureParams = field(default_factory=CaptureParams)
    model_dir: Optional[str] = None

    def __post_init__(self) -> None:
        if self.engine is not None and self.model_dir is not None:
            self.engine.init_engine(self.model_dir)
            logger.debug("Initialized with model path: %s", self.model_dir)

    @property
    def is_initialized(self) -> bool:
        return self.engine is not None and bool(self.engine.check_initialized())

    @property
    def version(self) -> Optional[str]:
        return self.engine.version() if self.engine is not None else None

    def face_center(self, image: Any) -> Optional[Tuple[float, float]]:
        """Center of the primary face box, from a one-shot bounded detection."""
        faces = detect_with_timeout(self.detector, image, timeout=self.params.guidance.one_shot_timeout)
        if not faces:
            return None
        return faces[0].bounding_box.center

    def generate(
        self,
        image_bytes: bytes,
        params: Optional[CaptureParams] = None,
        suit_bytes: Optional[bytes] = None,
        face_center: Optional[Tuple[float, float]] = None,
    ) -> Optional[bytes]:
        """
        Produce the final photo bytes, or None when nothing could produce them.

        With background removal requested and a remover attached the bytes are
        produced locally; if that path raises, the engine is asked instead.
        """
        p = params or self.params
        try:
            still = load_rgb(image_bytes)
        except Exception as e:
            logger.error("Could not decode captured image: %s", e)
            return None

        if p.remove_background and self.remover is not None:
            try:
                return self._generate_locally(self.remover, still, p)
            except Exception as e:
                logger.error("Local background removal failed, falling back to engine: %s", e)

        if self.engine is None:
            logger.info("No compliance engine attached")
            return None

        center = face_center if face_center is not None else self.face_center(still)
        cx, cy = center if center is not None else (None, None)
        return self.engine.generate(
            image_bytes,
            int(p.standard),
            suit_bytes,
            cx,
            cy,
            p.remove_background,
        )

    @staticmethod
    def _generate_locally(remover: BackgroundRemover, still: Image.Image, params: CaptureParams) -> bytes:
        processed = remover.remove_background(still)
        buf = io.BytesIO()
        processed.save(buf, format="JPEG", quality=params.jpeg_quality, optimize=True)
        return buf.getvalue()

    def release(self) -> None:
        """Release owned components. Safe to call more than once."""
        self.detector.release()
        if self.remover is not None:
            self.remover.release()
