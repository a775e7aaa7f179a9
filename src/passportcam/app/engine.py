from __future__ import annotations

from enum import IntEnum
from typing import Optional, Protocol


class Standard(IntEnum):
    """Photo standard ids understood by the compliance engine; passed through as ints."""
    SAUDI_EVISA = 0
    US = 1
    SCHENGEN = 2
    GENERAL_ID = 3
    UK = 4
    INDIA = 5
    CUSTOM = 99


class ComplianceEngine(Protocol):
    """
    The external photo-compliance engine (crop geometry, DPI, suit overlay).

    Only these calls are consumed; the rules behind them live in the engine.
    """

    def init_engine(self, model_dir: str) -> None:
        ...

    def generate(
        self,
        image_bytes: bytes,
        standard_id: int,
        suit_bytes: Optional[bytes],
        face_center_x: Optional[float],
        face_center_y: Optional[float],
        remove_background: bool,
    ) -> Optional[bytes]:
        ...

    def check_initialized(self) -> bool:
        ...

    def version(self) -> str:
        ...
