import argparse
import contextlib
import io
import tempfile
import unittest
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

import numpy as np
from PIL import Image

from tests._test_path import SRC  # noqa: F401

from passportcam import cli
from passportcam.background.remover import BackgroundRemover
from passportcam.core.geometry import Rect
from passportcam.core.models import CaptureParams, FaceCandidate, FacePositionStatus


class FakeDetector:
    def __init__(self, faces=()):
        self.faces = list(faces)
        self.released = 0

    def detect(self, image, rotation=0):
        return list(self.faces)

    def release(self):
        self.released += 1


class TransparentModel:
    def run(self, tensor):
        return np.zeros(tensor.shape[2:], dtype=np.float32)

    def close(self):
        pass


# 0.20 of a 400 x 300 frame, centered
GOOD_FACE = FaceCandidate(bounding_box=Rect(110, 75, 290, 225), confidence=1.0)


class TestCli(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)
        self.input = self.dir / "in.jpg"
        Image.new("RGB", (400, 300), (80, 90, 100)).save(self.input, format="JPEG")

    def tearDown(self):
        self.tmp.cleanup()

    def test_parse_view_size(self):
        self.assertEqual(cli._parse_view_size("720x1280"), (720, 1280))
        with self.assertRaises(argparse.ArgumentTypeError):
            cli._parse_view_size("720")
        with self.assertRaises(argparse.ArgumentTypeError):
            cli._parse_view_size("0x10")

    def test_neural_requires_model(self):
        with self.assertRaises(ValueError):
            cli._build_detector("neural", None)

    def test_run_capture_writes_output_and_preview(self):
        out = self.dir / "out.jpg"
        preview = self.dir / "guide.png"
        det = FakeDetector([GOOD_FACE])
        result = cli.run_capture(str(self.input), str(out), det, annotate_path=str(preview), view_size=(200, 400))
        self.assertEqual(result.status, FacePositionStatus.GOOD)
        self.assertEqual(Image.open(out).size, (400, 300))
        self.assertEqual(Image.open(preview).size, (200, 400))
        self.assertEqual(det.released, 1)

    def test_run_capture_with_background_removal(self):
        out = self.dir / "out.jpg"
        remover = BackgroundRemover(TransparentModel(), input_size=16)
        params = replace(CaptureParams(), remove_background=True)
        cli.run_capture(str(self.input), str(out), FakeDetector(), remover=remover, params=params)
        arr = np.asarray(Image.open(out).convert("RGB")).astype(int)
        self.assertTrue((arr >= 250).all())

    def test_main_prints_status(self):
        out = self.dir / "out.jpg"
        buf = io.StringIO()
        with patch.object(cli, "_build_detector", return_value=FakeDetector([GOOD_FACE])):
            with contextlib.redirect_stdout(buf):
                code = cli.main(["--input", str(self.input), "--output", str(out), "--standard", "us"])
        self.assertEqual(code, 0)
        text = buf.getvalue()
        self.assertIn("Status: GOOD", text)
        self.assertIn("Face center: (200.0, 150.0)", text)
        self.assertTrue(out.exists())

    def test_main_reports_errors(self):
        err = io.StringIO()
        with patch.object(cli, "_build_detector", return_value=FakeDetector()):
            with contextlib.redirect_stderr(err):
                code = cli.main(["--input", str(self.dir / "missing.jpg"), "--output", str(self.dir / "o.jpg")])
        self.assertEqual(code, 2)
        self.assertIn("ERROR:", err.getvalue())
