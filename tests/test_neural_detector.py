import unittest

import numpy as np

from tests._test_path import SRC  # noqa: F401

from passportcam.core.geometry import Rect
from passportcam.detection.base import FaceDetector
from passportcam.detection.neural import IdentityTracker, NeuralFaceDetector, RawFace, iou


class FakeModel:
    def __init__(self, faces, raises=False):
        self.faces = list(faces)
        self.raises = raises
        self.closed = 0
        self.shapes = []

    def process(self, rgb):
        self.shapes.append(rgb.shape)
        if self.raises:
            raise RuntimeError("inference failed")
        return self.faces

    def close(self):
        self.closed += 1


def frame(w=640, h=480):
    return np.zeros((h, w, 3), dtype=np.uint8)


class TestNeuralFaceDetector(unittest.TestCase):
    def test_satisfies_protocol(self):
        self.assertIsInstance(NeuralFaceDetector(FakeModel([])), FaceDetector)

    def test_confidence_proxy(self):
        model = FakeModel([
            RawFace(Rect(100, 100, 250, 250), tracking_id=7),
            RawFace(Rect(300, 100, 450, 250)),
        ])
        faces = NeuralFaceDetector(model).detect(frame())
        self.assertEqual([f.confidence for f in faces], [1.0, 0.8])
        self.assertEqual([f.tracked for f in faces], [True, False])

    def test_boxes_passed_through_in_model_order(self):
        boxes = [Rect(300, 100, 450, 250), Rect(100, 100, 250, 250)]
        faces = NeuralFaceDetector(FakeModel([RawFace(b) for b in boxes])).detect(frame())
        self.assertEqual([f.bounding_box for f in faces], boxes)

    def test_small_faces_dropped(self):
        # 15% of the shorter side (480) = 72 px
        model = FakeModel([RawFace(Rect(0, 0, 71, 100)), RawFace(Rect(0, 0, 72, 72))])
        faces = NeuralFaceDetector(model).detect(frame())
        self.assertEqual(len(faces), 1)
        self.assertEqual(faces[0].bounding_box, Rect(0, 0, 72, 72))

    def test_landmarks_passed_through(self):
        lm = ((1.0, 2.0), (3.0, 4.0))
        faces = NeuralFaceDetector(FakeModel([RawFace(Rect(0, 0, 100, 100), landmarks=lm)])).detect(frame())
        self.assertEqual(faces[0].landmarks, lm)

    def test_model_failure_gives_empty(self):
        self.assertEqual(NeuralFaceDetector(FakeModel([], raises=True)).detect(frame()), [])

    def test_no_model_gives_empty(self):
        det = NeuralFaceDetector(None)
        self.assertFalse(det.is_available)
        self.assertEqual(det.detect(frame()), [])

    def test_missing_yunet_model_gives_noop_detector(self):
        det = NeuralFaceDetector.from_yunet("/nonexistent/face_detection_yunet.onnx")
        self.assertFalse(det.is_available)
        self.assertEqual(det.detect(frame()), [])

    def test_small_input_skipped(self):
        model = FakeModel([RawFace(Rect(0, 0, 40, 40))])
        self.assertEqual(NeuralFaceDetector(model).detect(frame(40, 40)), [])
        self.assertEqual(model.shapes, [])

    def test_rotation_hint(self):
        model = FakeModel([])
        NeuralFaceDetector(model).detect(frame(640, 480), rotation=270)
        self.assertEqual(model.shapes, [(640, 480, 3)])

    def test_release(self):
        model = FakeModel([RawFace(Rect(0, 0, 100, 100))])
        det = NeuralFaceDetector(model)
        det.release()
        det.release()
        self.assertEqual(model.closed, 1)
        self.assertEqual(det.detect(frame()), [])


class TestIdentityTracker(unittest.TestCase):
    def test_iou(self):
        self.assertAlmostEqual(iou(Rect(0, 0, 10, 10), Rect(0, 0, 10, 10)), 1.0)
        self.assertAlmostEqual(iou(Rect(0, 0, 10, 10), Rect(5, 0, 15, 10)), 50 / 150)
        self.assertEqual(iou(Rect(0, 0, 10, 10), Rect(20, 20, 30, 30)), 0.0)

    def test_identity_after_second_sighting(self):
        t = IdentityTracker()
        self.assertEqual(t.update([Rect(100, 100, 200, 200)]), [None])
        first = t.update([Rect(105, 100, 205, 200)])
        self.assertIsNotNone(first[0])
        self.assertEqual(t.update([Rect(110, 102, 210, 202)]), first)

    def test_new_face_has_no_identity(self):
        t = IdentityTracker()
        t.update([Rect(100, 100, 200, 200)])
        ids = t.update([Rect(100, 100, 200, 200), Rect(400, 100, 500, 200)])
        self.assertIsNotNone(ids[0])
        self.assertIsNone(ids[1])

    def test_reset(self):
        t = IdentityTracker()
        t.update([Rect(100, 100, 200, 200)])
        t.reset()
        self.assertEqual(t.update([Rect(100, 100, 200, 200)]), [None])
