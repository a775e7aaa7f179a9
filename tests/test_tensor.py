import unittest

import cv2
import numpy as np

from tests._test_path import SRC  # noqa: F401

from passportcam.background.tensor import (
    INPUT_SIZE,
    composite_on_white,
    mask_from_output,
    tensor_to_rgb,
    to_planar_tensor,
    upscale_mask,
    white_image,
)


class TestPlanarTensor(unittest.TestCase):
    def test_shape_dtype_and_range(self):
        rgb = np.random.default_rng(0).integers(0, 256, size=(300, 200, 3), dtype=np.uint8)
        t = to_planar_tensor(rgb)
        self.assertEqual(t.shape, (1, 3, INPUT_SIZE, INPUT_SIZE))
        self.assertEqual(t.dtype, np.float32)
        self.assertTrue(t.flags["C_CONTIGUOUS"])
        self.assertGreaterEqual(float(t.min()), 0.0)
        self.assertLessEqual(float(t.max()), 1.0)

    def test_planes_are_r_then_g_then_b(self):
        rgb = np.zeros((4, 4, 3), dtype=np.uint8)
        rgb[..., 0] = 255
        rgb[..., 1] = 51
        rgb[..., 2] = 0
        t = to_planar_tensor(rgb, size=4)
        flat = t.ravel()
        self.assertTrue(np.allclose(flat[:16], 1.0))
        self.assertTrue(np.allclose(flat[16:32], 0.2))
        self.assertTrue(np.allclose(flat[32:], 0.0))

    def test_row_major_within_plane(self):
        rgb = (np.arange(3 * 3 * 3, dtype=np.uint8) * 9).reshape(3, 3, 3)
        t = to_planar_tensor(rgb, size=3)
        for c in range(3):
            expected = rgb[:, :, c].astype(np.float32).ravel() / 255.0
            self.assertTrue(np.allclose(t.ravel()[c * 9 : (c + 1) * 9], expected))

    def test_round_trip_reproduces_resized_image(self):
        rgb = np.random.default_rng(1).integers(0, 256, size=(240, 320, 3), dtype=np.uint8)
        back = tensor_to_rgb(to_planar_tensor(rgb))
        resized = cv2.resize(rgb, (INPUT_SIZE, INPUT_SIZE), interpolation=cv2.INTER_LINEAR)
        self.assertEqual(back.shape, (INPUT_SIZE, INPUT_SIZE, 3))
        diff = np.abs(back.astype(np.int16) - resized.astype(np.int16))
        self.assertLessEqual(int(diff.max()), 1)

    def test_rejects_non_rgb(self):
        with self.assertRaises(ValueError):
            to_planar_tensor(np.zeros((10, 10), dtype=np.uint8))
        with self.assertRaises(ValueError):
            tensor_to_rgb(np.zeros((3, 4, 4), dtype=np.float32))


class TestMask(unittest.TestCase):
    def test_accepted_shapes(self):
        for shape in ((8, 8), (1, 8, 8), (1, 1, 8, 8)):
            m = mask_from_output(np.full(shape, 0.5, dtype=np.float32), size=8)
            self.assertEqual(m.shape, (8, 8))

    def test_values_clamped(self):
        raw = np.array([[-1.0, 0.25], [2.0, 1.0]], dtype=np.float32)
        m = mask_from_output(raw, size=2)
        self.assertTrue(np.allclose(m, [[0.0, 0.25], [1.0, 1.0]]))

    def test_malformed_rejected(self):
        with self.assertRaises(ValueError):
            mask_from_output(np.zeros((1, 3, 8, 8), dtype=np.float32), size=8)
        with self.assertRaises(ValueError):
            mask_from_output(np.zeros((4, 4), dtype=np.float32), size=8)
        bad = np.zeros((8, 8), dtype=np.float32)
        bad[0, 0] = np.nan
        with self.assertRaises(ValueError):
            mask_from_output(bad, size=8)

    def test_upscale_to_target_size(self):
        m = upscale_mask(np.ones((8, 8), dtype=np.float32), 30, 20)
        self.assertEqual(m.shape, (20, 30))
        self.assertTrue(np.allclose(m, 1.0))


class TestComposite(unittest.TestCase):
    def setUp(self):
        self.rgb = np.full((2, 3, 3), 100, dtype=np.uint8)

    def test_zero_alpha_is_white(self):
        out = composite_on_white(self.rgb, np.zeros((2, 3), dtype=np.float32))
        self.assertTrue((out == 255).all())

    def test_full_alpha_is_original(self):
        out = composite_on_white(self.rgb, np.ones((2, 3), dtype=np.float32))
        self.assertTrue((out == 100).all())

    def test_half_alpha_blends(self):
        out = composite_on_white(self.rgb, np.full((2, 3), 0.5, dtype=np.float32))
        self.assertTrue((np.abs(out.astype(int) - 178) <= 1).all())

    def test_mismatched_mask_rejected(self):
        with self.assertRaises(ValueError):
            composite_on_white(self.rgb, np.ones((3, 2), dtype=np.float32))

    def test_white_image(self):
        img = white_image(7, 5)
        self.assertEqual(img.size, (7, 5))
        self.assertEqual(img.mode, "RGB")
        self.assertEqual(img.getpixel((3, 2)), (255, 255, 255))
