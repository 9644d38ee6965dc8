"""Unit tests for image buffer helpers and geometry."""
import io
import math

import numpy as np
import pytest
from PIL import Image

from qrdx.core.exceptions import InputError
from qrdx.utils.geometry import bounding_box, center_distance, right_triangle_fit
from qrdx.utils.image_utils import (
    add_quiet_zone, crop_region, flatten_transparency, has_transparency,
    is_empty_image, load_image, resize_to, resize_to_max, to_gray, to_rgba,
)


class TestBufferConversion:
    def test_is_empty_image(self):
        assert is_empty_image(None)
        assert is_empty_image(np.zeros((0, 10, 4), dtype=np.uint8))
        assert is_empty_image("not an image")
        assert not is_empty_image(np.zeros((1, 1), dtype=np.uint8))

    @pytest.mark.parametrize("shape", [(8, 6), (8, 6, 1), (8, 6, 3), (8, 6, 4)])
    def test_to_rgba_shapes(self, shape):
        assert to_rgba(np.zeros(shape, dtype=np.uint8)).shape == (8, 6, 4)

    def test_to_rgba_rejects_two_channels(self):
        with pytest.raises(InputError):
            to_rgba(np.zeros((4, 4, 2), dtype=np.uint8))

    def test_to_gray(self):
        rgba = np.zeros((4, 4, 4), dtype=np.uint8)
        rgba[..., :3] = 200
        rgba[..., 3] = 255
        gray = to_gray(rgba)

        assert gray.shape == (4, 4)
        assert int(gray[0, 0]) == 200


class TestTransparency:
    def test_flatten_onto_white(self):
        rgba = np.zeros((4, 4, 4), dtype=np.uint8)  # fully transparent black
        flat = flatten_transparency(rgba)

        assert np.all(flat[..., :3] == 255)
        assert np.all(flat[..., 3] == 255)

    def test_opaque_image_is_unchanged(self):
        rgba = np.full((4, 4, 4), 255, dtype=np.uint8)
        rgba[..., :3] = 10
        flat = flatten_transparency(rgba)

        assert np.array_equal(flat, rgba)
        assert flat is not rgba

    def test_has_transparency(self):
        rgba = np.full((10, 10, 4), 255, dtype=np.uint8)
        assert not has_transparency(rgba)
        rgba[:5, :, 3] = 0
        assert has_transparency(rgba)


class TestGeometryOps:
    def test_add_quiet_zone(self):
        padded = add_quiet_zone(np.zeros((10, 10, 4), dtype=np.uint8), padding=5)

        assert padded.shape == (20, 20, 4)
        assert np.all(padded[0, 0] == 255)
        assert np.all(padded[10, 10, :3] == 0)

    def test_resize_to_max_noop(self):
        image = np.zeros((100, 80, 4), dtype=np.uint8)
        out, factors = resize_to_max(image, 200)

        assert out is image
        assert factors == (1.0, 1.0)

    def test_resize_to_max_downscales_longest_side(self):
        image = np.zeros((300, 600, 4), dtype=np.uint8)
        out, (sx, sy) = resize_to_max(image, 150)

        assert out.shape[:2] == (75, 150)
        assert sx == pytest.approx(4.0)
        assert sy == pytest.approx(4.0)

    def test_resize_to_max_keeps_per_axis_factors(self):
        # 701 * 0.25 truncates to 175, so y maps back slightly stronger than x
        image = np.zeros((701, 1000, 4), dtype=np.uint8)
        out, (sx, sy) = resize_to_max(image, 250)

        h, w = out.shape[:2]
        assert (w, h) == (250, 175)
        assert sx == pytest.approx(4.0)
        assert sy == pytest.approx(701 / 175)
        assert h * sy == pytest.approx(701)

    def test_resize_to_exact_size(self):
        image = np.zeros((40, 60, 4), dtype=np.uint8)

        assert resize_to(image, 60, 40) is image
        assert resize_to(image, 150, 100).shape == (100, 150, 4)
        assert resize_to(image, 30, 20).shape == (20, 30, 4)

    def test_crop_region_clamps(self):
        image = np.zeros((100, 100, 4), dtype=np.uint8)
        crop = crop_region(image, 5, 5, 20, 20, padding=30)

        assert crop.shape[:2] == (55, 55)


class TestLoadImage:
    def test_load_png_bytes(self):
        buf = io.BytesIO()
        Image.new("RGB", (12, 7), (0, 0, 0)).save(buf, format="PNG")
        image = load_image(buf.getvalue())

        assert image.shape == (7, 12, 4)
        assert image.dtype == np.uint8

    def test_load_missing_file(self, temp_dir):
        with pytest.raises(InputError):
            load_image(temp_dir / "nope.png")

    def test_load_garbage_bytes(self):
        with pytest.raises(InputError):
            load_image(b"definitely not an image")

    @pytest.mark.parametrize("name", ["notes.txt", "scan.pdf", "noextension"])
    def test_unsupported_suffix_rejected(self, temp_dir, name):
        path = temp_dir / name
        path.write_bytes(b"whatever")

        with pytest.raises(InputError, match="Unsupported image format"):
            load_image(path)

    def test_suffix_is_case_insensitive(self, temp_dir):
        path = temp_dir / "UPPER.PNG"
        Image.new("RGB", (5, 5), (255, 255, 255)).save(path, format="PNG")

        assert load_image(str(path)).shape == (5, 5, 4)


class TestGeometry:
    def test_center_distance(self):
        assert center_distance((0, 0), (3, 4)) == 5

    def test_right_triangle_fit_perfect(self):
        diagonal_error, leg_ratio = right_triangle_fit((0, 0), (100, 0), (0, 100))

        assert diagonal_error == pytest.approx(0.0, abs=1e-9)
        assert leg_ratio == pytest.approx(1.0)

    def test_right_triangle_fit_collinear(self):
        diagonal_error, leg_ratio = right_triangle_fit((0, 0), (50, 0), (100, 0))

        assert diagonal_error > 0.35
        assert leg_ratio == pytest.approx(1.0)

    def test_right_triangle_fit_degenerate(self):
        assert right_triangle_fit((1, 1), (1, 1), (1, 1)) == (math.inf, 0.0)

    def test_bounding_box(self):
        assert bounding_box([(1, 5), (4, 2), (3, 9)]) == (1, 2, 3, 7)
