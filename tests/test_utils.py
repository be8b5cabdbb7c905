"""Tests for padding and FFT size utilities."""

import numpy as np
import pytest

from fftdecon.utils import center_to_origin, good_fft_shape, good_fft_size, pad_to_shape


class TestPadToShape:
    """Tests for pad_to_shape."""

    def test_corner(self):
        img = np.ones((2, 3))
        out = pad_to_shape(img, (4, 5))
        assert out.shape == (4, 5)
        assert out.sum() == 6
        assert np.all(out[:2, :3] == 1)

    def test_offset(self):
        img = np.ones((2,))
        out = pad_to_shape(img, (5,), offset=(3,))
        assert np.array_equal(out, [0, 0, 0, 1, 1])

    def test_does_not_fit(self):
        with pytest.raises(ValueError, match="does not fit"):
            pad_to_shape(np.ones((4, 4)), (3, 8))
        with pytest.raises(ValueError, match="does not fit"):
            pad_to_shape(np.ones((2,)), (4,), offset=(3,))

    def test_rank_mismatch(self):
        with pytest.raises(ValueError, match="must match"):
            pad_to_shape(np.ones((2, 2)), (4,))


class TestCenterToOrigin:
    """Tests for center_to_origin."""

    def test_box_wraps_around(self):
        box = np.arange(9.0).reshape(3, 3)
        h = center_to_origin(box, (8, 8), center=(1, 1))
        assert h[0, 0] == box[1, 1]
        assert h[-1, -1] == box[0, 0]
        assert h[1, 1] == box[2, 2]
        assert h[0, -1] == box[1, 0]
        assert h.sum() == box.sum()

    def test_default_center(self):
        psf = np.array([1.0, 2.0])
        h = center_to_origin(psf, (4,))
        assert np.array_equal(h, [1, 2, 0, 0])

    def test_center_out_of_range(self):
        with pytest.raises(ValueError, match="out of range"):
            center_to_origin(np.ones((3,)), (8,), center=(3,))


class TestGoodFFTSize:
    """Tests for good_fft_size and good_fft_shape."""

    @pytest.mark.parametrize(
        "n, expected",
        [(1, 1), (7, 7), (11, 12), (13, 14), (97, 98), (128, 128)],
    )
    def test_values(self, n, expected):
        assert good_fft_size(n) == expected

    def test_invalid(self):
        with pytest.raises(ValueError):
            good_fft_size(0)

    def test_shape(self):
        assert good_fft_shape((100, 100), (15, 15)) == (120, 120)
        assert good_fft_shape((8, 6), (3, 3)) == (10, 8)

    def test_shape_rank_mismatch(self):
        with pytest.raises(ValueError, match="dimensions"):
            good_fft_shape((8, 8), (3,))
