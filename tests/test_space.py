"""Tests for shaped vector spaces."""

import numpy as np
import pytest
import torch

from fftdecon.core import IncorrectSpaceError, ShapedVectorSpace, complex_dtype


class TestShapedVectorSpace:
    """Tests for ShapedVectorSpace construction and primitives."""

    def test_shape_normalized(self):
        space = ShapedVectorSpace([4, 5])
        assert space.shape == (4, 5)
        assert space.rank == 2
        assert space.size == 20
        assert space.device == torch.device("cpu")

    def test_invalid_shape(self):
        with pytest.raises(ValueError, match="at least one dimension"):
            ShapedVectorSpace(())
        with pytest.raises(ValueError, match="Dimension 1"):
            ShapedVectorSpace((3, 0))

    def test_invalid_dtype(self):
        with pytest.raises(ValueError, match="Unsupported element type"):
            ShapedVectorSpace((3,), dtype=torch.int32)

    def test_create(self):
        space = ShapedVectorSpace((2, 3), dtype=torch.float32)
        x = space.create()
        assert x.shape == (2, 3)
        assert x.dtype == torch.float32
        assert torch.all(x == 0)
        assert torch.all(space.create(2.5) == 2.5)

    def test_wrap_numpy(self):
        space = ShapedVectorSpace((2, 2))
        arr = np.arange(4.0).reshape(2, 2)
        x = space.wrap(arr)
        assert x.dtype == torch.float64
        arr[0, 0] = 100.0
        assert x[0, 0] == 0.0  # a copy

    def test_wrap_wrong_shape(self):
        space = ShapedVectorSpace((2, 2))
        with pytest.raises(IncorrectSpaceError, match="Data has shape"):
            space.wrap(np.zeros(4), "Data")

    def test_check(self):
        space = ShapedVectorSpace((3,))
        space.check(torch.zeros(3, dtype=torch.float64))
        with pytest.raises(IncorrectSpaceError):
            space.check(torch.zeros(3, dtype=torch.float32))
        with pytest.raises(IncorrectSpaceError):
            space.check(torch.zeros(4, dtype=torch.float64))
        with pytest.raises(IncorrectSpaceError, match="must be a torch.Tensor"):
            space.check(np.zeros(3))

    def test_incorrect_space_is_value_error(self):
        assert issubclass(IncorrectSpaceError, ValueError)

    def test_dot_and_norm(self):
        space = ShapedVectorSpace((2,))
        x = torch.tensor([3.0, 4.0], dtype=torch.float64)
        y = torch.tensor([1.0, -1.0], dtype=torch.float64)
        assert space.dot(x, y) == pytest.approx(-1.0)
        assert space.norm2(x) == pytest.approx(5.0)
        assert isinstance(space.dot(x, y), float)

    def test_axpby_in_place(self):
        space = ShapedVectorSpace((3,))
        x = torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64)
        y = torch.tensor([1.0, 1.0, 1.0], dtype=torch.float64)
        out = space.axpby(2.0, x, -1.0, y, dst=x)
        assert out is x
        assert torch.allclose(x, torch.tensor([1.0, 3.0, 5.0], dtype=torch.float64))

    def test_copy(self):
        space = ShapedVectorSpace((3,))
        x = space.create(1.0)
        y = space.copy(x)
        assert y is not x and torch.equal(x, y)
        z = space.create()
        assert space.copy(x, z) is z
        assert torch.equal(z, x)


class TestComplexDtype:
    """Tests for complex_dtype."""

    def test_mapping(self):
        assert complex_dtype(torch.float32) == torch.complex64
        assert complex_dtype(torch.float64) == torch.complex128

    def test_unsupported(self):
        with pytest.raises(ValueError):
            complex_dtype(torch.float16)
