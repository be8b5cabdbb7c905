"""Tests for the weighted convolution cost and cost composition."""

import numpy as np
import pytest
import torch
from scipy import ndimage

from fftdecon.core import IncorrectSpaceError, ShapedVectorSpace
from fftdecon.deconvolution import CompositeCost, WeightedConvolutionCost


def finite_difference_gradient(cost, x, h=1e-6):
    """Central finite differences of cost.cost(1, x)."""
    grad = torch.zeros_like(x)
    flat = x.view(-1)
    for i in range(flat.numel()):
        saved = float(flat[i])
        flat[i] = saved + h
        fp = cost.cost(1.0, x)
        flat[i] = saved - h
        fm = cost.cost(1.0, x)
        flat[i] = saved
        grad.view(-1)[i] = (fp - fm) / (2.0 * h)
    return grad


def count_convolutions(cost):
    """Record the ``conj`` argument of each call to the operator's convolve."""
    calls = []
    convolve = cost.convolution.convolve

    def counting(conj=False):
        calls.append(conj)
        convolve(conj)

    cost.convolution.convolve = counting
    return calls


@pytest.fixture
def small_problem():
    rng = np.random.default_rng(0)
    space = ShapedVectorSpace((4, 4))
    cost = WeightedConvolutionCost.build(space)
    cost.set_psf(rng.random((3, 3)), offset=(1, 1))
    cost.set_data(rng.random((4, 4)))
    cost.set_weights(rng.random((4, 4)) + 0.5)
    x = torch.from_numpy(rng.random((4, 4)))
    return cost, x


class TestWeightedConvolutionCost:
    """Tests for WeightedConvolutionCost."""

    def test_cost_matches_direct_formula(self):
        rng = np.random.default_rng(1)
        img, psf, data, weights = (rng.random((6, 5)) for _ in range(4))
        psf = psf[:3, :3]

        cost = WeightedConvolutionCost.build(ShapedVectorSpace((6, 5)))
        cost.set_psf(psf, offset=(1, 1))
        cost.set_data(data)
        cost.set_weights(weights)

        r = ndimage.convolve(img, psf, mode="wrap") - data
        expected = 0.5 * np.sum(weights * r * r)
        assert cost.cost(1.0, torch.from_numpy(img)) == pytest.approx(expected, rel=1e-12)
        assert cost.cost(3.0, torch.from_numpy(img)) == pytest.approx(3 * expected, rel=1e-12)

    def test_gradient_matches_finite_differences(self, small_problem):
        cost, x = small_problem
        gx = cost.input_space.create()
        f = cost.cost_and_gradient(1.0, x, gx)
        assert f == pytest.approx(cost.cost(1.0, x), rel=1e-12)

        fd = finite_difference_gradient(cost, x.clone())
        rel_error = float(torch.linalg.vector_norm(gx - fd) / torch.linalg.vector_norm(fd))
        assert rel_error < 1e-5

    def test_gradient_with_windows(self):
        """Data smaller than the object, placed inside the workspace."""
        rng = np.random.default_rng(2)
        obj = ShapedVectorSpace((6, 6))
        dat = ShapedVectorSpace((4, 3))
        cost = WeightedConvolutionCost.build(obj, dat, data_offset=(1, 2))
        assert cost.convolution.work_shape == (6, 6)
        cost.set_psf(rng.random((3, 3)), offset=(1, 1))
        cost.set_data(rng.random((4, 3)))
        x = torch.from_numpy(rng.random((6, 6)))

        gx = obj.create()
        cost.cost_and_gradient(2.0, x, gx)
        fd = 2.0 * finite_difference_gradient(cost, x.clone())
        rel_error = float(torch.linalg.vector_norm(gx - fd) / torch.linalg.vector_norm(fd))
        assert rel_error < 1e-5

    def test_default_workspace_holds_both_windows(self):
        cost = WeightedConvolutionCost.build(
            ShapedVectorSpace((5, 5)),
            ShapedVectorSpace((3, 7)),
            object_offset=(2, 0),
            data_offset=(0, 1),
        )
        assert cost.convolution.work_shape == (7, 8)

    def test_one_forward_and_one_adjoint_convolution(self, small_problem):
        cost, x = small_problem
        calls = count_convolutions(cost)
        cost.cost_and_gradient(1.0, x, cost.input_space.create())
        assert calls == [False, True]

    def test_cost_needs_one_convolution(self, small_problem):
        cost, x = small_problem
        calls = count_convolutions(cost)
        cost.cost(1.0, x)
        assert calls == [False]

    def test_zero_multiplier(self, small_problem):
        cost, x = small_problem
        calls = count_convolutions(cost)
        gx = cost.input_space.create(5.0)
        assert cost.cost_and_gradient(0.0, x, gx) == 0.0
        assert torch.all(gx == 0)
        gx.fill_(5.0)
        cost.cost_and_gradient(0.0, x, gx, clr=False)
        assert torch.all(gx == 5.0)
        assert cost.cost(0.0, x) == 0.0
        assert calls == []

    def test_accumulate(self, small_problem):
        cost, x = small_problem
        g = cost.input_space.create()
        cost.cost_and_gradient(1.0, x, g)
        acc = cost.input_space.create(1.0)
        cost.cost_and_gradient(1.0, x, acc, clr=False)
        assert torch.allclose(acc, g + 1.0)

    def test_call_returns_cost_and_gradient(self, small_problem):
        cost, x = small_problem
        f, g = cost(x)
        gx = cost.input_space.create()
        assert f == pytest.approx(cost.cost_and_gradient(1.0, x, gx))
        assert torch.allclose(g, gx)

    def test_zero_weight_ignores_pixel(self, small_problem):
        cost, x = small_problem
        weights = cost.weights.clone()
        weights[0, 0] = 0.0
        cost.set_weights(weights)
        f = cost.cost(1.0, x)
        data = cost.data.clone()
        data[0, 0] = 1e6
        cost.set_data(data)
        assert cost.cost(1.0, x) == pytest.approx(f, rel=1e-12)

    def test_unweighted(self, small_problem):
        cost, x = small_problem
        cost.set_weights(None)
        r = cost.model(x) - cost.data
        assert cost.cost(1.0, x) == pytest.approx(0.5 * float(torch.sum(r * r)))

    def test_model_is_convolution(self, small_problem):
        cost, x = small_problem
        assert torch.allclose(cost.model(x), cost.convolution.apply(x))

    def test_data_not_set(self):
        cost = WeightedConvolutionCost.build(ShapedVectorSpace((4,)))
        cost.set_psf(np.ones(1))
        x = cost.input_space.create(1.0)
        with pytest.raises(RuntimeError, match="data"):
            cost.cost_and_gradient(1.0, x, cost.input_space.create())

    @pytest.mark.parametrize("bad", [-1.0, np.inf, np.nan])
    def test_invalid_weights(self, bad):
        cost = WeightedConvolutionCost.build(ShapedVectorSpace((4,)))
        weights = np.ones(4)
        weights[2] = bad
        with pytest.raises(ValueError, match="Weights"):
            cost.set_weights(weights)

    def test_wrong_data_shape(self):
        cost = WeightedConvolutionCost.build(ShapedVectorSpace((4,)))
        with pytest.raises(IncorrectSpaceError):
            cost.set_data(np.ones(5))

    def test_wrong_gradient_space(self, small_problem):
        cost, x = small_problem
        with pytest.raises(IncorrectSpaceError):
            cost.cost_and_gradient(1.0, x, torch.zeros(4, 4, dtype=torch.float32))


class TestCompositeCost:
    """Tests for CompositeCost."""

    def test_weighted_sum(self, small_problem):
        cost, x = small_problem
        total = CompositeCost((1.0, cost), (0.5, cost))
        g = cost.input_space.create()
        f = cost.cost_and_gradient(1.0, x, g)
        gt = cost.input_space.create(7.0)
        ft = total.cost_and_gradient(2.0, x, gt)
        assert ft == pytest.approx(3.0 * f)
        assert torch.allclose(gt, 3.0 * g)
        assert total.cost(1.0, x) == pytest.approx(1.5 * f)

    def test_zero_weight_first_term(self, small_problem):
        cost, x = small_problem
        total = CompositeCost((0.0, cost), (1.0, cost))
        g = cost.input_space.create()
        cost.cost_and_gradient(1.0, x, g)
        gt = cost.input_space.create(7.0)
        total.cost_and_gradient(1.0, x, gt)
        assert torch.allclose(gt, g)

    def test_space_mismatch(self, small_problem):
        cost, _ = small_problem
        other = WeightedConvolutionCost.build(ShapedVectorSpace((5, 5)))
        with pytest.raises(IncorrectSpaceError):
            CompositeCost((1.0, cost), (1.0, other))

    def test_negative_weight(self, small_problem):
        cost, _ = small_problem
        with pytest.raises(ValueError, match="non-negative"):
            CompositeCost((-1.0, cost))

    def test_empty(self):
        with pytest.raises(ValueError):
            CompositeCost()
