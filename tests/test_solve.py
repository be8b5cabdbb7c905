"""End-to-end tests of the L-BFGS driver loop on small deconvolution problems."""

import numpy as np
import pytest
import torch

from fftdecon import ShapedVectorSpace, WeightedConvolutionCost, solve_lbfgs
from fftdecon.optim import OptimTask
from toy import box_psf, make_blurred_image


@pytest.fixture
def blurred_problem():
    x_true, psf, blurred = make_blurred_image((8, 8), psf_size=3, noise_level=0.01, seed=0)
    cost = WeightedConvolutionCost.build(ShapedVectorSpace((8, 8)))
    cost.set_psf(psf, offset=(1, 1))
    cost.set_data(blurred)
    return cost, x_true, blurred


class TestSolveLBFGS:
    """Tests for solve_lbfgs."""

    def test_deconvolution_converges(self, blurred_problem):
        cost, _, blurred = blurred_problem
        x0 = np.zeros((8, 8))
        result = solve_lbfgs(cost, x0, max_iter=2000, grtol=1e-5)

        assert result.converged
        assert result.metadata["task"] is OptimTask.FINAL_X
        assert result.loss_history[-1] < cost.cost(1.0, torch.zeros((8, 8), dtype=torch.float64))
        assert result.loss_history[-1] < result.loss_history[0]

        residual = cost.model(result.restored) - torch.from_numpy(blurred)
        assert float(torch.linalg.vector_norm(residual)) < 1e-2 * np.linalg.norm(blurred)

    def test_loss_decreases(self, blurred_problem):
        cost, _, _ = blurred_problem
        result = solve_lbfgs(cost, np.zeros((8, 8)), max_iter=20)
        losses = np.array(result.loss_history)
        assert len(losses) == result.iterations + 1
        assert np.all(np.diff(losses) <= 1e-12 * losses[0])

    def test_max_iter(self, blurred_problem):
        cost, _, _ = blurred_problem
        result = solve_lbfgs(cost, np.zeros((8, 8)), max_iter=2)
        assert result.iterations == 2
        assert not result.converged
        assert result.metadata["message"] == "maximum number of iterations reached"

    def test_max_eval(self, blurred_problem):
        cost, _, _ = blurred_problem
        result = solve_lbfgs(cost, np.zeros((8, 8)), max_eval=3)
        assert result.metadata["evaluations"] <= 3
        assert not result.converged
        # The returned estimate is the last accepted iterate.
        expected = cost.cost(1.0, result.restored)
        assert result.loss_history[-1] == pytest.approx(expected)

    def test_initial_estimate_not_modified(self, blurred_problem):
        cost, _, blurred = blurred_problem
        x0 = torch.from_numpy(blurred.copy())
        solve_lbfgs(cost, x0, max_iter=5)
        assert torch.equal(x0, torch.from_numpy(blurred))

    def test_callback(self, blurred_problem):
        cost, _, _ = blurred_problem
        seen = []
        result = solve_lbfgs(
            cost,
            np.zeros((8, 8)),
            max_iter=5,
            callback=lambda it, x: seen.append((it, float(x.sum()))),
        )
        assert [it for it, _ in seen] == list(range(1, result.iterations + 1))

    def test_verbose(self, blurred_problem, capsys):
        cost, _, _ = blurred_problem
        solve_lbfgs(cost, np.zeros((8, 8)), max_iter=3, verbose=True)
        out = capsys.readouterr().out
        assert "L-BFGS" in out
        assert "Stopped after 3 iterations" in out

    def test_gatol_stops_early(self, blurred_problem):
        cost, _, _ = blurred_problem
        result = solve_lbfgs(cost, np.zeros((8, 8)), gatol=1e10)
        assert result.converged
        assert result.iterations == 0
        assert result.metadata["evaluations"] == 1

    def test_alpha_scales_cost(self, blurred_problem):
        cost, _, _ = blurred_problem
        result = solve_lbfgs(cost, np.zeros((8, 8)), alpha=2.0, max_iter=1)
        assert result.loss_history[0] == pytest.approx(
            2.0 * cost.cost(1.0, torch.zeros((8, 8), dtype=torch.float64))
        )

    def test_invalid_arguments(self, blurred_problem):
        cost, _, _ = blurred_problem
        with pytest.raises(ValueError):
            solve_lbfgs(cost, np.zeros((8, 8)), max_iter=-1)
        with pytest.raises(ValueError):
            solve_lbfgs(cost, np.zeros((8, 8)), max_eval=0)
        with pytest.raises(ValueError):
            solve_lbfgs(cost, np.zeros((8, 8)), delta=2.0)

    def test_float32_problem(self):
        x_true, psf, blurred = make_blurred_image((16, 16), psf_size=3, seed=1)
        cost = WeightedConvolutionCost.build(ShapedVectorSpace((16, 16), dtype=torch.float32))
        cost.set_psf(psf, offset=(1, 1))
        cost.set_data(blurred)
        result = solve_lbfgs(cost, np.zeros((16, 16)), max_iter=30)
        assert result.restored.dtype == torch.float32
        assert result.loss_history[-1] < result.loss_history[0]


class TestToyProblems:
    """Tests for the synthetic problem generator."""

    def test_box_psf(self):
        psf = box_psf(3, 2)
        assert psf.shape == (3, 3)
        assert psf.sum() == pytest.approx(1.0)

    def test_make_blurred_image(self):
        x_true, psf, blurred = make_blurred_image((8, 8), psf_size=3, noise_level=0.0)
        assert x_true.shape == blurred.shape == (8, 8)
        assert np.all(x_true >= 0)
        assert blurred.sum() == pytest.approx(x_true.sum())
