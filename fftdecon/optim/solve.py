"""Driver loop running the L-BFGS reverse-communication protocol."""

from typing import Callable, Optional, Union

import numpy as np
import torch

from ..deconvolution.base import DeconvolutionResult
from ..deconvolution.cost import DifferentiableCost
from .lbfgs import LBFGS
from .linesearch import MoreThuenteLineSearch
from .status import OptimTask

__all__ = ["solve_lbfgs"]


def solve_lbfgs(
    cost: DifferentiableCost,
    x0: Union[np.ndarray, torch.Tensor],
    alpha: float = 1.0,
    m: int = 5,
    max_iter: int = 100,
    max_eval: Optional[int] = None,
    gatol: float = 0.0,
    grtol: float = 1e-6,
    delta: float = 0.01,
    epsilon: float = 1e-3,
    line_search: Optional[MoreThuenteLineSearch] = None,
    verbose: bool = False,
    callback: Optional[Callable[[int, torch.Tensor], None]] = None,
) -> DeconvolutionResult:
    """Minimize a differentiable cost with L-BFGS.

    Args:
        cost: Cost function providing values and gradients.
        x0: Initial estimate, in the input space of the cost (not modified).
        alpha: Multiplier of the cost. Default 1.
        m: Number of memorized steps. Default 5.
        max_iter: Maximum number of accepted iterations. Default 100.
        max_eval: Maximum number of cost evaluations. Default unlimited.
        gatol: Absolute gradient norm tolerance. Default 0.
        grtol: Relative gradient norm tolerance. Default 1e-6.
        delta: Sufficient descent threshold. Default 0.01.
        epsilon: Relative size of the first step. Default 1e-3.
        line_search: Line search to use. Default Moré & Thuente with
            ftol=1e-3, gtol=0.9, xtol=0.1.
        verbose: Print iteration progress. Default False.
        callback: Optional function called at each accepted iterate with
            (iteration, current_estimate).

    Returns:
        DeconvolutionResult with the last accepted iterate. ``converged`` is
        True only if the gradient convergence test was satisfied.

    Example:
        ```python
        cost = WeightedConvolutionCost.build(ShapedVectorSpace(blurred.shape))
        cost.set_psf(psf, offset=(7, 7), normalize=True)
        cost.set_data(blurred)
        result = solve_lbfgs(cost, blurred, max_iter=200, verbose=True)
        ```
    """
    if max_iter < 0:
        raise ValueError(f"max_iter must be non-negative, got {max_iter}")
    if max_eval is not None and max_eval < 1:
        raise ValueError(f"max_eval must be at least 1, got {max_eval}")

    space = cost.input_space
    x = space.wrap(x0, "Initial estimate")
    g = space.create()
    best = space.copy(x)

    opt = LBFGS(space, m=m, line_search=line_search)
    opt.gatol = gatol
    opt.grtol = grtol
    opt.delta = delta
    opt.epsilon = epsilon

    loss_history = []
    stop = None
    f = 0.0

    if verbose:
        print("L-BFGS Minimization")
        print(f"  Shape: {space.shape}, Memory: {m}, Alpha: {alpha}")
        print(f"  Tolerances: gatol={gatol}, grtol={grtol}")
        print()
        print(f"{'Iter':>5}  {'Evals':>5}  {'Cost':>12}  {'|g|':>10}  {'Step':>10}")
        print("-" * 50)

    task = opt.start()
    while True:
        if task is OptimTask.COMPUTE_FG:
            if max_eval is not None and opt.evaluations >= max_eval:
                stop = "maximum number of evaluations reached"
                break
            f = cost.cost_and_gradient(alpha, x, g)
        elif task is OptimTask.NEW_X or task is OptimTask.FINAL_X:
            loss_history.append(f)
            space.copy(x, best)
            if verbose:
                print(
                    f"{opt.iterations:>5}  {opt.evaluations:>5}  {f:>12.4e}  "
                    f"{opt.gradient_norm:>10.3e}  {opt.step:>10.3e}"
                )
            if callback is not None and opt.iterations > 0:
                callback(opt.iterations, x)
            if task is OptimTask.FINAL_X:
                break
            if opt.iterations >= max_iter:
                stop = "maximum number of iterations reached"
                break
        else:
            break
        task = opt.iterate(x, f, g)

    message = opt.message if stop is None else stop
    if verbose:
        print("-" * 50)
        print(f"Stopped after {opt.iterations} iterations: {message}")

    return DeconvolutionResult(
        restored=best,
        iterations=opt.iterations,
        loss_history=loss_history,
        converged=task is OptimTask.FINAL_X,
        metadata={
            "algorithm": "L-BFGS",
            "m": m,
            "alpha": alpha,
            "evaluations": opt.evaluations,
            "restarts": opt.restarts,
            "task": task,
            "message": message,
        },
    )
