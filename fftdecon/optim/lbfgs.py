"""Multivariate non-linear optimization by the L-BFGS/VMLM method.

``LBFGS`` implements a limited memory quasi-Newton method for unconstrained
optimization with BFGS updates using Strang's two-loop recursion, combined
with a Moré & Thuente line search. It is similar to VMLM (Nocedal, 1980) or
L-BFGS (Liu & Nocedal, 1989).

The optimizer never calls the objective function. It is driven by reverse
communication: the caller evaluates the cost and gradient when asked to and
hands them back, which lets any cost (FFT-based or not, on any device) be
minimized without callbacks::

    opt = LBFGS(space, m=5)
    g = space.create()
    task = opt.start()
    while True:
        if task is OptimTask.COMPUTE_FG:
            f = cost.cost_and_gradient(1.0, x, g)
        elif task is OptimTask.NEW_X:
            pass  # x is a new accepted iterate
        else:
            break  # FINAL_X, WARNING or ERROR
        task = opt.iterate(x, f, g)

References:
    Nocedal, J. (1980). "Updating Quasi-Newton Matrices with Limited
    Storage". Mathematics of Computation 35: 773-782.

    Liu, D.C. & Nocedal, J. (1989). "On the limited memory BFGS method for
    large scale optimization". Mathematical Programming 45: 503-528.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Union

import torch

from ..core.space import ShapedVectorSpace
from .lbfgs_operator import InverseHessianRule, LBFGSOperator
from .linesearch import MoreThuenteLineSearch
from .status import LineSearchStatus, OptimFailure, OptimTask

__all__ = ["LBFGS", "OptimizerState"]


@dataclass
class OptimizerState:
    """Mutable state of one optimization run.

    Attributes:
        task: Pending task.
        reason: Why the run stopped with a WARNING or ERROR task.
        evaluations: Number of cost/gradient evaluations.
        iterations: Number of accepted steps.
        restarts: Number of restarts of the L-BFGS recursion.
    """

    task: OptimTask = OptimTask.ERROR
    reason: Optional[Union[LineSearchStatus, OptimFailure]] = OptimFailure.NOT_STARTED
    evaluations: int = 0
    iterations: int = 0
    restarts: int = 0


class LBFGS:
    """Reverse-communication L-BFGS optimizer.

    Args:
        space: Vector space of the variables.
        m: Number of (s, y) pairs memorized. Default 5.
        line_search: Line search instance. Default is a
            ``MoreThuenteLineSearch(ftol=1e-3, gtol=0.9, xtol=0.1)``.
        h0: Optional initial inverse Hessian approximation (callable).
        rule: Initial inverse Hessian rule (see ``InverseHessianRule``).
        save_memory: If True, the variables and gradient at the start of
            each line search are stored in the spare slot of the L-BFGS
            history instead of dedicated vectors. Default True.

    Tunable attributes (validated on assignment):
        gatol: Absolute gradient norm tolerance. Default 0.
        grtol: Gradient norm tolerance relative to the initial gradient.
            Default 1e-6.
        delta: Threshold for the sufficient descent condition. Default 0.01.
        epsilon: Relative size of the first step (or after a restart).
            Default 1e-3.
        stpmin: Lower step bound relative to the first trial. Default 1e-20.
        stpmax: Upper step bound relative to the first trial. Default 1e20.
        m: Number of memorized pairs; changing it requires ``start()``.
    """

    def __init__(
        self,
        space: ShapedVectorSpace,
        m: int = 5,
        line_search: Optional[MoreThuenteLineSearch] = None,
        h0: Optional[Callable[[torch.Tensor], torch.Tensor]] = None,
        rule: Optional[InverseHessianRule] = None,
        save_memory: bool = True,
    ):
        self.space = space
        self.H = LBFGSOperator(space, m, h0=h0, rule=rule)
        self.lnsrch = line_search if line_search is not None else MoreThuenteLineSearch()
        self.save_memory = save_memory
        self.state = OptimizerState()

        self._gatol = 0.0
        self._grtol = 1e-6
        self._delta = 0.01
        self._epsilon = 1e-3
        self._stpmin = 1e-20
        self._stpmax = 1e20

        # The (anti-)search direction: an iterate is x = x0 - alpha*p.
        self.p = space.create()
        self._x0 = None if save_memory else space.create()
        self._g0 = None if save_memory else space.create()
        self._slot = None
        # No line search in progress until a direction has been computed.
        self._first = True

        self.alpha = 0.0
        self.f0 = 0.0
        self.dg0 = 0.0
        self.gnorm = 0.0
        self.g0norm = 0.0
        self.ginit = 0.0
        self.pnorm = 0.0

    # ------------------------------------------------------------------ #
    # Tunable parameters
    # ------------------------------------------------------------------ #

    @property
    def gatol(self) -> float:
        return self._gatol

    @gatol.setter
    def gatol(self, value: float) -> None:
        if not value >= 0.0:
            raise ValueError(f"gatol must be non-negative, got {value}")
        self._gatol = float(value)

    @property
    def grtol(self) -> float:
        return self._grtol

    @grtol.setter
    def grtol(self, value: float) -> None:
        if not value >= 0.0:
            raise ValueError(f"grtol must be non-negative, got {value}")
        self._grtol = float(value)

    @property
    def delta(self) -> float:
        return self._delta

    @delta.setter
    def delta(self, value: float) -> None:
        if not 0.0 < value < 1.0:
            raise ValueError(f"delta must be in (0, 1), got {value}")
        self._delta = float(value)

    @property
    def epsilon(self) -> float:
        return self._epsilon

    @epsilon.setter
    def epsilon(self, value: float) -> None:
        if not value >= 0.0:
            raise ValueError(f"epsilon must be non-negative, got {value}")
        self._epsilon = float(value)

    @property
    def stpmin(self) -> float:
        return self._stpmin

    @stpmin.setter
    def stpmin(self, value: float) -> None:
        if not 0.0 <= value < self._stpmax:
            raise ValueError(f"stpmin must be in [0, stpmax={self._stpmax}), got {value}")
        self._stpmin = float(value)

    @property
    def stpmax(self) -> float:
        return self._stpmax

    @stpmax.setter
    def stpmax(self, value: float) -> None:
        if not value > self._stpmin:
            raise ValueError(f"stpmax must be greater than stpmin={self._stpmin}, got {value}")
        self._stpmax = float(value)

    @property
    def m(self) -> int:
        return self.H.m

    @m.setter
    def m(self, value: int) -> None:
        self.H = LBFGSOperator(self.space, value, h0=self.H.h0, rule=self.H.rule)
        self._slot = None
        self.state = OptimizerState()

    # ------------------------------------------------------------------ #
    # Read-only information
    # ------------------------------------------------------------------ #

    @property
    def task(self) -> OptimTask:
        return self.state.task

    @property
    def reason(self) -> Optional[Union[LineSearchStatus, OptimFailure]]:
        return self.state.reason

    @property
    def message(self) -> str:
        """Human readable description of the pending task."""
        task = self.state.task
        if task.is_terminal and self.state.reason is not None:
            return f"{task.name}: {self.state.reason.value}"
        return task.name

    @property
    def evaluations(self) -> int:
        return self.state.evaluations

    @property
    def iterations(self) -> int:
        return self.state.iterations

    @property
    def restarts(self) -> int:
        return self.state.restarts

    @property
    def step(self) -> float:
        """Current step length along the search direction."""
        return self.alpha

    @property
    def gradient_norm(self) -> float:
        """Euclidean norm of the gradient at the last accepted iterate."""
        return self.gnorm

    @property
    def initial_gradient_norm(self) -> float:
        return self.ginit

    @property
    def gradient_threshold(self) -> float:
        """Convergence threshold max(0, gatol, grtol*ginit) for the gradient norm."""
        return max(0.0, self._gatol, self._grtol * self.ginit)

    @property
    def x0(self) -> Optional[torch.Tensor]:
        """Variables at the start of the current line search."""
        if self.save_memory:
            return None if self._slot is None else self.H.s_slot(self._slot)
        return self._x0

    @property
    def g0(self) -> Optional[torch.Tensor]:
        """Gradient at the start of the current line search."""
        if self.save_memory:
            return None if self._slot is None else self.H.y_slot(self._slot)
        return self._g0

    # ------------------------------------------------------------------ #
    # Reverse communication
    # ------------------------------------------------------------------ #

    def start(self) -> OptimTask:
        """Start a new run; the caller must then compute f and g at x."""
        self.state = OptimizerState()
        return self._begin()

    def restart(self) -> OptimTask:
        """Restart from the current point, keeping the counters."""
        self.state.restarts += 1
        return self._begin()

    def _begin(self) -> OptimTask:
        self.H.reset()
        self._slot = None
        self._first = True
        return self._schedule(OptimTask.COMPUTE_FG)

    def _schedule(self, task: OptimTask, reason=None) -> OptimTask:
        self.state.task = task
        self.state.reason = reason
        return task

    def _failure(self, reason: Union[LineSearchStatus, OptimFailure]) -> OptimTask:
        if isinstance(reason, LineSearchStatus) and reason.is_warning:
            return self._schedule(OptimTask.WARNING, reason)
        return self._schedule(OptimTask.ERROR, reason)

    def iterate(self, x: torch.Tensor, f: float, g: torch.Tensor) -> OptimTask:
        """Proceed with the optimization.

        Args:
            x: Current variables. Updated in place with the next point to
                evaluate when COMPUTE_FG is returned.
            f: Cost at x.
            g: Gradient at x.

        Returns:
            The next task.
        """
        task = self.state.task

        if task is OptimTask.COMPUTE_FG:
            # The caller has computed the function value and the gradient at
            # the current point.
            self.state.evaluations += 1
            if not self._first:
                # A line search is in progress: check whether it has converged.
                pg = self.space.dot(self.p, g)
                status = self.lnsrch.iterate(self.alpha, f, -pg)
                if status is LineSearchStatus.SEARCH:
                    return self._next_step(x)
                if status in (
                    LineSearchStatus.CONVERGENCE,
                    LineSearchStatus.WARNING_ROUNDING_ERRORS_PREVENT_PROGRESS,
                ):
                    self.state.iterations += 1
                else:
                    return self._failure(status)

            # The current step is acceptable. Check for global convergence.
            self.gnorm = self.space.norm2(g)
            if self._first:
                self.ginit = self.gnorm
            if self.gnorm <= self.gradient_threshold:
                return self._schedule(OptimTask.FINAL_X)
            return self._schedule(OptimTask.NEW_X)

        if task is OptimTask.NEW_X or task is OptimTask.FINAL_X:
            if not self._first:
                self.H.update(x, self.x0, g, self.g0)
            return self._search(x, f, g)

        # There must be something wrong.
        return task

    def _search(self, x: torch.Tensor, f: float, g: torch.Tensor) -> OptimTask:
        """Compute a search direction and start a line search along it."""
        space = self.space
        H = self.H

        # Check that d = -p is a sufficient descent direction. As shown by
        # Zoutendijk, this is true if cos(theta) = (p/|p|)'.(g/|g|) >= delta.
        while True:
            H.apply(g, self.p)
            self.pnorm = space.norm2(self.p)
            pg = space.dot(self.p, g)
            if pg >= self._delta * self.pnorm * self.gnorm:
                self.dg0 = -pg
                break
            if H.mp < 1:
                # The initial inverse Hessian approximation is not positive
                # definite.
                return self._failure(OptimFailure.BAD_PRECONDITIONER)
            # Restart the recursion and use H0 to compute a new direction.
            H.reset()
            self.state.restarts += 1

        # Save the variables, gradient and function value at the start of
        # the line search.
        if self.save_memory:
            self._slot = H.spare_slot()
        space.copy(x, self.x0)
        space.copy(g, self.g0)
        self.g0norm = self.gnorm
        self.f0 = f
        self._first = False

        # Length of the first step.
        if H.mp >= 1 or H.rule is InverseHessianRule.BY_USER:
            self.alpha = 1.0
        elif 0.0 < self._epsilon < 1.0:
            xnorm = space.norm2(x)
            if xnorm > 0.0:
                self.alpha = (xnorm / self.gnorm) * self._epsilon
            else:
                self.alpha = 1.0 / self.gnorm
        else:
            self.alpha = 1.0 / self.gnorm

        status = self.lnsrch.start(
            self.f0, self.dg0, self.alpha, self._stpmin * self.alpha, self._stpmax * self.alpha
        )
        if status is not LineSearchStatus.SEARCH:
            return self._failure(status)
        return self._next_step(x)

    def _next_step(self, x: torch.Tensor) -> OptimTask:
        """Build the next point to try as x = x0 - alpha*p."""
        self.alpha = self.lnsrch.step
        self.space.axpby(1.0, self.x0, -self.alpha, self.p, dst=x)
        return self._schedule(OptimTask.COMPUTE_FG)
