"""Reverse-communication limited-memory quasi-Newton optimization.

The optimizer (``LBFGS``) never calls the objective function: the caller
evaluates the cost and its gradient whenever the ``COMPUTE_FG`` task is
returned and passes them back to ``iterate``. ``solve_lbfgs`` runs this
loop for a ``DifferentiableCost``.
"""

from .status import (
    LineSearchStatus,
    OptimFailure,
    OptimTask,
)
from .linesearch import (
    MoreThuenteLineSearch,
)
from .lbfgs_operator import (
    InverseHessianRule,
    LBFGSOperator,
)
from .lbfgs import (
    LBFGS,
    OptimizerState,
)
from .solve import (
    solve_lbfgs,
)

__all__ = [
    # Status codes
    "OptimTask",
    "OptimFailure",
    "LineSearchStatus",
    # Line search
    "MoreThuenteLineSearch",
    # Inverse Hessian approximation
    "InverseHessianRule",
    "LBFGSOperator",
    # Optimizer
    "LBFGS",
    "OptimizerState",
    "solve_lbfgs",
]
