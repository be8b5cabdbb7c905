"""Tasks and status codes of the reverse-communication optimizer."""

from enum import Enum

__all__ = ["OptimTask", "OptimFailure", "LineSearchStatus"]


class OptimTask(Enum):
    """What the caller of ``LBFGS.iterate`` has to do next.

    COMPUTE_FG asks for the cost and gradient at the (updated) variables,
    NEW_X reports an accepted iterate and FINAL_X an iterate satisfying the
    convergence criterion. WARNING and ERROR are terminal; their reason is
    available from the optimizer.
    """

    COMPUTE_FG = "compute_fg"
    NEW_X = "new_x"
    FINAL_X = "final_x"
    WARNING = "warning"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (OptimTask.WARNING, OptimTask.ERROR)


class OptimFailure(Enum):
    """Failures detected by the optimizer itself."""

    BAD_PRECONDITIONER = "initial inverse Hessian approximation is not positive definite"
    NOT_STARTED = "optimizer has not been started"


class LineSearchStatus(Enum):
    """Status returned by the line search ``start`` and ``iterate`` methods."""

    SEARCH = "search in progress"
    CONVERGENCE = "line search converged"
    WARNING_ROUNDING_ERRORS_PREVENT_PROGRESS = "rounding errors prevent progress"
    WARNING_XTOL_TEST_SATISFIED = "relative width of the interval of uncertainty is at most xtol"
    WARNING_STP_EQ_STPMAX = "step at upper bound"
    WARNING_STP_EQ_STPMIN = "step at lower bound"
    ERROR_STP_LT_STPMIN = "initial step below lower bound"
    ERROR_STP_GT_STPMAX = "initial step above upper bound"
    ERROR_INITIAL_DERIVATIVE_GE_ZERO = "initial directional derivative is not negative"
    ERROR_STPMIN_LT_ZERO = "lower step bound is negative"
    ERROR_STPMAX_LT_STPMIN = "upper step bound is below lower step bound"
    ERROR_TOO_MANY_TRIALS = "too many trial steps"
    ERROR_NOT_STARTED = "line search not started"

    @property
    def is_error(self) -> bool:
        return self.name.startswith("ERROR")

    @property
    def is_warning(self) -> bool:
        return self.name.startswith("WARNING")
