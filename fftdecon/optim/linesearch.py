"""Moré & Thuente safeguarded line search.

The line search is driven by reverse communication: ``start`` is called with
the function value and directional derivative at step 0, then ``iterate`` is
called with the function value and directional derivative at each trial
step until it returns something other than SEARCH. The next trial step is
available from the ``step`` attribute.

A step is accepted when it satisfies the strong Wolfe conditions:

    f(stp) <= f(0) + ftol * stp * f'(0)
    |f'(stp)| <= gtol * |f'(0)|

The trial steps are chosen by safeguarded cubic and quadratic interpolation
of the function values and derivatives so that the interval of uncertainty
shrinks and eventually contains an acceptable step.

Reference:
    Moré, J.J. & Thuente, D.J. (1994). "Line search algorithms with
    guaranteed sufficient decrease". ACM Transactions on Mathematical
    Software 20(3): 286-307.
"""

import math

from .status import LineSearchStatus

__all__ = ["MoreThuenteLineSearch"]

# Extrapolation bounds for the trial step before the minimizer is bracketed.
XTRAPL = 1.1
XTRAPU = 4.0

# Bisect if the interval does not shrink by this factor in two trials.
P66 = 0.66


def _cubic_min_gamma(theta: float, s: float, d1: float, d2: float) -> float:
    return s * math.sqrt(max(0.0, (theta / s) ** 2 - (d1 / s) * (d2 / s)))


def _step(stx, fx, dx, sty, fy, dy, stp, fp, dp, brackt, stpmin, stpmax):
    """Compute a safeguarded step and update the interval of uncertainty.

    (stx, fx, dx) is the best step so far, (sty, fy, dy) the other endpoint
    of the interval and (stp, fp, dp) the current trial. Returns the updated
    ``(stx, fx, dx, sty, fy, dy, stp, brackt)``.
    """
    sgnd = dp * math.copysign(1.0, dx)

    if fp > fx:
        # Higher function value: the minimum is bracketed. Take the cubic
        # step if closer to stx, else the average of cubic and quadratic.
        theta = 3.0 * (fx - fp) / (stp - stx) + dx + dp
        s = max(abs(theta), abs(dx), abs(dp))
        gamma = _cubic_min_gamma(theta, s, dx, dp)
        if stp < stx:
            gamma = -gamma
        p = (gamma - dx) + theta
        q = ((gamma - dx) + gamma) + dp
        r = p / q
        stpc = stx + r * (stp - stx)
        stpq = stx + ((dx / ((fx - fp) / (stp - stx) + dx)) / 2.0) * (stp - stx)
        if abs(stpc - stx) < abs(stpq - stx):
            stpf = stpc
        else:
            stpf = stpc + (stpq - stpc) / 2.0
        brackt = True

    elif sgnd < 0.0:
        # Derivatives of opposite sign: the minimum is bracketed. Take the
        # step farthest from stp among cubic and secant steps.
        theta = 3.0 * (fx - fp) / (stp - stx) + dx + dp
        s = max(abs(theta), abs(dx), abs(dp))
        gamma = _cubic_min_gamma(theta, s, dx, dp)
        if stp > stx:
            gamma = -gamma
        p = (gamma - dp) + theta
        q = ((gamma - dp) + gamma) + dx
        r = p / q
        stpc = stp + r * (stx - stp)
        stpq = stp + (dp / (dp - dx)) * (stx - stp)
        if abs(stpc - stp) > abs(stpq - stp):
            stpf = stpc
        else:
            stpf = stpq
        brackt = True

    elif abs(dp) < abs(dx):
        # Lower function value, same sign derivatives, decreasing magnitude.
        # The cubic may not have a minimizer in the direction of the step.
        theta = 3.0 * (fx - fp) / (stp - stx) + dx + dp
        s = max(abs(theta), abs(dx), abs(dp))
        gamma = _cubic_min_gamma(theta, s, dx, dp)
        if stp > stx:
            gamma = -gamma
        p = (gamma - dp) + theta
        q = (gamma + (dx - dp)) + gamma
        r = p / q
        if r < 0.0 and gamma != 0.0:
            stpc = stp + r * (stx - stp)
        elif stp > stx:
            stpc = stpmax
        else:
            stpc = stpmin
        stpq = stp + (dp / (dp - dx)) * (stx - stp)

        if brackt:
            if abs(stpc - stp) < abs(stpq - stp):
                stpf = stpc
            else:
                stpf = stpq
            if stp > stx:
                stpf = min(stp + P66 * (sty - stp), stpf)
            else:
                stpf = max(stp + P66 * (sty - stp), stpf)
        else:
            if abs(stpc - stp) > abs(stpq - stp):
                stpf = stpc
            else:
                stpf = stpq
            stpf = max(stpmin, min(stpmax, stpf))

    else:
        # Lower function value, same sign derivatives, non-decreasing
        # magnitude: step to the bound or to the cubic minimizer in
        # [stp, sty].
        if brackt:
            theta = 3.0 * (fp - fy) / (sty - stp) + dy + dp
            s = max(abs(theta), abs(dy), abs(dp))
            gamma = _cubic_min_gamma(theta, s, dy, dp)
            if stp > sty:
                gamma = -gamma
            p = (gamma - dp) + theta
            q = ((gamma - dp) + gamma) + dy
            r = p / q
            stpf = stp + r * (sty - stp)
        elif stp > stx:
            stpf = stpmax
        else:
            stpf = stpmin

    # Update the interval which contains a minimizer.
    if fp > fx:
        sty, fy, dy = stp, fp, dp
    else:
        if sgnd < 0.0:
            sty, fy, dy = stx, fx, dx
        stx, fx, dx = stp, fp, dp

    return stx, fx, dx, sty, fy, dy, stpf, brackt


class MoreThuenteLineSearch:
    """Line search satisfying the strong Wolfe conditions.

    Args:
        ftol: Tolerance for the sufficient decrease condition (0 < ftol < 1).
            Default 1e-3.
        gtol: Tolerance for the curvature condition (0 < gtol < 1). Use a
            value close to 1 for quasi-Newton methods. Default 0.9.
        xtol: Relative tolerance for an acceptable step (xtol >= 0).
            The search stops with a warning when the relative width of the
            interval of uncertainty is at most xtol. Default 0.1.
        max_trials: Maximum number of calls to ``iterate`` per search.
            Default 30.

    Example:
        >>> ls = MoreThuenteLineSearch()
        >>> status = ls.start(f0, dg0, 1.0, 0.0, 1e20)
        >>> while status is LineSearchStatus.SEARCH:
        ...     f, dg = phi(ls.step)  # function value and derivative at step
        ...     status = ls.iterate(ls.step, f, dg)
    """

    def __init__(
        self,
        ftol: float = 1e-3,
        gtol: float = 0.9,
        xtol: float = 0.1,
        max_trials: int = 30,
    ):
        if not 0.0 < ftol < 1.0:
            raise ValueError(f"ftol must be in (0, 1), got {ftol}")
        if not 0.0 < gtol < 1.0:
            raise ValueError(f"gtol must be in (0, 1), got {gtol}")
        if xtol < 0.0:
            raise ValueError(f"xtol must be non-negative, got {xtol}")
        if max_trials < 1:
            raise ValueError(f"max_trials must be at least 1, got {max_trials}")
        self.ftol = float(ftol)
        self.gtol = float(gtol)
        self.xtol = float(xtol)
        self.max_trials = int(max_trials)

        self.step = 0.0
        self.status = LineSearchStatus.ERROR_NOT_STARTED
        self.trials = 0

    def start(
        self,
        f0: float,
        g0: float,
        step: float,
        stpmin: float,
        stpmax: float,
    ) -> LineSearchStatus:
        """Start a new search from step 0.

        Args:
            f0: Function value at step 0.
            g0: Directional derivative at step 0 (must be negative).
            step: First trial step.
            stpmin: Lower bound for the step.
            stpmax: Upper bound for the step.

        Returns:
            SEARCH if the arguments are valid, an ERROR status otherwise.
        """
        self.trials = 0
        self.step = step
        if stpmin < 0.0:
            return self._finish(LineSearchStatus.ERROR_STPMIN_LT_ZERO)
        if stpmax < stpmin:
            return self._finish(LineSearchStatus.ERROR_STPMAX_LT_STPMIN)
        if step < stpmin:
            return self._finish(LineSearchStatus.ERROR_STP_LT_STPMIN)
        if step > stpmax:
            return self._finish(LineSearchStatus.ERROR_STP_GT_STPMAX)
        if g0 >= 0.0:
            return self._finish(LineSearchStatus.ERROR_INITIAL_DERIVATIVE_GE_ZERO)

        self.stpmin = stpmin
        self.stpmax = stpmax
        self.finit = f0
        self.ginit = g0
        self.gtest = self.ftol * g0
        self.width = stpmax - stpmin
        self.width1 = 2.0 * self.width

        self.brackt = False
        self.stage = 1
        self.stx, self.fx, self.gx = 0.0, f0, g0
        self.sty, self.fy, self.gy = 0.0, f0, g0
        self.stmin = 0.0
        self.stmax = step + XTRAPU * step

        self.status = LineSearchStatus.SEARCH
        return self.status

    def iterate(self, step: float, f: float, g: float) -> LineSearchStatus:
        """Submit the function value and derivative at the current trial.

        Args:
            step: The trial step (normally ``self.step``).
            f: Function value at step.
            g: Directional derivative at step.

        Returns:
            SEARCH with a new trial in ``self.step``, CONVERGENCE, or a
            terminal WARNING/ERROR status.
        """
        if self.status is not LineSearchStatus.SEARCH:
            return self.status
        self.trials += 1
        stp = step

        ftest = self.finit + stp * self.gtest
        if self.stage == 1 and f <= ftest and g >= 0.0:
            self.stage = 2

        # Test for convergence, then for warnings.
        if f <= ftest and abs(g) <= self.gtol * (-self.ginit):
            self.step = stp
            return self._finish(LineSearchStatus.CONVERGENCE)
        if stp == self.stpmin and (f > ftest or g >= self.gtest):
            self.step = stp
            return self._finish(LineSearchStatus.WARNING_STP_EQ_STPMIN)
        if stp == self.stpmax and f <= ftest and g <= self.gtest:
            self.step = stp
            return self._finish(LineSearchStatus.WARNING_STP_EQ_STPMAX)
        if self.brackt and self.stmax - self.stmin <= self.xtol * self.stmax:
            self.step = stp
            return self._finish(LineSearchStatus.WARNING_XTOL_TEST_SATISFIED)
        if self.brackt and (stp <= self.stmin or stp >= self.stmax):
            self.step = stp
            return self._finish(LineSearchStatus.WARNING_ROUNDING_ERRORS_PREVENT_PROGRESS)
        if self.trials >= self.max_trials:
            self.step = stp
            return self._finish(LineSearchStatus.ERROR_TOO_MANY_TRIALS)

        gtest = self.gtest
        if self.stage == 1 and f <= self.fx and f > ftest:
            # Use the modified function psi(stp) = f(stp) - f(0) - ftol*stp*f'(0)
            # until a step with non-positive psi and non-negative derivative
            # has been found.
            fm = f - stp * gtest
            fxm = self.fx - self.stx * gtest
            fym = self.fy - self.sty * gtest
            gm = g - gtest
            gxm = self.gx - gtest
            gym = self.gy - gtest
            (self.stx, fxm, gxm, self.sty, fym, gym, stp, self.brackt) = _step(
                self.stx, fxm, gxm, self.sty, fym, gym,
                stp, fm, gm, self.brackt, self.stmin, self.stmax,
            )
            self.fx = fxm + self.stx * gtest
            self.fy = fym + self.sty * gtest
            self.gx = gxm + gtest
            self.gy = gym + gtest
        else:
            (self.stx, self.fx, self.gx, self.sty, self.fy, self.gy, stp, self.brackt) = _step(
                self.stx, self.fx, self.gx, self.sty, self.fy, self.gy,
                stp, f, g, self.brackt, self.stmin, self.stmax,
            )

        # Force a sufficient decrease in the size of the interval.
        if self.brackt:
            if abs(self.sty - self.stx) >= P66 * self.width1:
                stp = self.stx + 0.5 * (self.sty - self.stx)
            self.width1 = self.width
            self.width = abs(self.sty - self.stx)

        # Bounds of the interval of uncertainty for the next step.
        if self.brackt:
            self.stmin = min(self.stx, self.sty)
            self.stmax = max(self.stx, self.sty)
        else:
            self.stmin = stp + XTRAPL * (stp - self.stx)
            self.stmax = stp + XTRAPU * (stp - self.stx)

        stp = max(stp, self.stpmin)
        stp = min(stp, self.stpmax)

        # If further progress is not possible, let stp be the best point
        # obtained so far.
        if self.brackt and (
            stp <= self.stmin
            or stp >= self.stmax
            or self.stmax - self.stmin <= self.xtol * self.stmax
        ):
            stp = self.stx

        self.step = stp
        return LineSearchStatus.SEARCH

    def _finish(self, status: LineSearchStatus) -> LineSearchStatus:
        self.status = status
        return status
