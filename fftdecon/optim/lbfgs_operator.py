"""Limited-memory BFGS approximation of the inverse Hessian.

The approximation is stored as the m most recent pairs (s, y) of variable
and gradient differences in a circular buffer, and applied to a vector with
Strang's two-loop recursion (Nocedal, 1980) without ever forming a matrix.

Reference:
    Nocedal, J. (1980). "Updating Quasi-Newton Matrices with Limited
    Storage". Mathematics of Computation 35: 773-782.
"""

from enum import Enum
from typing import Callable, List, Optional

import torch

from ..core.space import ShapedVectorSpace

__all__ = ["InverseHessianRule", "LBFGSOperator"]


class InverseHessianRule(Enum):
    """Initial approximation of the inverse Hessian used by the recursion.

    IDENTITY uses the identity, BY_USER a caller-supplied positive definite
    linear operator H0 and SCALED the identity times
    gamma = (s'.y)/(y'.y) for the most recent pair (identity when there is
    none).
    """

    IDENTITY = "identity"
    BY_USER = "by_user"
    SCALED = "scaled"


class LBFGSOperator:
    """L-BFGS inverse Hessian approximation.

    Args:
        space: Vector space of the variables (and gradients).
        m: Number of pairs to memorize (>= 1).
        h0: Optional initial inverse Hessian approximation, a callable
            mapping a gradient to a vector of the same space. Implies the
            BY_USER rule.
        rule: Initial approximation rule. Defaults to BY_USER if h0 is given
            and SCALED otherwise.

    Attributes:
        m: Capacity of the history.
        mp: Number of valid pairs (0 <= mp <= m).
        rule: The initial approximation rule.

    Example:
        >>> H = LBFGSOperator(space, m=5)
        >>> H.update(x1, x0, g1, g0)
        >>> p = H.apply(g1)  # -p is a descent direction
    """

    def __init__(
        self,
        space: ShapedVectorSpace,
        m: int = 5,
        h0: Optional[Callable[[torch.Tensor], torch.Tensor]] = None,
        rule: Optional[InverseHessianRule] = None,
    ):
        if m < 1:
            raise ValueError(f"Number of memorized pairs must be at least 1, got {m}")
        if rule is None:
            rule = InverseHessianRule.SCALED if h0 is None else InverseHessianRule.BY_USER
        if rule is InverseHessianRule.BY_USER and h0 is None:
            raise ValueError("BY_USER rule requires an initial inverse Hessian operator h0")
        self.space = space
        self.m = int(m)
        self.h0 = h0
        self.rule = rule

        self._s: List[Optional[torch.Tensor]] = [None] * self.m
        self._y: List[Optional[torch.Tensor]] = [None] * self.m
        self._rho = [0.0] * self.m
        self._alpha = [0.0] * self.m
        # Index of the slot written by the next update.
        self._next = 0
        self.mp = 0
        self.gamma = 1.0

    def reset(self) -> None:
        """Forget all pairs (slots are kept allocated)."""
        self.mp = 0

    def _slot(self, k: int) -> int:
        """Index of the k-th most recent pair (k = 1 is the newest)."""
        if k < 1 or k > self.m:
            raise IndexError(f"Pair rank must be in [1, {self.m}], got {k}")
        return (self._next - k) % self.m

    def s(self, k: int) -> Optional[torch.Tensor]:
        """Variable difference of the k-th most recent pair."""
        return self._s[self._slot(k)]

    def y(self, k: int) -> Optional[torch.Tensor]:
        """Gradient difference of the k-th most recent pair."""
        return self._y[self._slot(k)]

    def rho(self, k: int) -> float:
        """1/(s'.y) of the k-th most recent pair."""
        return self._rho[self._slot(k)]

    def s_slot(self, index: int) -> torch.Tensor:
        return self._s[index]

    def y_slot(self, index: int) -> torch.Tensor:
        return self._y[index]

    def spare_slot(self) -> int:
        """Reserve the slot the next update will write and return its index.

        The vectors of the slot may be used as scratch storage (e.g. for the
        variables and gradient at the start of a line search) until the next
        call to ``update``. If the history is full, the oldest pair lives in
        that slot and is dropped.
        """
        i = self._next
        if self._s[i] is None:
            self._s[i] = self.space.create()
            self._y[i] = self.space.create()
        self.mp = min(self.mp, self.m - 1)
        return i

    def update(
        self,
        x: torch.Tensor,
        x0: torch.Tensor,
        g: torch.Tensor,
        g0: torch.Tensor,
    ) -> bool:
        """Memorize the pair s = x - x0, y = g - g0.

        The pair is stored only if s'.y > 0 so that the approximation
        remains positive definite. ``x0`` and ``g0`` may be the vectors of
        the spare slot.

        Returns:
            True if the pair was stored.
        """
        space = self.space
        s = space.axpby(1.0, x, -1.0, x0)
        y = space.axpby(1.0, g, -1.0, g0)
        sy = space.dot(s, y)
        if not sy > 0.0:
            return False

        i = self._next
        if self._s[i] is None:
            self._s[i] = s
            self._y[i] = y
        else:
            self._s[i].copy_(s)
            self._y[i].copy_(y)
        self._rho[i] = 1.0 / sy
        self.gamma = sy / space.dot(y, y)
        self._next = (i + 1) % self.m
        self.mp = min(self.mp + 1, self.m)
        return True

    def apply(self, g: torch.Tensor, dst: Optional[torch.Tensor] = None) -> torch.Tensor:
        """Apply the inverse Hessian approximation to ``g``.

        Args:
            g: Vector (typically the gradient).
            dst: Optional output vector; a new vector is returned otherwise.

        Returns:
            p = H.g so that -p is a descent direction when H is positive
            definite.
        """
        space = self.space
        q = space.copy(g)

        # First loop, newest to oldest.
        for k in range(1, self.mp + 1):
            j = self._slot(k)
            self._alpha[j] = self._rho[j] * space.dot(self._s[j], q)
            space.axpby(1.0, q, -self._alpha[j], self._y[j], dst=q)

        if self.rule is InverseHessianRule.BY_USER:
            p = self.h0(q)
        elif self.rule is InverseHessianRule.SCALED and self.mp >= 1:
            p = self.gamma * q
        else:
            p = q

        # Second loop, oldest to newest.
        for k in range(self.mp, 0, -1):
            j = self._slot(k)
            beta = self._rho[j] * space.dot(self._y[j], p)
            space.axpby(1.0, p, self._alpha[j] - beta, self._s[j], dst=p)

        if dst is None:
            return p
        return space.copy(p, dst)
