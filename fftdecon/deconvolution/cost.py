"""Differentiable cost functions.

A cost function f(x) is evaluated with a multiplier ``alpha`` so that
several terms can be combined (data fidelity plus regularization supplied by
the caller) without extra vector operations:

    cost(alpha, x)                     -> alpha * f(x)
    cost_and_gradient(alpha, x, gx)    -> alpha * f(x), gx = alpha * grad f(x)

With ``clr=False`` the gradient is accumulated into ``gx`` instead of
overwriting it.
"""

from abc import ABC, abstractmethod
from typing import Sequence, Tuple

import torch

from ..core.space import IncorrectSpaceError, ShapedVectorSpace

__all__ = ["DifferentiableCost", "CompositeCost"]


class DifferentiableCost(ABC):
    """Base class for cost functions providing an exact gradient.

    Subclasses implement ``_cost`` and ``_cost_and_gradient``; argument
    checking and the ``alpha == 0`` shortcut are done here.
    """

    def __init__(self, input_space: ShapedVectorSpace):
        self.input_space = input_space

    def cost(self, alpha: float, x: torch.Tensor) -> float:
        """Return alpha * f(x)."""
        if alpha == 0:
            return 0.0
        self.input_space.check(x, "Variables")
        return self._cost(float(alpha), x)

    def cost_and_gradient(
        self,
        alpha: float,
        x: torch.Tensor,
        gx: torch.Tensor,
        clr: bool = True,
    ) -> float:
        """Return alpha * f(x) and store alpha * grad f(x) in ``gx``.

        Args:
            alpha: Multiplier of the cost.
            x: Variables.
            gx: Gradient output (overwritten if ``clr`` else incremented).
            clr: Overwrite ``gx`` instead of accumulating.

        Returns:
            The cost alpha * f(x).
        """
        self.input_space.check(x, "Variables")
        self.input_space.check(gx, "Gradient")
        if alpha == 0:
            if clr:
                gx.zero_()
            return 0.0
        return self._cost_and_gradient(float(alpha), x, gx, clr)

    def __call__(self, x: torch.Tensor) -> Tuple[float, torch.Tensor]:
        """Return f(x) and a new gradient vector."""
        gx = self.input_space.create()
        f = self.cost_and_gradient(1.0, x, gx, True)
        return f, gx

    @abstractmethod
    def _cost(self, alpha: float, x: torch.Tensor) -> float:
        ...

    @abstractmethod
    def _cost_and_gradient(
        self, alpha: float, x: torch.Tensor, gx: torch.Tensor, clr: bool
    ) -> float:
        ...


class CompositeCost(DifferentiableCost):
    """Weighted sum of cost functions sharing the same input space.

    Args:
        *terms: ``(weight, cost)`` pairs.

    Example:
        >>> total = CompositeCost((1.0, data_fidelity), (mu, regularization))
        >>> f = total.cost_and_gradient(1.0, x, gx)
    """

    def __init__(self, *terms: Tuple[float, DifferentiableCost]):
        if len(terms) < 1:
            raise ValueError("CompositeCost requires at least one term")
        space = terms[0][1].input_space
        for weight, term in terms:
            if term.input_space != space:
                raise IncorrectSpaceError("All terms must have the same input space")
            if weight < 0:
                raise ValueError(f"Term weights must be non-negative, got {weight}")
        super().__init__(space)
        self.terms: Sequence[Tuple[float, DifferentiableCost]] = tuple(terms)

    def _cost(self, alpha: float, x: torch.Tensor) -> float:
        return sum(term.cost(alpha * weight, x) for weight, term in self.terms)

    def _cost_and_gradient(
        self, alpha: float, x: torch.Tensor, gx: torch.Tensor, clr: bool
    ) -> float:
        total = 0.0
        for weight, term in self.terms:
            total += term.cost_and_gradient(alpha * weight, x, gx, clr)
            clr = False
        return total
