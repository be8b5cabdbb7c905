"""Result type shared by the deconvolution drivers."""

from dataclasses import dataclass, field
from typing import List

import torch

__all__ = ["DeconvolutionResult"]


@dataclass
class DeconvolutionResult:
    """Outcome of an iterative deconvolution.

    Attributes:
        restored: The last accepted estimate of the object.
        iterations: Number of accepted iterations.
        loss_history: Cost at each accepted iterate (the first entry is the
            cost at the starting point).
        converged: Whether the gradient convergence test was satisfied.
        metadata: Driver-specific information (evaluations, restarts,
            final task and message, ...).
    """

    restored: torch.Tensor
    iterations: int
    loss_history: List[float] = field(default_factory=list)
    converged: bool = False
    metadata: dict = field(default_factory=dict)
