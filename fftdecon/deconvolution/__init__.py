"""FFT-based convolution operators and data fidelity costs.

The deconvolution problem is formulated as:
    d = H.x + noise

where:
    - d: observed blurred image (data)
    - x: unknown object
    - H: convolution by the PSF, computed with FFTs on a periodic workspace

The object is restored by minimizing a weighted least-squares cost
(possibly combined with a regularization provided by the caller) with
``fftdecon.optim.solve_lbfgs``.

Example:
    >>> from fftdecon import ShapedVectorSpace, WeightedConvolutionCost, solve_lbfgs
    >>> cost = WeightedConvolutionCost.build(ShapedVectorSpace(blurred.shape))
    >>> cost.set_psf(psf, offset=(7, 7), normalize=True)
    >>> cost.set_data(blurred)
    >>> result = solve_lbfgs(cost, blurred, max_iter=50)
"""

from .base import (
    DeconvolutionResult,
)
from .convolution import (
    Convolution,
)
from .cost import (
    CompositeCost,
    DifferentiableCost,
)
from .weighted import (
    WeightedConvolutionCost,
)

__all__ = [
    # Base types
    "DeconvolutionResult",
    # Operators
    "Convolution",
    # Costs
    "DifferentiableCost",
    "CompositeCost",
    "WeightedConvolutionCost",
]
