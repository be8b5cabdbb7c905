"""fftdecon - FFT-based deconvolution with a reverse-communication L-BFGS optimizer.

The library is organized into four modules:

- **core**: shaped vector spaces over PyTorch tensors
- **deconvolution**: FFT-based convolution operators and weighted
  least-squares data fidelity
- **optim**: L-BFGS inverse Hessian approximation, Moré & Thuente line
  search and the reverse-communication optimizer
- **utils**: PSF placement and FFT-friendly dimensions

Example:
    >>> import numpy as np
    >>> from fftdecon import ShapedVectorSpace, WeightedConvolutionCost, solve_lbfgs
    >>> from fftdecon.utils import good_fft_shape
    >>>
    >>> space = ShapedVectorSpace(blurred.shape)
    >>> cost = WeightedConvolutionCost.build(space)
    >>> cost.set_psf(psf, offset=(7, 7), normalize=True)
    >>> cost.set_data(blurred)
    >>> cost.set_weights(1.0 / variance)
    >>>
    >>> result = solve_lbfgs(cost, np.zeros(blurred.shape), max_iter=100, verbose=True)
    >>> restored = result.restored.cpu().numpy()

Reference:
    Moré, J.J. & Thuente, D.J. (1994). "Line search algorithms with
    guaranteed sufficient decrease". ACM Transactions on Mathematical
    Software 20: 286-307.
"""

__version__ = "0.1.0"

# =============================================================================
# Core
# =============================================================================
from .core import (
    IncorrectSpaceError,
    ShapedVectorSpace,
)

# =============================================================================
# Deconvolution - Operators and costs
# =============================================================================
from .deconvolution import (
    CompositeCost,
    Convolution,
    DeconvolutionResult,
    DifferentiableCost,
    WeightedConvolutionCost,
)

# =============================================================================
# Optimization
# =============================================================================
from .optim import (
    LBFGS,
    InverseHessianRule,
    LBFGSOperator,
    LineSearchStatus,
    MoreThuenteLineSearch,
    OptimFailure,
    OptimTask,
    solve_lbfgs,
)

__all__ = [
    "__version__",
    # Core
    "IncorrectSpaceError",
    "ShapedVectorSpace",
    # Deconvolution
    "Convolution",
    "DifferentiableCost",
    "CompositeCost",
    "WeightedConvolutionCost",
    "DeconvolutionResult",
    # Optimization
    "LBFGS",
    "LBFGSOperator",
    "InverseHessianRule",
    "MoreThuenteLineSearch",
    "OptimTask",
    "OptimFailure",
    "LineSearchStatus",
    "solve_lbfgs",
]
