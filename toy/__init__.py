"""Synthetic test problems for deconvolution.

Example:
    >>> from toy import make_blurred_image
    >>> from fftdecon import ShapedVectorSpace, WeightedConvolutionCost, solve_lbfgs
    >>>
    >>> x_true, psf, blurred = make_blurred_image((32, 32), psf_size=5)
    >>> cost = WeightedConvolutionCost.build(ShapedVectorSpace(blurred.shape))
    >>> cost.set_psf(psf, offset=(2, 2))
    >>> cost.set_data(blurred)
    >>> result = solve_lbfgs(cost, blurred)
"""

from .problems import (
    box_psf,
    make_blurred_image,
    add_gaussian_noise,
)

__all__ = [
    "box_psf",
    "make_blurred_image",
    "add_gaussian_noise",
]
