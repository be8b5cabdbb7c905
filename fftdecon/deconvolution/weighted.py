"""Weighted least-squares data fidelity for a convolution model.

For an object x, data d and non-negative weights w (typically inverse noise
variances, zero for bad or missing pixels) the cost is

    f(x) = 1/2 * sum_i w_i * ((H.x)_i - d_i)^2

and its gradient is H*.(w * (H.x - d)). One forward and one adjoint
convolution are needed per evaluation of the cost and its gradient.
"""

from typing import Optional, Sequence, Union

import numpy as np
import torch

from ..core.space import ShapedVectorSpace
from .convolution import Convolution
from .cost import DifferentiableCost

__all__ = ["WeightedConvolutionCost"]

ArrayLike = Union[np.ndarray, torch.Tensor]


class WeightedConvolutionCost(DifferentiableCost):
    """Weighted quadratic cost of the residuals of a convolution model.

    Args:
        convolution: Convolution operator from the object space (its input
            space) to the data space (its output space).

    Example:
        >>> cost = WeightedConvolutionCost.build(ShapedVectorSpace((128, 128)))
        >>> cost.set_psf(psf, offset=(3, 3), normalize=True)
        >>> cost.set_data(blurred)
        >>> f, g = cost(x)
    """

    def __init__(self, convolution: Convolution):
        super().__init__(convolution.input_space)
        self.convolution = convolution
        self.data_space = convolution.output_space
        self._data: Optional[torch.Tensor] = None
        self._weights: Optional[torch.Tensor] = None

    @classmethod
    def build(
        cls,
        object_space: ShapedVectorSpace,
        data_space: Optional[ShapedVectorSpace] = None,
        work_shape: Optional[Sequence[int]] = None,
        object_offset: Optional[Sequence[int]] = None,
        data_offset: Optional[Sequence[int]] = None,
        verbose: bool = False,
    ) -> "WeightedConvolutionCost":
        """Create the cost and its convolution operator.

        The workspace shape defaults to the smallest one holding the object
        and the data at their offsets.
        """
        if data_space is None:
            data_space = object_space
        if work_shape is None and data_space.rank == object_space.rank:
            rank = object_space.rank
            obj_off = (0,) * rank if object_offset is None else tuple(object_offset)
            dat_off = (0,) * rank if data_offset is None else tuple(data_offset)
            work_shape = tuple(
                max(o + n, p + k)
                for o, n, p, k in zip(obj_off, object_space.shape, dat_off, data_space.shape)
            )
        convolution = Convolution(
            object_space,
            data_space,
            work_shape=work_shape,
            input_offset=object_offset,
            output_offset=data_offset,
            verbose=verbose,
        )
        return cls(convolution)

    # ------------------------------------------------------------------ #
    # Setup
    # ------------------------------------------------------------------ #

    @property
    def data(self) -> Optional[torch.Tensor]:
        return self._data

    @property
    def weights(self) -> Optional[torch.Tensor]:
        return self._weights

    def set_data(self, data: ArrayLike) -> None:
        """Set the measured data (shape of the data space)."""
        self._data = self.data_space.wrap(data, "Data")

    def set_weights(self, weights: Optional[ArrayLike] = None) -> None:
        """Set the weights of the data, None for unit weights.

        Raises:
            ValueError: If a weight is negative or not finite.
        """
        if weights is None:
            self._weights = None
            return
        w = self.data_space.wrap(weights, "Weights")
        if not bool(torch.all(torch.isfinite(w))):
            raise ValueError("Weights must be finite")
        if bool(torch.any(w < 0)):
            raise ValueError(f"Weights must be non-negative, got minimum {float(w.min())}")
        self._weights = w

    def set_psf(
        self,
        psf: ArrayLike,
        offset: Optional[Sequence[int]] = None,
        normalize: bool = False,
    ) -> None:
        """Set the PSF of the convolution (see ``Convolution.set_psf``)."""
        self.convolution.set_psf(psf, offset=offset, normalize=normalize)

    # ------------------------------------------------------------------ #
    # Evaluation
    # ------------------------------------------------------------------ #

    def model(self, x: torch.Tensor) -> torch.Tensor:
        """Return the model H.x in the data space."""
        return self.convolution.apply(x)

    def _residuals(self, x: torch.Tensor) -> torch.Tensor:
        if self._data is None:
            raise RuntimeError("You must set the data first")
        H = self.convolution
        H.push(x)
        H.convolve(False)
        r = H.pull()
        r.sub_(self._data)
        return r

    def _cost(self, alpha: float, x: torch.Tensor) -> float:
        r = self._residuals(x)
        if self._weights is None:
            return 0.5 * alpha * float(torch.sum(r * r))
        return 0.5 * alpha * float(torch.sum(self._weights * r * r))

    def _cost_and_gradient(
        self, alpha: float, x: torch.Tensor, gx: torch.Tensor, clr: bool
    ) -> float:
        H = self.convolution
        r = self._residuals(x)
        wr = r if self._weights is None else self._weights * r
        f = 0.5 * alpha * float(torch.sum(wr * r))

        # Every workspace cell outside of the data window must be zero.
        H.push(wr.mul_(alpha), adjoint=True)
        H.convolve(True)
        if clr:
            H.pull(gx, adjoint=True)
        else:
            gx.add_(H.pull(None, adjoint=True))
        return f
