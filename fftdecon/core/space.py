"""Shaped vector spaces over PyTorch tensors.

A vector of a space is a plain ``torch.Tensor`` with the space's shape,
dtype and device. The space provides the few linear algebra primitives the
optimizer and the cost functions rely on (dot product, Euclidean norm,
affine combination and copy) so that none of them has to care about the
layout of the field being optimized.

Example:
    >>> space = ShapedVectorSpace((64, 64))
    >>> x = space.create()
    >>> y = space.create(1.0)
    >>> space.axpby(2.0, x, -1.0, y, dst=x)  # x = 2*x - y, in place
    >>> space.norm2(x)
    64.0
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
import torch

__all__ = ["IncorrectSpaceError", "ShapedVectorSpace", "complex_dtype"]

_COMPLEX_DTYPES = {
    torch.float32: torch.complex64,
    torch.float64: torch.complex128,
}


class IncorrectSpaceError(ValueError):
    """Raised when a vector does not belong to the expected space."""


def complex_dtype(dtype: torch.dtype) -> torch.dtype:
    """Complex dtype with the same precision as a real floating dtype."""
    try:
        return _COMPLEX_DTYPES[dtype]
    except KeyError:
        raise ValueError(
            f"Unsupported element type {dtype}, use torch.float32 or torch.float64"
        ) from None


@dataclass(frozen=True)
class ShapedVectorSpace:
    """Space of real tensors with a given shape, dtype and device.

    Attributes:
        shape: Dimensions of the vectors (any rank >= 1).
        dtype: Floating point element type (float32 or float64).
        device: Device where the vectors live.
    """

    shape: Sequence[int]
    dtype: torch.dtype = torch.float64
    device: Union[str, torch.device] = "cpu"

    def __post_init__(self) -> None:
        """Validate and normalize the shape and device."""
        shape = tuple(int(n) for n in self.shape)
        if len(shape) < 1:
            raise ValueError("Shape must have at least one dimension")
        for i, n in enumerate(shape):
            if n < 1:
                raise ValueError(f"Dimension {i} must be at least 1, got {n}")
        complex_dtype(self.dtype)
        object.__setattr__(self, "shape", shape)
        object.__setattr__(self, "device", torch.device(self.device))

    @property
    def rank(self) -> int:
        """Number of dimensions."""
        return len(self.shape)

    @property
    def size(self) -> int:
        """Number of elements of a vector."""
        return int(np.prod(self.shape))

    def create(self, fill: Optional[float] = None) -> torch.Tensor:
        """Allocate a new vector, zero-filled unless ``fill`` is given."""
        if fill is None:
            return torch.zeros(self.shape, dtype=self.dtype, device=self.device)
        return torch.full(self.shape, float(fill), dtype=self.dtype, device=self.device)

    def wrap(self, arr: Union[np.ndarray, torch.Tensor], what: str = "Array") -> torch.Tensor:
        """Convert a NumPy array or tensor into a (new) vector of this space."""
        if isinstance(arr, torch.Tensor):
            t = arr.detach().to(device=self.device, dtype=self.dtype)
        else:
            t = torch.as_tensor(np.asarray(arr), dtype=self.dtype, device=self.device)
        if tuple(t.shape) != self.shape:
            raise IncorrectSpaceError(
                f"{what} has shape {tuple(t.shape)}, expected {self.shape}"
            )
        return t.clone()

    def belongs_to(self, x: torch.Tensor) -> bool:
        return (
            isinstance(x, torch.Tensor)
            and tuple(x.shape) == self.shape
            and x.dtype == self.dtype
            and x.device == self.device
        )

    def check(self, x: torch.Tensor, what: str = "Vector") -> None:
        """Raise ``IncorrectSpaceError`` if ``x`` is not a vector of this space."""
        if not isinstance(x, torch.Tensor):
            raise IncorrectSpaceError(f"{what} must be a torch.Tensor, got {type(x).__name__}")
        if not self.belongs_to(x):
            raise IncorrectSpaceError(
                f"{what} with shape {tuple(x.shape)}, dtype {x.dtype} on {x.device} "
                f"does not belong to space with shape {self.shape}, dtype {self.dtype} "
                f"on {self.device}"
            )

    def dot(self, x: torch.Tensor, y: torch.Tensor) -> float:
        """Inner product <x, y>."""
        return float(torch.sum(x * y))

    def norm2(self, x: torch.Tensor) -> float:
        """Euclidean norm ||x||_2."""
        return float(torch.linalg.vector_norm(x))

    def axpby(
        self,
        alpha: float,
        x: torch.Tensor,
        beta: float,
        y: torch.Tensor,
        dst: Optional[torch.Tensor] = None,
    ) -> torch.Tensor:
        """Affine combination alpha*x + beta*y.

        ``dst`` may be one of the operands; if omitted a new vector is
        returned.
        """
        result = alpha * x + beta * y
        if dst is None:
            return result
        dst.copy_(result)
        return dst

    def copy(self, src: torch.Tensor, dst: Optional[torch.Tensor] = None) -> torch.Tensor:
        if dst is None:
            return src.clone()
        if dst is not src:
            dst.copy_(src)
        return dst
