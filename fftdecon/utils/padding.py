"""Array padding utilities for Fourier-based operations."""

from typing import Optional, Sequence

import numpy as np

__all__ = ["pad_to_shape", "center_to_origin"]


def pad_to_shape(
    img: np.ndarray,
    output_shape: Sequence[int],
    offset: Optional[Sequence[int]] = None,
) -> np.ndarray:
    """Zero-pad an array to a larger shape.

    The input is copied into a zero-filled array of the requested shape,
    starting at ``offset`` (the corner by default).

    Args:
        img: N-dimensional input array.
        output_shape: Desired output shape (must be >= input shape in all dims).
        offset: Position of the first input element along each axis.

    Returns:
        Zero-padded array of the specified output shape.

    Raises:
        ValueError: If the input (plus offset) does not fit in output_shape.

    Example:
        >>> img = np.random.rand(5, 5)
        >>> padded = pad_to_shape(img, (16, 16), offset=(2, 2))
    """
    input_shape = img.shape
    output_shape = tuple(int(s) for s in output_shape)
    ndim = len(input_shape)

    if len(output_shape) != ndim:
        raise ValueError(
            f"Output shape dimensions ({len(output_shape)}) must match "
            f"input dimensions ({ndim})"
        )
    if offset is None:
        offset = (0,) * ndim
    elif len(offset) != ndim:
        raise ValueError(
            f"Number of offsets ({len(offset)}) must match input dimensions ({ndim})"
        )

    for i, (in_s, out_s, off) in enumerate(zip(input_shape, output_shape, offset)):
        if off < 0 or off + in_s > out_s:
            raise ValueError(
                f"Input of size {in_s} at offset {off} does not fit in output "
                f"size {out_s} in dimension {i}"
            )

    result = np.zeros(output_shape, dtype=img.dtype)
    slices = tuple(slice(o, o + s) for o, s in zip(offset, input_shape))
    result[slices] = img
    return result


def center_to_origin(
    psf: np.ndarray,
    output_shape: Sequence[int],
    center: Optional[Sequence[int]] = None,
) -> np.ndarray:
    """Zero-fill a PSF to a larger shape and roll its center to the origin.

    FFT-based convolution expects the PSF center at index (0, 0, ...) with
    negative positions wrapped around to the end of each axis. This places
    ``psf`` at the corner of a zero array of ``output_shape`` and rolls it
    so that the element at ``center`` ends up at the origin.

    Args:
        psf: N-dimensional PSF array, no larger than output_shape.
        output_shape: Shape of the FFT workspace.
        center: Index of the PSF center. Defaults to the origin (PSF
            already in FFT order).

    Returns:
        Array of output_shape with the PSF center at index 0.

    Example:
        >>> box = np.ones((3, 3)) / 9
        >>> h = center_to_origin(box, (8, 8), center=(1, 1))
        >>> h[0, 0], h[-1, -1], h[1, 1]
        (0.111..., 0.111..., 0.111...)
    """
    ndim = psf.ndim
    if center is None:
        center = (0,) * ndim
    elif len(center) != ndim:
        raise ValueError(
            f"Number of center coordinates ({len(center)}) must match "
            f"PSF dimensions ({ndim})"
        )
    for i, (c, n) in enumerate(zip(center, psf.shape)):
        if c < 0 or c >= n:
            raise ValueError(f"PSF center {c} out of range [0, {n}) in dimension {i}")

    result = pad_to_shape(psf, output_shape)
    if any(c != 0 for c in center):
        result = np.roll(result, shift=tuple(-int(c) for c in center), axis=tuple(range(ndim)))
    return result
