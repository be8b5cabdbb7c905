"""Fourier transform utilities."""

from typing import Sequence

__all__ = ["good_fft_size", "good_fft_shape"]

_FACTORS = (2, 3, 5, 7)


def _is_smooth(n: int) -> bool:
    for p in _FACTORS:
        while n % p == 0:
            n //= p
    return n == 1


def good_fft_size(n: int) -> int:
    """Smallest integer >= n whose only prime factors are 2, 3, 5 and 7.

    FFTs of such lengths are fast with every common backend. Use this to
    choose an oversized workspace when the convolution must not wrap around
    the object of interest.

    Args:
        n: Minimum length (>= 1).

    Returns:
        A 7-smooth integer >= n.

    Example:
        ```python
        good_fft_size(97)   # 98 = 2 * 7**2
        good_fft_size(128)  # 128
        ```
    """
    n = int(n)
    if n < 1:
        raise ValueError(f"FFT length must be at least 1, got {n}")
    while not _is_smooth(n):
        n += 1
    return n


def good_fft_shape(*shapes: Sequence[int]) -> tuple[int, ...]:
    """Workspace shape large enough for a linear (non-wrapping) convolution.

    Given an object shape and one or more kernel shapes, the dimension along
    each axis is ``good_fft_size(sum(dims) - (len(shapes) - 1))``, i.e. the
    size of the full linear convolution rounded up to a fast FFT length.

    Example:
        ```python
        good_fft_shape((100, 100), (15, 15))  # (120, 120)
        ```
    """
    if len(shapes) < 1:
        raise ValueError("At least one shape is required")
    ndim = len(shapes[0])
    for s in shapes:
        if len(s) != ndim:
            raise ValueError(f"All shapes must have {ndim} dimensions, got {tuple(s)}")
    extra = len(shapes) - 1
    return tuple(
        good_fft_size(sum(int(s[i]) for s in shapes) - extra) for i in range(ndim)
    )
