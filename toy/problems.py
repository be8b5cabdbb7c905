"""Small synthetic deconvolution problems.

The blurred images are computed with a direct periodic convolution
(``scipy.ndimage.convolve`` with ``mode="wrap"``), independently of the FFT
operators, so they can serve as a reference for them.
"""

from typing import Sequence, Tuple

import numpy as np
from scipy import ndimage


def box_psf(size: int = 3, ndim: int = 2) -> np.ndarray:
    """Normalized box (uniform) PSF.

    Args:
        size: Number of samples along each axis (odd for a centered PSF).
        ndim: Number of dimensions.

    Returns:
        Array of shape (size,)*ndim summing to one. Its center is at
        index (size // 2,)*ndim.
    """
    if size < 1:
        raise ValueError(f"PSF size must be at least 1, got {size}")
    shape = (size,) * ndim
    return np.full(shape, 1.0 / size**ndim)


def make_blurred_image(
    shape: Sequence[int] = (8, 8),
    psf_size: int = 3,
    noise_level: float = 0.01,
    seed: int = 0,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Generate a random object, a box PSF and the noisy blurred image.

    The object is a non-negative random image with a few bright spots.

    Args:
        shape: Image shape (any rank).
        psf_size: Size of the box PSF along each axis.
        noise_level: Gaussian noise level relative to the blurred image norm.
        seed: Seed of the random generator.

    Returns:
        x_true: The object.
        psf: The box PSF, centered at index psf_size // 2 along each axis.
        blurred: Periodic convolution of the object with the PSF plus noise.

    Example:
        >>> x_true, psf, blurred = make_blurred_image((8, 8), psf_size=3)
        >>> offset = (psf.shape[0] // 2,) * 2
    """
    rng = np.random.default_rng(seed)
    shape = tuple(int(n) for n in shape)

    x_true = 0.1 * rng.random(shape)
    spots = rng.integers(0, np.array(shape), size=(3, len(shape)))
    for spot in spots:
        x_true[tuple(spot)] += 1.0

    psf = box_psf(psf_size, len(shape))
    b_exact = ndimage.convolve(x_true, psf, mode="wrap")
    blurred = add_gaussian_noise(b_exact, noise_level, rng=rng)
    return x_true, psf, blurred


def add_gaussian_noise(
    b_exact: np.ndarray,
    noise_level: float = 0.01,
    rng: np.random.Generator = None,
) -> np.ndarray:
    """Add Gaussian white noise to exact data.

    Args:
        b_exact: Exact (noise-free) data.
        noise_level: Norm of the noise relative to ||b_exact||_2.
            E.g., 0.01 means 1% noise level.
        rng: NumPy random generator. If None, uses default.

    Returns:
        Noisy data: b_exact + noise where ||noise||_2 / ||b_exact||_2 = noise_level.
    """
    if rng is None:
        rng = np.random.default_rng()

    b_norm = np.linalg.norm(b_exact)
    if b_norm <= 0 or noise_level == 0:
        return b_exact.copy()

    noise = rng.standard_normal(b_exact.shape)
    noise = noise * (noise_level * b_norm / np.linalg.norm(noise))

    return b_exact + noise
