"""Utilities for FFT workspaces and PSF placement."""

from .fourier import good_fft_size, good_fft_shape
from .padding import pad_to_shape, center_to_origin

__all__ = [
    # Fourier utilities
    "good_fft_size",
    "good_fft_shape",
    # Padding
    "pad_to_shape",
    "center_to_origin",
]
