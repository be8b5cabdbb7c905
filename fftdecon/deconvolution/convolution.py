"""FFT-based convolution operator.

The operator models

    H = R . F^-1 . diag(mtf) . F . S

a periodic (circulant) approximation of the convolution by a PSF, where:
    - S embeds an input vector into the FFT workspace (zeros elsewhere),
    - F is the discrete Fourier transform over the whole workspace,
    - mtf is the modulation transfer function (FFT of the PSF),
    - R extracts the output vector from a window of the workspace.

The adjoint H* = S* . F^-1 . diag(conj(mtf)) . F . R* is obtained with the
same routine by conjugating the MTF. All transforms are done on a single
complex workspace allocated once per operator, so an instance must not be
used concurrently.

FFT convention: the forward transform is unnormalized, the backward
transform is the unnormalized inverse (the sum over frequencies without the
1/N factor) and the MTF carries the 1/N factor:

    mtf = FFT(psf) / N

so that F^-1 . diag(mtf) . F is exactly the circular convolution by the PSF.

Example:
    >>> space = ShapedVectorSpace((256, 256))
    >>> H = Convolution(space)
    >>> H.set_psf(psf, offset=(7, 7), normalize=True)  # 15x15 PSF centered at (7, 7)
    >>> blurred = H.apply(image)
    >>> correlated = H.apply(blurred, adjoint=True)
"""

from typing import Optional, Sequence, Union

import numpy as np
import torch

from ..core.space import ShapedVectorSpace, complex_dtype
from ..utils.padding import center_to_origin

__all__ = ["Convolution"]


def _window(offset: Sequence[int], shape: Sequence[int]) -> tuple:
    return tuple(slice(o, o + n) for o, n in zip(offset, shape))


def _check_offsets(
    name: str,
    offset: Optional[Sequence[int]],
    shape: Sequence[int],
    work_shape: Sequence[int],
) -> tuple[int, ...]:
    ndim = len(work_shape)
    if offset is None:
        offset = (0,) * ndim
    offset = tuple(int(o) for o in offset)
    if len(offset) != ndim:
        raise ValueError(f"{name} offset has {len(offset)} values, expected {ndim}")
    for i, (off, n, dim) in enumerate(zip(offset, shape, work_shape)):
        if off < 0 or off >= dim:
            raise ValueError(
                f"Out of range {name.lower()} offset {off} along dimension {i} "
                f"(workspace size {dim})"
            )
        if off + n > dim:
            raise ValueError(
                f"{name} (+ offset) beyond dimension {i}: {off} + {n} > {dim}"
            )
    return offset


class Convolution:
    """FFT-based convolution between shaped vector spaces of any rank.

    Args:
        input_space: Space of the vectors to convolve (the object).
        output_space: Space of the results (the data). Defaults to the input
            space.
        work_shape: Shape of the FFT workspace. Defaults to the input shape.
            Each dimension must hold the input and the output at their
            offsets.
        input_offset: Position of the input in the workspace. Default zeros.
        output_offset: Position of the output in the workspace. Default zeros.
        verbose: If True, print operator info. Default False.

    Raises:
        ValueError: If the spaces have different ranks, dtypes or devices, or
            if an offset is out of range.
    """

    def __init__(
        self,
        input_space: ShapedVectorSpace,
        output_space: Optional[ShapedVectorSpace] = None,
        work_shape: Optional[Sequence[int]] = None,
        input_offset: Optional[Sequence[int]] = None,
        output_offset: Optional[Sequence[int]] = None,
        verbose: bool = False,
    ):
        if output_space is None:
            output_space = input_space
        if work_shape is None:
            work_shape = input_space.shape
        work_shape = tuple(int(n) for n in work_shape)
        ndim = len(work_shape)

        if input_space.rank != ndim or output_space.rank != ndim:
            raise ValueError(
                f"Input ({input_space.rank}D), output ({output_space.rank}D) and "
                f"workspace ({ndim}D) must have the same number of dimensions"
            )
        if input_space.dtype != output_space.dtype:
            raise ValueError(
                f"Input and output spaces must have the same element type, "
                f"got {input_space.dtype} and {output_space.dtype}"
            )
        if input_space.device != output_space.device:
            raise ValueError(
                f"Input and output spaces must live on the same device, "
                f"got {input_space.device} and {output_space.device}"
            )

        self.input_space = input_space
        self.output_space = output_space
        self.work_shape = work_shape
        self.input_offset = _check_offsets("Input", input_offset, input_space.shape, work_shape)
        self.output_offset = _check_offsets("Output", output_offset, output_space.shape, work_shape)
        self.dtype = input_space.dtype
        self.device = input_space.device
        self.cdtype = complex_dtype(self.dtype)

        self._inp = _window(self.input_offset, input_space.shape)
        self._out = _window(self.output_offset, output_space.shape)
        self._wrk = torch.zeros(work_shape, dtype=self.cdtype, device=self.device)
        self._mtf: Optional[torch.Tensor] = None

        if verbose:
            print(
                f"{ndim}D convolution: input {input_space.shape} at {self.input_offset}, "
                f"output {output_space.shape} at {self.output_offset}, "
                f"workspace {work_shape}, device={self.device}, dtype={self.dtype}"
            )

    # ------------------------------------------------------------------ #
    # Workspace and transforms
    # ------------------------------------------------------------------ #

    @property
    def number_of_frequencies(self) -> int:
        """Number of frequency bins (= number of workspace elements)."""
        return self._wrk.numel()

    @property
    def work_array(self) -> torch.Tensor:
        """Workspace as interleaved real/imaginary parts, shape (*work_shape, 2)."""
        return torch.view_as_real(self._wrk)

    def _check_work(self, z: torch.Tensor) -> torch.Tensor:
        if tuple(z.shape) != self.work_shape or z.dtype != self.cdtype:
            raise ValueError(
                f"Bad workspace: expected {self.cdtype} array of shape {self.work_shape}, "
                f"got {z.dtype} array of shape {tuple(z.shape)}"
            )
        return z

    def forward_fft(self, z: Optional[torch.Tensor] = None) -> None:
        """Apply the unnormalized forward FFT in-place (to the workspace by default)."""
        z = self._wrk if z is None else self._check_work(z)
        z.copy_(torch.fft.fftn(z))

    def backward_fft(self, z: Optional[torch.Tensor] = None) -> None:
        """Apply the unnormalized inverse FFT in-place (to the workspace by default).

        Forward then backward transform multiplies the array by N.
        """
        z = self._wrk if z is None else self._check_work(z)
        z.copy_(torch.fft.ifftn(z, norm="forward"))

    # ------------------------------------------------------------------ #
    # PSF and MTF
    # ------------------------------------------------------------------ #

    @property
    def has_mtf(self) -> bool:
        return self._mtf is not None

    @property
    def mtf(self) -> Optional[torch.Tensor]:
        """Modulation transfer function, FFT(psf)/N (None until set)."""
        return self._mtf

    def set_mtf(self, mtf: Union[np.ndarray, torch.Tensor]) -> None:
        """Set the modulation transfer function directly.

        Args:
            mtf: Complex array of the workspace shape, including the 1/N
                factor.
        """
        mtf = torch.as_tensor(mtf).to(device=self.device, dtype=self.cdtype)
        self._mtf = self._check_work(mtf).clone()

    def set_psf(
        self,
        psf: Union[np.ndarray, torch.Tensor],
        offset: Optional[Sequence[int]] = None,
        normalize: bool = False,
    ) -> None:
        """Set the point spread function and compute the MTF.

        Args:
            psf: PSF array with the same rank as the workspace and no larger
                than it.
            offset: Index of the PSF center. The PSF is zero-filled to the
                workspace shape and rolled so that this element lands at
                the origin. Defaults to the origin (PSF in FFT order).
            normalize: Scale the PSF to unit sum.

        Raises:
            ValueError: If the PSF does not fit or cannot be normalized.
        """
        if isinstance(psf, torch.Tensor):
            arr = psf.detach().cpu().numpy()
        else:
            arr = np.asarray(psf)
        if arr.ndim != len(self.work_shape):
            raise ValueError(
                f"PSF has {arr.ndim} dimensions, expected {len(self.work_shape)}"
            )
        arr = arr.astype(np.float64)
        if normalize:
            total = arr.sum()
            if total == 0 or not np.isfinite(total):
                raise ValueError(f"Cannot normalize PSF with sum {total}")
            if total != 1:
                arr = arr / total
        h = center_to_origin(arr, self.work_shape, offset)
        self._compute_mtf(torch.as_tensor(h, dtype=self.dtype, device=self.device))

    def _compute_mtf(self, psf: torch.Tensor) -> None:
        mtf = psf.to(self.cdtype) * (1.0 / self.number_of_frequencies)
        self.forward_fft(mtf)
        self._mtf = mtf

    # ------------------------------------------------------------------ #
    # Operator
    # ------------------------------------------------------------------ #

    def push(self, x: torch.Tensor, adjoint: bool = False) -> None:
        """Copy a vector into the workspace.

        Applies S (input vector) if ``adjoint`` is False and R* (output
        vector) otherwise: the real part of the workspace is set to the
        zero-padded vector and the imaginary part to zero.
        """
        if adjoint:
            self.output_space.check(x, "Vector")
            window = self._out
        else:
            self.input_space.check(x, "Vector")
            window = self._inp
        self._wrk.zero_()
        self._wrk.real[window] = x

    def pull(self, dst: Optional[torch.Tensor] = None, adjoint: bool = False) -> torch.Tensor:
        """Extract the real part of the workspace.

        Applies R (to the output space) if ``adjoint`` is False and S* (to
        the input space) otherwise.

        Args:
            dst: Destination vector; a new one is allocated if omitted.
            adjoint: Pull for the adjoint operation?

        Returns:
            The destination vector.
        """
        if adjoint:
            space, window = self.input_space, self._inp
        else:
            space, window = self.output_space, self._out
        src = self._wrk.real[window]
        if dst is None:
            return src.clone(memory_format=torch.contiguous_format)
        space.check(dst, "Destination")
        dst.copy_(src)
        return dst

    def convolve(self, conj: bool = False) -> None:
        """Compute F^-1 . diag(mtf) . F . z in place, z being the workspace.

        With ``conj=True`` the MTF is conjugated, which implements the
        adjoint of the convolution.

        Raises:
            RuntimeError: If neither the PSF nor the MTF has been set.
        """
        if self._mtf is None:
            raise RuntimeError("You must set the PSF or the MTF first")
        self.forward_fft()
        if conj:
            self._wrk.mul_(self._mtf.conj())
        else:
            self._wrk.mul_(self._mtf)
        self.backward_fft()

    def apply(self, x: torch.Tensor, adjoint: bool = False) -> torch.Tensor:
        """Return H.x, or H*.x if ``adjoint`` is True."""
        self.push(x, adjoint)
        self.convolve(adjoint)
        return self.pull(None, adjoint)

    def __call__(self, x: torch.Tensor) -> torch.Tensor:
        return self.apply(x, False)
