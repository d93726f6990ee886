"""Painting quality metrics.

Provides:
    - well_painted_fraction: share of pixels within the color tolerance of the target
    - mean_absolute_error: mean per-channel error in 8-bit units
    - psnr: Peak Signal-to-Noise Ratio in dB

Used by:
    - Simulator: diagnostics logged when the painting finishes
    - scripts/paint.py: final report

Inputs are (H, W, 3) uint8 numpy arrays (the raster planes); they are converted to
torch tensors internally so the same functions accept tensors on any device.
"""

from typing import Sequence, Union

import numpy as np
import torch
import torch.nn.functional as F


ImageLike = Union[np.ndarray, torch.Tensor]


def _as_float_tensor(img: ImageLike) -> torch.Tensor:
    if isinstance(img, torch.Tensor):
        return img.detach().to(torch.float32)
    # Copy: target planes are read-only arrays
    return torch.from_numpy(np.array(img, dtype=np.float32))


def well_painted_fraction(
    painted: ImageLike,
    target: ImageLike,
    max_difference: Sequence[int]
) -> float:
    """Fraction of pixels whose channels are all within max_difference of the target.

    Parameters
    ----------
    painted, target : array or tensor
        Images, shape (H, W, 3), range [0, 255]
    max_difference : sequence of int
        Per-channel tolerance

    Returns
    -------
    float
        Fraction in [0, 1] (0.0 for empty images)
    """
    a = _as_float_tensor(painted)
    b = _as_float_tensor(target)
    if a.shape != b.shape:
        raise ValueError(f"Shape mismatch: {tuple(a.shape)} vs {tuple(b.shape)}")
    if a.numel() == 0:
        return 0.0

    tolerance = torch.tensor(list(max_difference), dtype=torch.float32, device=a.device)
    well = torch.all((a - b).abs() <= tolerance, dim=-1)
    return float(well.to(torch.float32).mean())


def mean_absolute_error(painted: ImageLike, target: ImageLike) -> float:
    """Mean absolute per-channel error, in 8-bit units."""
    a = _as_float_tensor(painted)
    b = _as_float_tensor(target)
    if a.shape != b.shape:
        raise ValueError(f"Shape mismatch: {tuple(a.shape)} vs {tuple(b.shape)}")
    return float(F.l1_loss(a, b, reduction='mean'))


def psnr(
    painted: ImageLike,
    target: ImageLike,
    max_val: float = 255.0,
    eps: float = 1e-8
) -> float:
    """Compute Peak Signal-to-Noise Ratio (PSNR).

    Parameters
    ----------
    painted, target : array or tensor
        Images, same shape, range [0, max_val]
    max_val : float
        Maximum pixel value, default 255
    eps : float
        Avoids log(0) for identical images

    Returns
    -------
    float
        PSNR in dB (higher is better)

    Notes
    -----
    PSNR = 10 * log10(max_val^2 / MSE)
    """
    a = _as_float_tensor(painted)
    b = _as_float_tensor(target)
    if a.shape != b.shape:
        raise ValueError(f"Shape mismatch: {tuple(a.shape)} vs {tuple(b.shape)}")
    mse = F.mse_loss(a, b, reduction='mean')
    return float(10.0 * torch.log10((max_val ** 2) / (mse + eps)))
