"""Baseline gene parameter generation for population simulation."""

from typing import Sequence

import numpy as np
from numpy.random import Generator

from ..config import CVBin


def clip_to_floor(values: np.ndarray, floor: float) -> np.ndarray:
    """Replace non-finite values and values below ``floor`` with ``floor``."""
    values = np.asarray(values, dtype=float)
    return np.where(np.isfinite(values) & (values >= floor), values, floor)


def sample_baseline_means(
    rng: Generator,
    ngenes: int,
    shape: float,
    rate: float,
    floor: float,
) -> np.ndarray:
    """Sample population mean expression of each gene.

    Args:
        rng: NumPy random generator.
        ngenes: Number of genes.
        shape: Shape parameter for gamma distribution of gene means.
        rate: Rate parameter for gamma distribution of gene means.
        floor: Positive lower bound applied to the draws.

    Returns:
        Array of baseline means.
    """
    means = rng.gamma(shape=shape, scale=1.0 / rate, size=ngenes)
    return clip_to_floor(means, floor)


def cv_bin_index(means: np.ndarray, bins: Sequence[CVBin]) -> np.ndarray:
    """Index of the bin covering each mean (last bin whose start <= mean)."""
    starts = np.array([b.start for b in bins])
    idx = np.searchsorted(starts, means, side="right") - 1
    return np.clip(idx, 0, len(bins) - 1)


def sample_binned_cv(
    rng: Generator,
    means: np.ndarray,
    bins: Sequence[CVBin],
    similarity_scale: float,
    floor: float,
) -> np.ndarray:
    """Sample a coefficient of variation for each gene given its mean.

    Each gene draws from the gamma distribution of the bin its baseline mean
    falls into, so that highly expressed genes vary less between individuals.
    The bin rates are multiplied by ``similarity_scale``.

    Args:
        rng: NumPy random generator.
        means: Baseline gene means.
        bins: Mean-binned gamma parameters.
        similarity_scale: Rate multiplier; larger values give smaller cvs.
        floor: Positive lower bound applied to the draws.

    Returns:
        Array of cvs, one per gene.
    """
    idx = cv_bin_index(np.asarray(means, dtype=float), bins)
    shapes = np.array([b.shape for b in bins])[idx]
    rates = np.array([b.rate for b in bins])[idx] * similarity_scale
    cvs = rng.gamma(shape=shapes, scale=1.0 / rates)
    return clip_to_floor(cvs, floor)
