"""Quantile normalization of simulated means onto a gamma distribution."""

import numpy as np
import pandas as pd
from scipy import stats

from ..config import ParameterError
from .genes import clip_to_floor


def quantile_normalize_column(
    values: np.ndarray,
    shape: float,
    rate: float,
) -> np.ndarray:
    """Map values onto gamma quantiles while keeping their rank order.

    The value at empirical quantile ``q`` is replaced by the inverse CDF of
    ``Gamma(shape, rate)`` at ``q``. Ties share the same quantile. A constant
    column maps to the gamma mean.
    """
    values = np.asarray(values, dtype=float)
    n = len(values)
    if n == 0:
        return values
    if np.all(values == values[0]):
        return np.full(n, shape / rate)
    ranks = stats.rankdata(values, method="average")
    quantiles = (ranks - 0.5) / n
    return stats.gamma.ppf(quantiles, a=shape, scale=1.0 / rate)


def quantile_normalize(
    matrix: pd.DataFrame,
    shape: float,
    rate: float,
    floor: float = 1e-8,
) -> pd.DataFrame:
    """Quantile normalize each column of a genes x individuals matrix.

    Args:
        matrix: Mean matrix with non-negative, finite values.
        shape: Shape parameter of the target gamma distribution.
        rate: Rate parameter of the target gamma distribution.
        floor: Positive lower bound applied to the result.

    Returns:
        Normalized matrix with the same index and columns.

    Raises:
        ParameterError: If shape or rate is not positive.
        ValueError: If the matrix holds negative or non-finite values.
    """
    if not shape > 0:
        raise ParameterError("mean_shape", f"must be positive, got {shape}")
    if not rate > 0:
        raise ParameterError("mean_rate", f"must be positive, got {rate}")
    values = matrix.to_numpy(dtype=float)
    if not np.isfinite(values).all():
        raise ValueError("cannot quantile normalize non-finite means")
    if (values < 0).any():
        raise ValueError("cannot quantile normalize negative means")

    normalized = np.empty_like(values)
    for j in range(values.shape[1]):
        normalized[:, j] = quantile_normalize_column(values[:, j], shape, rate)
    return pd.DataFrame(
        clip_to_floor(normalized, floor), index=matrix.index, columns=matrix.columns
    )


def quantile_normalize_groups(
    matrices: list[pd.DataFrame],
    shape: float,
    rate: float,
    floor: float = 1e-8,
) -> list[pd.DataFrame]:
    """Apply :func:`quantile_normalize` to every group's matrix."""
    return [quantile_normalize(m, shape, rate, floor) for m in matrices]
