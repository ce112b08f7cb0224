import numpy as np
from numpy.typing import NDArray
from scipy.stats import gmean


def mean(values: NDArray) -> float:
    """Arithmetic mean. NaN values propagate"""
    return float(np.mean(values))


def median(values: NDArray) -> float:
    return float(np.median(values))


def minimum(values: NDArray) -> float:
    return float(np.min(values))


def maximum(values: NDArray) -> float:
    return float(np.max(values))


def std(values: NDArray) -> float:
    """Sample standard deviation (N - 1 normalisation)

    A single value has no spread, so groups of one node return 0.0
    """
    if values.size < 2:
        return 0.0
    return float(np.std(values, ddof=1))


def geometric_mean(values: NDArray) -> float:
    """Geometric mean, used for log-normally distributed attributes such as drainage area

    Parameters
    ----------
    values : NDArray
        Values array. Non-positive values yield NaN

    Returns
    -------
    float
        The geometric mean of the group
    """
    if np.any(values <= 0):
        return np.nan
    return float(gmean(values))


def nanmean(values: NDArray) -> float:
    """Mean ignoring NaN. All-NaN groups return NaN"""
    if np.all(np.isnan(values)):
        return np.nan
    return float(np.nanmean(values))


def nanmedian(values: NDArray) -> float:
    if np.all(np.isnan(values)):
        return np.nan
    return float(np.nanmedian(values))


def nanmin(values: NDArray) -> float:
    if np.all(np.isnan(values)):
        return np.nan
    return float(np.nanmin(values))


def nanmax(values: NDArray) -> float:
    if np.all(np.isnan(values)):
        return np.nan
    return float(np.nanmax(values))


class Percentile:
    """Percentile reducer with a fixed q, e.g. Percentile(25) for the lower quartile

    Parameters
    ----------
    q : float
        Percentile in the interval [0, 100]
    """

    def __init__(self, q: float) -> None:
        self.q = q

    def __call__(self, values: NDArray) -> float:
        return float(np.percentile(values, self.q))

    def __repr__(self) -> str:
        return f"Percentile(q={self.q})"
