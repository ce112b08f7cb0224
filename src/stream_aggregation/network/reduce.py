"""Groupwise reduction of node attributes"""

from collections.abc import Callable

import numpy as np
from numpy.typing import NDArray

from stream_aggregation.exceptions import InvalidParameterError
from stream_aggregation.helpers.stats import mean
from stream_aggregation.schemas.aggregation import GroupedResult


def _reduce_group(fn: Callable[[NDArray], float], group: NDArray[np.float64], label: int) -> float:
    """Apply fn to one group. Empty groups are NaN"""
    if group.size == 0:
        return np.nan

    result = np.asarray(fn(group))
    if result.size != 1:
        raise InvalidParameterError(
            f"Aggregation function must return a scalar, got shape {result.shape} for group {label}"
        )
    return float(result.reshape(()))


def aggregate_by_label(
    values: NDArray[np.float64],
    labels: NDArray[np.int64],
    n_labels: int,
    fn: Callable[[NDArray], float] = mean,
) -> GroupedResult:
    """Reduce values within each label and broadcast the result back to every node.

    Parameters
    ----------
    values : NDArray[np.float64]
        Value of every node
    labels : NDArray[np.int64]
        Label (1..n_labels) of every node
    n_labels : int
        Number of labels. Labels without members reduce to NaN
    fn : Callable[[NDArray], float], optional
        Reduction function, by default the arithmetic mean

    Returns
    -------
    GroupedResult
        Reduced value per label and its broadcast onto the nodes

    Raises
    ------
    InvalidParameterError
        If values and labels differ in length, labels are out of range, or fn returns a non-scalar
    """
    values = np.asarray(values, dtype=np.float64)
    labels = np.asarray(labels, dtype=np.int64)
    if values.shape != labels.shape:
        raise InvalidParameterError(f"values {values.shape} and labels {labels.shape} must have equal shape")
    if labels.size and (labels.min() < 1 or labels.max() > n_labels):
        raise InvalidParameterError(f"labels must lie in [1, {n_labels}]")

    order = np.argsort(labels, kind="stable")
    counts = np.bincount(labels, minlength=n_labels + 1)[1:]
    groups = np.split(values[order], np.cumsum(counts)[:-1]) if n_labels else []

    reduced = np.array(
        [_reduce_group(fn, group, label) for label, group in enumerate(groups, start=1)],
        dtype=np.float64,
    )
    broadcast = reduced[labels - 1] if labels.size else np.empty(0, dtype=np.float64)
    return GroupedResult(labels=labels, n_labels=n_labels, reduced=reduced, values=broadcast)
