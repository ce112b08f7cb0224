import numpy as np
from numpy.typing import NDArray

from stream_aggregation.exceptions import RemapConsistencyError


def remap_to_source(
    values: NDArray[np.float64], node_map: NDArray[np.int64], n_source: int
) -> NDArray[np.float64]:
    """Place values computed on a cut network or sub-network at their source node indices.

    If several nodes map onto the same source node, the one listed first in node_map wins.

    Parameters
    ----------
    values : NDArray[np.float64]
        One value per cut network node
    node_map : NDArray[np.int64]
        Source node index of every cut network node
    n_source : int
        Number of nodes in the source network

    Returns
    -------
    NDArray[np.float64]
        One value per source node

    Raises
    ------
    RemapConsistencyError
        If node_map points outside the source network or leaves a source node without a value
    """
    values = np.asarray(values, dtype=np.float64)
    node_map = np.asarray(node_map, dtype=np.int64)
    if values.shape != node_map.shape:
        raise RemapConsistencyError(f"values {values.shape} and node_map {node_map.shape} differ in shape")
    if node_map.size and (node_map.min() < 0 or node_map.max() >= n_source):
        raise RemapConsistencyError(f"node_map references nodes outside [0, {n_source})")

    targets, first = np.unique(node_map, return_index=True)
    if targets.size != n_source:
        missing = np.setdiff1d(np.arange(n_source), targets)
        raise RemapConsistencyError(
            f"{missing.size} source nodes have no counterpart in the cut network, e.g. {missing[:5].tolist()}"
        )

    out = np.empty(n_source, dtype=np.float64)
    out[targets] = values[first]
    return out
