import numpy as np
import rustworkx as rx
from numpy.typing import NDArray


def label_components(graph: rx.PyDiGraph) -> tuple[NDArray[np.int64], int]:
    """Label the weakly connected components of a graph.

    Components are numbered 1..K in order of their smallest node index, so labels are stable for a
    fixed node ordering. Graph node indices must be contiguous from 0.

    Parameters
    ----------
    graph : rx.PyDiGraph
        Stream network or cut network topology

    Returns
    -------
    tuple[NDArray[np.int64], int]
        - Label of every node, indexed by graph node index
        - Number of components
    """
    components = rx.weakly_connected_components(graph)
    components = sorted(components, key=min)

    labels = np.zeros(len(graph), dtype=np.int64)
    for label, component in enumerate(components, start=1):
        labels[list(component)] = label
    return labels, len(components)
