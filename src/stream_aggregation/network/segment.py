"""Cutting stream networks into the groups of nodes that are aggregated together"""

import logging
from collections.abc import Iterable

import numpy as np
import rustworkx as rx
from numpy.typing import NDArray

from stream_aggregation.exceptions import InvalidLocationError, InvalidParameterError
from stream_aggregation.network.graph import StreamNetwork
from stream_aggregation.schemas.aggregation import AggregationMethod, CutNetwork, resolve_method

logger = logging.getLogger(__name__)

DEFAULT_SEGMENT_FACTOR = 11
"""Default segment length in multiples of the network cell size"""


def default_segment_length(network: StreamNetwork) -> float:
    """Segment length used when none is given: 11 cell sizes"""
    return DEFAULT_SEGMENT_FACTOR * network.cellsize


def _validate_segment_length(network: StreamNetwork, segment_length: float | None) -> float:
    """Return a usable segment length

    Raises
    ------
    InvalidParameterError
        If the length is not a positive finite number
    """
    if segment_length is None:
        return default_segment_length(network)
    try:
        length = float(segment_length)
    except (TypeError, ValueError) as e:
        raise InvalidParameterError(f"segment_length must be a number, got {segment_length!r}") from e
    if not np.isfinite(length) or length <= 0:
        raise InvalidParameterError(f"segment_length must be positive, got {segment_length}")
    return length


def _confluence_cuts(network: StreamNetwork) -> NDArray[np.bool_]:
    """Flag every edge entering a confluence.

    Returns
    -------
    NDArray[np.bool_]
        True where the edge from a node to its receiver is removed
    """
    rcv = network.receivers
    in_degree = network.in_degrees()
    has_receiver = rcv >= 0
    cuts = np.zeros(network.n_nodes, dtype=bool)
    cuts[has_receiver] = in_degree[rcv[has_receiver]] >= 2
    return cuts


def _fixed_length_cuts(network: StreamNetwork, segment_length: float) -> NDArray[np.bool_]:
    """Confluence cuts plus a cut every segment_length along each reach.

    Distance is measured upstream from the most downstream node of each reach. Node at distance d
    falls in piece floor(d / segment_length), so full pieces are laid out from the downstream end and
    the remainder ends up in the most upstream piece.

    Parameters
    ----------
    network : StreamNetwork
        Stream network
    segment_length : float
        Segment length in coordinate units

    Returns
    -------
    NDArray[np.bool_]
        True where the edge from a node to its receiver is removed
    """
    cuts = _confluence_cuts(network)
    rcv = network.receivers
    lengths = network.edge_lengths()

    distance = np.zeros(network.n_nodes, dtype=np.float64)
    # receivers come before their donors in reversed topological order
    for node in network.topological_order()[::-1].tolist():
        r = rcv[node]
        if r >= 0 and not cuts[node]:
            distance[node] = distance[r] + lengths[node]

    # tolerance against sums such as 9.999999 for a distance of 10
    piece = np.floor(distance / segment_length + 1e-9).astype(np.int64)

    has_receiver = rcv >= 0
    crossing = np.zeros(network.n_nodes, dtype=bool)
    crossing[has_receiver] = piece[has_receiver] != piece[rcv[has_receiver]]
    return cuts | crossing


def validate_locations(network: StreamNetwork, locations: Iterable[int] | None) -> NDArray[np.int64]:
    """Check that split locations are node indices of the network.

    Parameters
    ----------
    network : StreamNetwork
        Stream network
    locations : Iterable[int] | None
        Node indices

    Returns
    -------
    NDArray[np.int64]
        The locations as an integer array

    Raises
    ------
    InvalidLocationError
        If locations are missing, not integers, or not node indices of the network
    """
    if locations is None:
        raise InvalidLocationError("explicit-locations requires a set of node indices")

    ix = np.asarray(list(locations))
    if ix.size and not np.issubdtype(ix.dtype, np.integer):
        raise InvalidLocationError(f"Locations must be integer node indices, got dtype {ix.dtype}")
    ix = ix.astype(np.int64)

    outside = ix[(ix < 0) | (ix >= network.n_nodes)]
    if outside.size:
        raise InvalidLocationError(
            f"Locations {sorted(set(outside.tolist()))} are not nodes of a network "
            f"with {network.n_nodes} nodes"
        )
    return ix


def _location_cuts(network: StreamNetwork, locations: Iterable[int] | None) -> NDArray[np.bool_]:
    """Flag the edge leaving every listed node"""
    ix = validate_locations(network, locations)
    cuts = np.zeros(network.n_nodes, dtype=bool)
    cuts[ix] = True
    return cuts & (network.receivers >= 0)


def _apply_cuts(network: StreamNetwork, cuts: NDArray[np.bool_]) -> CutNetwork:
    """Build the cut network, storing nodes in topological order.

    Parameters
    ----------
    network : StreamNetwork
        Source network
    cuts : NDArray[np.bool_]
        True where the edge from a node to its receiver is removed

    Returns
    -------
    CutNetwork
        Cut network whose node k is node_map[k] of the source network
    """
    order = network.topological_order()
    position = np.empty(network.n_nodes, dtype=np.int64)
    position[order] = np.arange(order.size)

    graph = rx.PyDiGraph()
    graph.add_nodes_from(order.tolist())

    rcv = network.receivers
    keep = np.flatnonzero((rcv >= 0) & ~cuts)
    graph.add_edges_from_no_data(
        list(zip(position[keep].tolist(), position[rcv[keep]].tolist(), strict=True))
    )

    return CutNetwork(graph=graph, node_map=order, n_source=network.n_nodes, n_cuts=int(cuts.sum()))


def segment_network(
    network: StreamNetwork,
    method: str | AggregationMethod,
    *,
    locations: Iterable[int] | None = None,
    segment_length: float | None = None,
) -> CutNetwork:
    """Cut a network so its weakly connected components are the groups to aggregate.

    Parameters
    ----------
    network : StreamNetwork
        Source network
    method : str | AggregationMethod
        Segmentation policy
    locations : Iterable[int] | None, optional
        Node indices to cut at, required for explicit-locations
    segment_length : float | None, optional
        Segment length for fixed-length-segments, by default 11 cell sizes

    Returns
    -------
    CutNetwork
        The cut network. For drainage-basins the source topology is reused as is

    Raises
    ------
    InvalidPolicyError
        Unknown method
    InvalidParameterError
        Non-positive segment length
    InvalidLocationError
        Locations outside the network
    """
    method = resolve_method(method)

    if method == AggregationMethod.DRAINAGE_BASINS:
        return CutNetwork(
            graph=network.graph,
            node_map=np.arange(network.n_nodes, dtype=np.int64),
            n_source=network.n_nodes,
        )

    if method == AggregationMethod.BETWEEN_CONFLUENCES:
        cuts = _confluence_cuts(network)
    elif method == AggregationMethod.FIXED_LENGTH_SEGMENTS:
        cuts = _fixed_length_cuts(network, _validate_segment_length(network, segment_length))
    else:
        cuts = _location_cuts(network, locations)

    cut_network = _apply_cuts(network, cuts)
    logger.debug(f"{method}: removed {cut_network.n_cuts} edges from {network.n_nodes} nodes")
    return cut_network
