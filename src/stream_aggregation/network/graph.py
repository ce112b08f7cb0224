"""A file for the stream network topology and its drainage basin partitions"""

import logging
from typing import Any

import numpy as np
import pandas as pd
import polars as pl
import rustworkx as rx
from numpy.typing import ArrayLike, NDArray
from rasterio.transform import Affine

from stream_aggregation.exceptions import NetworkTopologyError

logger = logging.getLogger(__name__)


def _build_rustworkx_object(receivers: NDArray[np.int64]) -> rx.PyDiGraph:
    """Build a RustWorkX directed graph from a receivers array.

    Parameters
    ----------
    receivers : NDArray[np.int64]
        Downstream node index for every node, -1 for outlets

    Returns
    -------
    rx.PyDiGraph
        Graph with edges pointing downstream. Graph node index and node payload are the node index
    """
    graph = rx.PyDiGraph()
    graph.add_nodes_from(range(receivers.size))
    donors = np.flatnonzero(receivers >= 0)
    graph.add_edges_from_no_data(list(zip(donors.tolist(), receivers[donors].tolist(), strict=True)))
    return graph


class StreamNetwork:
    """A dendritic stream network addressed by node index.

    Every node has at most one downstream receiver. Confluences are nodes with two or more
    donors. Several disjoint trees (drainage basins) may share one network.

    Parameters
    ----------
    receivers : ArrayLike
        Downstream node index for every node, -1 for outlets
    x, y : ArrayLike | None, optional
        Planar node coordinates. If omitted every edge is one cellsize long
    cellsize : float, optional
        Spacing of the grid the network was derived from, by default 1.0
    crs : Any, optional
        Coordinate reference system of the node coordinates, by default None
    transform : Affine | None, optional
        Affine transform of the grid the network was derived from, by default None
    shape : tuple[int, int] | None, optional
        Rows and columns of that grid, by default None

    Raises
    ------
    NetworkTopologyError
        If receivers are out of range, contain self loops or cycles, or coordinates are malformed
    """

    def __init__(
        self,
        receivers: ArrayLike,
        x: ArrayLike | None = None,
        y: ArrayLike | None = None,
        cellsize: float = 1.0,
        crs: Any = None,
        transform: Affine | None = None,
        shape: tuple[int, int] | None = None,
    ) -> None:
        rcv = np.asarray(receivers)
        if rcv.ndim != 1:
            raise NetworkTopologyError("receivers must be a one-dimensional array")
        if rcv.size and not np.issubdtype(rcv.dtype, np.integer):
            if not np.all(np.isfinite(rcv)) or np.any(rcv != np.round(rcv)):
                raise NetworkTopologyError("receivers must hold integer node indices")
        rcv = rcv.astype(np.int64)
        n = rcv.size

        if np.any((rcv < -1) | (rcv >= n)):
            raise NetworkTopologyError(f"receivers must be -1 or a node index in [0, {n})")
        if np.any(rcv == np.arange(n)):
            raise NetworkTopologyError("receivers contain a self loop")
        if not np.isfinite(cellsize) or cellsize <= 0:
            raise NetworkTopologyError(f"cellsize must be positive, got {cellsize}")
        if (x is None) != (y is None):
            raise NetworkTopologyError("x and y must be given together")

        if x is not None and y is not None:
            self._x: NDArray[np.float64] | None = np.asarray(x, dtype=np.float64).copy()
            self._y: NDArray[np.float64] | None = np.asarray(y, dtype=np.float64).copy()
            if self._x.shape != (n,) or self._y.shape != (n,):
                raise NetworkTopologyError(f"x and y must have one value per node ({n})")
            if not (np.all(np.isfinite(self._x)) and np.all(np.isfinite(self._y))):
                raise NetworkTopologyError("x and y must be finite")
        else:
            self._x = None
            self._y = None

        self._receivers = rcv
        self._receivers.setflags(write=False)
        self.cellsize = float(cellsize)
        self.crs = crs
        self.transform = transform
        self.shape = tuple(shape) if shape is not None else None

        self._graph = _build_rustworkx_object(rcv)
        if not rx.is_directed_acyclic_graph(self._graph):
            raise NetworkTopologyError("Stream network contains a cycle")

    @classmethod
    def from_upstream_dict(
        cls,
        upstream_network: dict[int, list[int]],
        n_nodes: int | None = None,
        **kwargs: Any,
    ) -> "StreamNetwork":
        """Build a network from a dictionary mapping each node to its upstream donors.

        Parameters
        ----------
        upstream_network : dict[int, list[int]]
            Key is the downstream node index, values are the upstream node indices
        n_nodes : int | None, optional
            Node count. Defaults to the largest index in the dictionary plus one
        **kwargs : Any
            Passed on to StreamNetwork

        Returns
        -------
        StreamNetwork
            The network

        Raises
        ------
        NetworkTopologyError
            If a node drains to more than one downstream node
        """
        ids = [k for k in upstream_network] + [u for ups in upstream_network.values() for u in ups]
        if n_nodes is None:
            n_nodes = max(ids) + 1 if ids else 0
        if any(i < 0 or i >= n_nodes for i in ids):
            raise NetworkTopologyError(f"Node ids must be in [0, {n_nodes})")

        receivers = np.full(n_nodes, -1, dtype=np.int64)
        for to_node, from_nodes in upstream_network.items():
            for from_node in from_nodes:
                if receivers[from_node] not in (-1, to_node):
                    raise NetworkTopologyError(f"Node {from_node} has multiple successors, not dendritic")
                receivers[from_node] = to_node
        return cls(receivers, **kwargs)

    @classmethod
    def from_dataframe(
        cls,
        df: pl.DataFrame | pd.DataFrame,
        id_col: str = "node_id",
        to_col: str = "to_node",
        x_col: str | None = "x",
        y_col: str | None = "y",
        **kwargs: Any,
    ) -> "StreamNetwork":
        """Build a network from a node table. Row order defines node indices.

        A node whose downstream id is null, or not found among the node ids, is an outlet.

        Parameters
        ----------
        df : pl.DataFrame | pd.DataFrame
            One row per node
        id_col : str, optional
            Column holding unique node ids, by default "node_id"
        to_col : str, optional
            Column holding the downstream node id, by default "to_node"
        x_col, y_col : str | None, optional
            Coordinate columns. Pass None to build a network without coordinates
        **kwargs : Any
            Passed on to StreamNetwork

        Returns
        -------
        StreamNetwork
            The network

        Raises
        ------
        NetworkTopologyError
            If node ids are not unique
        """
        if isinstance(df, pd.DataFrame):
            df = pl.from_pandas(df)

        if df[id_col].n_unique() != df.height:
            raise NetworkTopologyError(f"Column {id_col} must hold unique node ids")

        lookup = df.select(pl.col(id_col).alias(to_col)).with_row_index("_to_row")
        joined = (
            df.select(pl.col(to_col).cast(df.schema[id_col], strict=False))
            .with_row_index("_row")
            .join(lookup, on=to_col, how="left")
            .sort("_row")
        )
        receivers = joined["_to_row"].cast(pl.Int64).fill_null(-1).to_numpy()

        if x_col is not None and y_col is not None:
            kwargs.setdefault("x", df[x_col].cast(pl.Float64).to_numpy())
            kwargs.setdefault("y", df[y_col].cast(pl.Float64).to_numpy())
        return cls(receivers, **kwargs)

    def __len__(self) -> int:
        return self._receivers.size

    def __repr__(self) -> str:
        return (
            f"StreamNetwork(n_nodes={self.n_nodes}, n_outlets={self.outlets().size}, "
            f"cellsize={self.cellsize}, crs={self.crs})"
        )

    @property
    def n_nodes(self) -> int:
        """Number of nodes"""
        return self._receivers.size

    @property
    def graph(self) -> rx.PyDiGraph:
        """The topology. Edges point from a node to its receiver"""
        return self._graph

    @property
    def receivers(self) -> NDArray[np.int64]:
        """Read-only receivers array, -1 for outlets"""
        return self._receivers

    @property
    def x(self) -> NDArray[np.float64] | None:
        return self._x

    @property
    def y(self) -> NDArray[np.float64] | None:
        return self._y

    @property
    def has_coordinates(self) -> bool:
        return self._x is not None

    def successor(self, node: int) -> int | None:
        """Downstream node, or None for an outlet"""
        rcv = int(self._receivers[node])
        return None if rcv < 0 else rcv

    def predecessors(self, node: int) -> list[int]:
        """Upstream donors of a node"""
        return sorted(self._graph.predecessor_indices(node))

    def in_degrees(self) -> NDArray[np.int64]:
        """Number of donors of every node"""
        rcv = self._receivers
        return np.bincount(rcv[rcv >= 0], minlength=self.n_nodes)

    def outlets(self) -> NDArray[np.int64]:
        return np.flatnonzero(self._receivers < 0)

    def heads(self) -> NDArray[np.int64]:
        return np.flatnonzero(self.in_degrees() == 0)

    def confluences(self) -> NDArray[np.int64]:
        return np.flatnonzero(self.in_degrees() >= 2)

    def edge_lengths(self) -> NDArray[np.float64]:
        """Flow distance from every node to its receiver, 0.0 at outlets"""
        lengths = np.zeros(self.n_nodes, dtype=np.float64)
        donors = np.flatnonzero(self._receivers >= 0)
        if self._x is None or self._y is None:
            lengths[donors] = self.cellsize
            return lengths

        rcv = self._receivers[donors]
        lengths[donors] = np.hypot(self._x[donors] - self._x[rcv], self._y[donors] - self._y[rcv])
        return lengths

    def topological_order(self) -> NDArray[np.int64]:
        """Node indices ordered so that every node comes before its receiver"""
        return np.asarray(rx.topological_sort(self._graph), dtype=np.int64)

    def subnetwork(self, nodes: ArrayLike) -> "StreamNetwork":
        """Network restricted to a subset of nodes, renumbered 0..len(nodes)-1 in ascending order.

        Nodes whose receiver is outside the subset become outlets.

        Parameters
        ----------
        nodes : ArrayLike
            Node indices to keep

        Returns
        -------
        StreamNetwork
            The sub-network. Local node k corresponds to np.unique(nodes)[k]
        """
        locs = np.unique(np.asarray(nodes, dtype=np.int64))
        lookup = np.full(self.n_nodes, -1, dtype=np.int64)
        lookup[locs] = np.arange(locs.size)

        rcv = self._receivers[locs]
        local_receivers = np.where(rcv >= 0, lookup[np.maximum(rcv, 0)], -1)

        return StreamNetwork(
            local_receivers,
            x=None if self._x is None else self._x[locs],
            y=None if self._y is None else self._y[locs],
            cellsize=self.cellsize,
            crs=self.crs,
            transform=self.transform,
            shape=self.shape,
        )


def _extract_basin_subnetwork(outlet: int, network: StreamNetwork) -> tuple[StreamNetwork, NDArray[np.int64]]:
    """Extract the drainage basin of one outlet.

    Parameters
    ----------
    outlet : int
        Outlet node index
    network : StreamNetwork
        Full stream network

    Returns
    -------
    tuple[StreamNetwork, NDArray[np.int64]]
        - The basin as its own network
        - The original node index of every basin node (ascending)
    """
    upstream_nodes: set[int] = rx.ancestors(network.graph, outlet)
    upstream_nodes.add(outlet)
    locs = np.fromiter(sorted(upstream_nodes), dtype=np.int64, count=len(upstream_nodes))
    return network.subnetwork(locs), locs


def _partition_all_basins(network: StreamNetwork) -> dict[int, dict[str, Any]]:
    """Pre-partition the network into independent drainage basins.

    Parameters
    ----------
    network : StreamNetwork
        Full stream network

    Returns
    -------
    dict[int, dict[str, Any]]
        Dictionary mapping outlet node index to partition data containing:
        - "network": StreamNetwork - the basin, renumbered from 0
        - "locs": NDArray[np.int64] - original node index of every basin node

    Notes
    -----
    Basins are disjoint and together cover every node, because every node drains to exactly one outlet.
    """
    partitions: dict[int, dict[str, Any]] = {}
    for outlet in network.outlets().tolist():
        subnetwork, locs = _extract_basin_subnetwork(outlet, network)
        partitions[outlet] = {"network": subnetwork, "locs": locs}

    logger.debug(f"Partitioned {network.n_nodes} nodes into {len(partitions)} drainage basins")
    return partitions
