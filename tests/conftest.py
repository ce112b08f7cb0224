"""conftest with stream network fixtures shared by the aggregation tests."""

import numpy as np
import pytest
import rioxarray  # noqa: F401
import xarray as xr
from numpy.typing import NDArray

from stream_aggregation.network.graph import StreamNetwork


def groups(labels: NDArray[np.int64]) -> set[frozenset[int]]:
    """Turn a label array into the set of node groups, ignoring label numbering"""
    out: dict[int, set[int]] = {}
    for node, label in enumerate(np.asarray(labels).tolist()):
        out.setdefault(label, set()).add(node)
    return {frozenset(g) for g in out.values()}


@pytest.fixture
def single_reach() -> StreamNetwork:
    """25 node unbranched reach with unit spacing. Node 24 is the outlet."""
    n = 25
    receivers = np.append(np.arange(1, n), -1)
    return StreamNetwork(receivers, x=np.arange(n, dtype=float), y=np.zeros(n), cellsize=1.0)


@pytest.fixture
def confluence_network() -> StreamNetwork:
    """Two 5 node tributaries (0-4, 5-9) joining a 5 node trunk (10-14) at node 10."""
    return StreamNetwork.from_upstream_dict(
        {
            1: [0],
            2: [1],
            3: [2],
            4: [3],
            6: [5],
            7: [6],
            8: [7],
            9: [8],
            10: [4, 9],
            11: [10],
            12: [11],
            13: [12],
            14: [13],
        },
        n_nodes=15,
    )


@pytest.fixture
def two_basins() -> StreamNetwork:
    """A 4 node chain (0-3) and a 6 node basin with a confluence at node 6 (4-9)."""
    return StreamNetwork(np.array([1, 2, 3, -1, 6, 6, 7, 8, 9, -1]))


@pytest.fixture
def complex_network() -> StreamNetwork:
    """Four basins of 16, 8, 4 and 1 nodes.

    Basin 1 (outlet 11) has confluences at 4 (donors 3, 7), 9 (donors 8, 14) and 11 (donors 10, 15).
    Basin 2 is the chain 16 -> 23. Basin 3 has a confluence at 26 (donors 24, 25). Node 28 is isolated.
    """
    receivers = np.array(
        [1, 2, 3, 4, 8]
        + [6, 7, 4]
        + [9, 10, 11, -1]
        + [13, 14, 9]
        + [11]
        + [17, 18, 19, 20, 21, 22, 23, -1]
        + [26, 26, 27, -1]
        + [-1]
    )
    return StreamNetwork(receivers, cellsize=1.0)


@pytest.fixture
def complex_values(complex_network: StreamNetwork) -> NDArray[np.float64]:
    """Noisy node values for the complex network."""
    rng = np.random.default_rng(42)
    return rng.normal(loc=100.0, scale=15.0, size=complex_network.n_nodes)


@pytest.fixture
def grid_network() -> StreamNetwork:
    """Network on the cell centres of a 5 x 5 grid with 10 m cells, origin (0, 50).

    Nodes follow the diagonal from the upper left cell down to the lower right cell.
    """
    x = np.array([5.0, 15.0, 25.0, 35.0, 45.0])
    y = np.array([45.0, 35.0, 25.0, 15.0, 5.0])
    return StreamNetwork(np.array([1, 2, 3, 4, -1]), x=x, y=y, cellsize=10.0, crs="EPSG:32611")


@pytest.fixture
def grid_raster() -> xr.DataArray:
    """5 x 5 raster matching grid_network. Cell (row, col) holds 10 * row + col."""
    data = np.arange(25, dtype=np.float64).reshape(5, 5)
    data = 10 * (data // 5) + data % 5
    raster = xr.DataArray(
        data,
        dims=("y", "x"),
        coords={"y": [45.0, 35.0, 25.0, 15.0, 5.0], "x": [5.0, 15.0, 25.0, 35.0, 45.0]},
    )
    return raster.rio.write_crs("EPSG:32611")
