"""Runs the aggregation pipeline independently for every drainage basin"""

import logging
from collections.abc import Callable
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, as_completed
from typing import Any

import numpy as np
from numpy.typing import NDArray
from tqdm import tqdm

from stream_aggregation.config import AggregateConfig
from stream_aggregation.network.graph import StreamNetwork, _partition_all_basins
from stream_aggregation.schemas.aggregation import AggregationMethod, BasinErrorPolicy

logger = logging.getLogger(__name__)

BasinWorker = Callable[[StreamNetwork, NDArray[np.float64], AggregateConfig], NDArray[np.float64]]


def _basin_locations(locs: NDArray[np.int64], locations: list[int] | None) -> list[int] | None:
    """Translate split locations into basin-local node indices. Locations in other basins are dropped"""
    if locations is None:
        return None
    ix = np.asarray(locations, dtype=np.int64)
    inside = ix[np.isin(ix, locs)]
    return np.searchsorted(locs, inside).tolist()


def _process_single_basin(
    partition_data: dict[str, Any],
    values: NDArray[np.float64],
    cfg: AggregateConfig,
    worker: BasinWorker,
) -> NDArray[np.float64]:
    """Aggregate one basin.

    Parameters
    ----------
    partition_data : dict[str, Any]
        Contains:
        - "network": StreamNetwork (the basin, renumbered from 0)
        - "locs": NDArray[np.int64] (original node index of every basin node)
    values : NDArray[np.float64]
        Node values of the full network. Only the basin's slice is read
    cfg : AggregateConfig
        Config with split disabled and locations in basin-local indices
    worker : BasinWorker
        The serial aggregation pipeline

    Returns
    -------
    NDArray[np.float64]
        Aggregated values in basin-local order
    """
    return worker(partition_data["network"], values[partition_data["locs"]], cfg)


def aggregate_basins(
    network: StreamNetwork,
    values: NDArray[np.float64],
    cfg: AggregateConfig,
    worker: BasinWorker,
) -> NDArray[np.float64]:
    """Fan the aggregation out over drainage basins and merge the results.

    Each basin task reads only its own slice of values and its result is written to a disjoint slice
    of the output, so no locking is needed.

    Parameters
    ----------
    network : StreamNetwork
        Full stream network
    values : NDArray[np.float64]
        One value per node of the full network
    cfg : AggregateConfig
        Aggregation config. on_basin_error and max_workers control the fan-out
    worker : BasinWorker
        The serial aggregation pipeline run for every basin

    Returns
    -------
    NDArray[np.float64]
        Aggregated values in original node order. Basins that failed under the nan policy are NaN

    Raises
    ------
    Exception
        The first basin error under the raise policy, unchanged
    """
    partitions = _partition_all_basins(network)
    out = np.full(network.n_nodes, np.nan, dtype=np.float64)
    explicit = cfg.method == AggregationMethod.EXPLICIT_LOCATIONS

    logger.info(f"aggregate_basins: Processing {len(partitions)} drainage basins")
    with ThreadPoolExecutor(max_workers=cfg.max_workers) as pool:
        futs: dict[Future, int] = {}
        for outlet, partition_data in partitions.items():
            locations = _basin_locations(partition_data["locs"], cfg.locations) if explicit else None
            basin_cfg = cfg.model_copy(update={"split": False, "locations": locations})
            futs[pool.submit(_process_single_basin, partition_data, values, basin_cfg, worker)] = outlet

        for fut in tqdm(as_completed(futs), total=len(futs), desc="Aggregating basins"):
            outlet = futs[fut]
            locs = partitions[outlet]["locs"]
            try:
                result = fut.result()
            except CancelledError:
                raise
            except Exception as e:
                if cfg.on_basin_error == BasinErrorPolicy.RAISE:
                    for pending in futs:
                        pending.cancel()
                    logger.error(f"Basin with outlet {outlet} failed, aborting: {e}")
                    raise
                logger.warning(f"Basin with outlet {outlet} failed, leaving {locs.size} nodes as NaN: {e}")
                continue
            out[locs] = result

    return out
