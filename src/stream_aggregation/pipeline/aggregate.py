"""Contains the aggregation entry points"""

import logging
from typing import Any

import numpy as np
from numpy.typing import NDArray
from pydantic import ValidationError

from stream_aggregation.config import AggregateConfig
from stream_aggregation.exceptions import InvalidParameterError
from stream_aggregation.network.binding import bind_attribute
from stream_aggregation.network.graph import StreamNetwork
from stream_aggregation.network.labels import label_components
from stream_aggregation.network.reduce import aggregate_by_label
from stream_aggregation.network.remap import remap_to_source
from stream_aggregation.network.segment import segment_network, validate_locations
from stream_aggregation.pipeline.dispatch import aggregate_basins
from stream_aggregation.schemas.aggregation import AggregationMethod, resolve_method

logger = logging.getLogger(__name__)


def _resolve_config(config: AggregateConfig | None, options: dict[str, Any]) -> AggregateConfig:
    """Merge keyword options over a config and validate the result

    Raises
    ------
    InvalidPolicyError
        If the method is unknown
    InvalidParameterError
        If any other option is unknown or invalid
    """
    unknown = set(options) - set(AggregateConfig.model_fields)
    if unknown:
        raise InvalidParameterError(f"Unknown aggregation options: {sorted(unknown)}")

    data = dict(config) if config is not None else {}
    if "method" in options:
        options["method"] = resolve_method(options["method"])
    data.update(options)

    try:
        return AggregateConfig(**data)
    except ValidationError as e:
        raise InvalidParameterError(f"Invalid aggregation options: {e}") from e


def _aggregate_network(
    network: StreamNetwork, values: NDArray[np.float64], cfg: AggregateConfig
) -> NDArray[np.float64]:
    """Segment, label, reduce and remap one network"""
    cut = segment_network(network, cfg.method, locations=cfg.locations, segment_length=cfg.segment_length)
    labels, n_labels = label_components(cut.graph)
    grouped = aggregate_by_label(values[cut.node_map], labels, n_labels, cfg.reducer())
    logger.debug(f"Reduced {network.n_nodes} nodes to {n_labels} groups")
    return remap_to_source(grouped.values, cut.node_map, cut.n_source)


def label_network(
    network: StreamNetwork, config: AggregateConfig | None = None, **options: Any
) -> tuple[NDArray[np.int64], int]:
    """Label every node with the group it is aggregated in.

    Parameters
    ----------
    network : StreamNetwork
        Stream network
    config : AggregateConfig | None, optional
        Aggregation options, by default None
    **options : Any
        Options overriding the config (method, locations, segment_length)

    Returns
    -------
    tuple[NDArray[np.int64], int]
        - Group label (1..K) of every node in original node order
        - Number of groups K
    """
    cfg = _resolve_config(config, options)
    cut = segment_network(network, cfg.method, locations=cfg.locations, segment_length=cfg.segment_length)
    labels, n_labels = label_components(cut.graph)
    source_labels = remap_to_source(labels.astype(np.float64), cut.node_map, cut.n_source)
    return source_labels.astype(np.int64), n_labels


def aggregate(
    network: StreamNetwork, values: Any, config: AggregateConfig | None = None, **options: Any
) -> NDArray[np.float64]:
    """Aggregate node values over reaches, fixed-length segments, drainage basins or custom segments.

    Values along stream networks are frequently affected by scatter. Aggregation replaces every node's
    value by a summary (by default the mean) of all values in its group.

    Parameters
    ----------
    network : StreamNetwork
        Stream network
    values : Any
        Node attribute array or raster, see bind_attribute
    config : AggregateConfig | None, optional
        Aggregation options, by default the AggregateConfig defaults
    **options : Any
        Options overriding the config: method, split, locations, segment_length, aggregation_fn,
        percentile, on_basin_error, max_workers

    Returns
    -------
    NDArray[np.float64]
        Aggregated value of every node in original node order

    Raises
    ------
    InvalidPolicyError
        Unknown method
    InvalidParameterError
        Invalid options
    IncompatibleInputError
        values do not fit the network
    InvalidLocationError
        Locations outside the network
    """
    cfg = _resolve_config(config, options)
    if cfg.method == AggregationMethod.EXPLICIT_LOCATIONS:
        validate_locations(network, cfg.locations)

    z = bind_attribute(network, values)

    logger.info(f"aggregate: {network.n_nodes} nodes by {cfg.method} (split={cfg.split})")
    if cfg.split:
        return aggregate_basins(network, z, cfg, _aggregate_network)
    return _aggregate_network(network, z, cfg)
