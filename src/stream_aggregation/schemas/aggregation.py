"""Enumerations, lookups and result containers for stream aggregation"""

from collections.abc import Callable
from enum import StrEnum

import numpy as np
import rustworkx as rx
from pydantic import BaseModel, ConfigDict, Field

from stream_aggregation.exceptions import InvalidParameterError, InvalidPolicyError
from stream_aggregation.helpers.stats import (
    Percentile,
    geometric_mean,
    maximum,
    mean,
    median,
    minimum,
    nanmax,
    nanmean,
    nanmedian,
    nanmin,
    std,
)


class AggregationMethod(StrEnum):
    """The segmentation policies used to group nodes

    Attributes
    ----------
    BETWEEN_CONFLUENCES : str
        One group per unbranched reach between confluences, heads and outlets
    FIXED_LENGTH_SEGMENTS : str
        Reaches subdivided into segments of a fixed flow length
    DRAINAGE_BASINS : str
        One group per drainage basin
    EXPLICIT_LOCATIONS : str
        Groups bounded by user supplied nodes
    """

    BETWEEN_CONFLUENCES = "between-confluences"
    FIXED_LENGTH_SEGMENTS = "fixed-length-segments"
    DRAINAGE_BASINS = "drainage-basins"
    EXPLICIT_LOCATIONS = "explicit-locations"


# names used by the TopoToolbox aggregate function
METHOD_ALIASES: dict[str, AggregationMethod] = {
    "reach": AggregationMethod.FIXED_LENGTH_SEGMENTS,
    "betweenconfluences": AggregationMethod.BETWEEN_CONFLUENCES,
    "drainagebasins": AggregationMethod.DRAINAGE_BASINS,
    "locations": AggregationMethod.EXPLICIT_LOCATIONS,
}


def resolve_method(method: str | AggregationMethod) -> AggregationMethod:
    """Resolve a method name, alias or unambiguous prefix to an AggregationMethod

    Parameters
    ----------
    method : str | AggregationMethod
        Method name. Case-insensitive, underscores are read as hyphens

    Returns
    -------
    AggregationMethod
        The matching policy

    Raises
    ------
    InvalidPolicyError
        If the name matches no policy or more than one
    """
    if isinstance(method, AggregationMethod):
        return method
    if not isinstance(method, str) or not method.strip():
        raise InvalidPolicyError(f"Invalid aggregation method: {method!r}")

    key = method.strip().lower().replace("_", "-")
    names: dict[str, AggregationMethod] = {m.value: m for m in AggregationMethod}
    names.update(METHOD_ALIASES)
    if key in names:
        return names[key]

    candidates = {m for name, m in names.items() if name.startswith(key)}
    if len(candidates) == 1:
        return candidates.pop()

    valid = ", ".join(m.value for m in AggregationMethod)
    raise InvalidPolicyError(f"Invalid aggregation method: {method!r}. Expected one of: {valid}")


class AggFunctionEnum(StrEnum):
    """Built-in reduction functions"""

    mean = "mean"
    median = "median"
    min = "min"
    max = "max"
    std = "std"
    percentile = "percentile"
    geometric_mean = "geometric_mean"
    nanmean = "nanmean"
    nanmedian = "nanmedian"
    nanmin = "nanmin"
    nanmax = "nanmax"


class BasinErrorPolicy(StrEnum):
    """What to do when a single basin fails during a split run"""

    RAISE = "raise"
    NAN = "nan"


def get_operation(op: str, percentile: float = 50.0) -> Callable[[np.ndarray], float]:
    """Helper to return the reduction function for a built-in aggregation type

    Parameters
    ----------
    op : str
        requested operation
    percentile : float, optional
        q used by the percentile operation, by default 50.0

    Returns
    -------
    Callable[[np.ndarray], float]
        Function reducing a group's values to a scalar
    """
    if op not in AggFunctionEnum.__members__.values():
        raise InvalidParameterError(f"Invalid aggregation type: {op}")

    mapping: dict[str, Callable[[np.ndarray], float]] = {
        "mean": mean,
        "median": median,
        "min": minimum,
        "max": maximum,
        "std": std,
        "percentile": Percentile(percentile),
        "geometric_mean": geometric_mean,
        "nanmean": nanmean,
        "nanmedian": nanmedian,
        "nanmin": nanmin,
        "nanmax": nanmax,
    }
    return mapping[op]


class CutNetwork(BaseModel):
    """A stream network with edges removed at segment boundaries"""

    model_config = ConfigDict(arbitrary_types_allowed=True)
    graph: rx.PyDiGraph = Field(
        description="Cut topology. Node k of this graph corresponds to node_map[k] of the source network"
    )
    node_map: np.ndarray = Field(description="Source network node index for every cut node")
    n_source: int = Field(description="Number of nodes in the source network")
    n_cuts: int = Field(default=0, description="Number of edges removed from the source network")

    @property
    def n_nodes(self) -> int:
        """Number of nodes in the cut network"""
        return len(self.graph)


class GroupedResult(BaseModel):
    """Per-group reduced values and their broadcast onto member nodes"""

    model_config = ConfigDict(arbitrary_types_allowed=True)
    labels: np.ndarray = Field(description="Component label (1..n_labels) for every node")
    n_labels: int = Field(description="Number of groups")
    reduced: np.ndarray = Field(description="Reduced value of each group, indexed by label - 1")
    values: np.ndarray = Field(description="Reduced value broadcast to every node")

    def group_sizes(self) -> np.ndarray:
        """Number of nodes in each group, indexed by label - 1"""
        return np.bincount(self.labels, minlength=self.n_labels + 1)[1:]
