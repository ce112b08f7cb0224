from ._version import __version__
from .config import AggregateConfig
from .exceptions import (
    AggregationError,
    IncompatibleInputError,
    InvalidLocationError,
    InvalidParameterError,
    InvalidPolicyError,
    NetworkTopologyError,
    RemapConsistencyError,
)
from .network.binding import bind_attribute
from .network.graph import StreamNetwork
from .pipeline.aggregate import aggregate, label_network
from .schemas.aggregation import AggFunctionEnum, AggregationMethod, BasinErrorPolicy

__all__ = [
    "__version__",
    "AggregateConfig",
    "AggregationError",
    "IncompatibleInputError",
    "InvalidLocationError",
    "InvalidParameterError",
    "InvalidPolicyError",
    "NetworkTopologyError",
    "RemapConsistencyError",
    "bind_attribute",
    "StreamNetwork",
    "aggregate",
    "label_network",
    "AggFunctionEnum",
    "AggregationMethod",
    "BasinErrorPolicy",
]
