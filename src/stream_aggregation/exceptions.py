"""Errors raised while aggregating node attributes"""


class AggregationError(ValueError):
    """Base class for all stream aggregation errors"""


class InvalidPolicyError(AggregationError):
    """The requested aggregation method is not one of the supported policies"""


class IncompatibleInputError(AggregationError):
    """The input raster or node attribute array does not fit the stream network"""


class InvalidParameterError(AggregationError):
    """An aggregation option is missing, malformed or out of range"""


class InvalidLocationError(AggregationError):
    """Explicit split locations reference nodes that are not in the network"""


class RemapConsistencyError(AggregationError):
    """A result could not be mapped back onto the source network's nodes"""


class NetworkTopologyError(AggregationError):
    """The stream network is cyclic, not dendritic, or otherwise malformed"""
