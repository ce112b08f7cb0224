"""A pydantic basemodel for setting aggregation defaults"""

from collections.abc import Callable
from pathlib import Path
from typing import Any, Self

import numpy as np
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stream_aggregation.schemas.aggregation import (
    AggFunctionEnum,
    AggregationMethod,
    BasinErrorPolicy,
    get_operation,
    resolve_method,
)


class AggregateConfig(BaseModel):
    """A config validation class for stream aggregation options"""

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)

    method: AggregationMethod = Field(
        default=AggregationMethod.FIXED_LENGTH_SEGMENTS,
        description="How nodes are grouped before aggregation",
    )

    split: bool = Field(
        default=False, description="Process each drainage basin independently on a thread pool"
    )

    locations: list[int] | None = Field(
        default=None, description="Node indices to split the network at. Required for explicit-locations"
    )

    segment_length: float | None = Field(
        default=None,
        description="Segment length for fixed-length-segments. Defaults to 11 times the network cellsize",
    )

    aggregation_fn: AggFunctionEnum | Callable[[np.ndarray], float] = Field(
        default=AggFunctionEnum.mean,
        description="Name of a built-in reducer or a function reducing an array to a scalar",
    )

    percentile: float = Field(
        default=50.0, ge=0.0, le=100.0, description="Percentile used by the percentile reducer"
    )

    on_basin_error: BasinErrorPolicy = Field(
        default=BasinErrorPolicy.RAISE,
        description="Fail the whole call (raise) or leave the basin as NaN (nan) when a basin fails",
    )

    max_workers: int | None = Field(
        default=None, gt=0, description="Number of threads for split runs. None lets the executor decide"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Read a config from a YAML file

        Parameters
        ----------
        path : str | Path
            The path to the provided YAML file

        Returns
        -------
        AggregateConfig
            A configuration object validated
        """
        with open(path) as f:
            data = yaml.safe_load(f)

        return cls(**(data or {}))

    @field_validator("method", mode="before")
    @classmethod
    def resolve_method_alias(cls, v: Any) -> AggregationMethod:
        """Accept aliases and unambiguous prefixes of the method names"""
        return resolve_method(v)

    @field_validator("segment_length")
    @classmethod
    def validate_segment_length(cls, v: float | None) -> float | None:
        """Validate segment_length is None or positive."""
        if v is not None and (not np.isfinite(v) or v <= 0):
            raise ValueError("segment_length must be None (for the default) or a positive number")
        return v

    @field_validator("locations")
    @classmethod
    def deduplicate_locations(cls, v: list[int] | None) -> list[int] | None:
        if v is None:
            return v
        return sorted(set(v))

    @model_validator(mode="after")
    def check_locations(self) -> Self:
        """explicit-locations needs locations"""
        if self.method == AggregationMethod.EXPLICIT_LOCATIONS and self.locations is None:
            raise ValueError("method explicit-locations requires locations")
        return self

    def reducer(self) -> Callable[[np.ndarray], float]:
        """The reduction function described by aggregation_fn"""
        if isinstance(self.aggregation_fn, AggFunctionEnum):
            return get_operation(self.aggregation_fn.value, percentile=self.percentile)
        return self.aggregation_fn
