"""Binding rasters and node attribute arrays to a stream network"""

import logging
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
import polars as pl
import rasterio
import rioxarray  # noqa: F401  registers the .rio accessor
import xarray as xr
from numpy.typing import NDArray
from rasterio.crs import CRS
from rasterio.errors import CRSError, RasterioIOError
from rasterio.io import DatasetReader
from rasterio.transform import Affine, rowcol

from stream_aggregation.exceptions import IncompatibleInputError
from stream_aggregation.network.graph import StreamNetwork

logger = logging.getLogger(__name__)


def _validate_alignment(
    network: StreamNetwork, crs: Any, transform: Affine, shape: tuple[int, int], source: str
) -> None:
    """Check that a raster shares the network's spatial reference.

    Parameters
    ----------
    network : StreamNetwork
        Stream network
    crs : Any
        Raster CRS, None if the raster has none
    transform : Affine
        Raster affine transform
    shape : tuple[int, int]
        Raster rows and columns
    source : str
        Description of the raster for error messages

    Raises
    ------
    IncompatibleInputError
        If CRS, cell size or grid differ
    """
    if network.crs is not None:
        if crs is None:
            raise IncompatibleInputError(f"{source} has no CRS but the network uses {network.crs}")
        try:
            same_crs = CRS.from_user_input(network.crs) == CRS.from_user_input(crs)
        except CRSError as e:
            raise IncompatibleInputError(f"Could not compare CRS of {source} and network") from e
        if not same_crs:
            raise IncompatibleInputError(f"{source} CRS {crs} does not match network CRS {network.crs}")

    res_x, res_y = abs(transform.a), abs(transform.e)
    if not (np.isclose(res_x, network.cellsize) and np.isclose(res_y, network.cellsize)):
        raise IncompatibleInputError(
            f"{source} resolution ({res_x}, {res_y}) does not match network cellsize {network.cellsize}"
        )

    if network.transform is not None and not network.transform.almost_equals(transform):
        raise IncompatibleInputError(f"{source} transform does not match the network grid")
    if network.shape is not None and tuple(network.shape) != tuple(shape):
        raise IncompatibleInputError(
            f"{source} shape {tuple(shape)} does not match network grid {network.shape}"
        )


def _node_cells(
    network: StreamNetwork, transform: Affine, shape: tuple[int, int], source: str
) -> tuple[NDArray[np.int64], NDArray[np.int64]]:
    """Row and column of the cell containing every node

    Raises
    ------
    IncompatibleInputError
        If the network has no coordinates or a node falls outside the raster
    """
    if network.x is None or network.y is None:
        raise IncompatibleInputError("Sampling a raster requires node coordinates")

    rows, cols = rowcol(transform, network.x, network.y)
    rows = np.asarray(rows, dtype=np.int64)
    cols = np.asarray(cols, dtype=np.int64)

    outside = (rows < 0) | (rows >= shape[0]) | (cols < 0) | (cols >= shape[1])
    if np.any(outside):
        raise IncompatibleInputError(f"{int(outside.sum())} network nodes lie outside {source}")
    return rows, cols


def _mask_nodata(samples: NDArray, nodata: Any) -> NDArray[np.float64]:
    samples = samples.astype(np.float64)
    if nodata is not None:
        if np.isnan(nodata):
            return samples
        samples[samples == nodata] = np.nan
    return samples


def _sample_dataarray(network: StreamNetwork, raster: xr.DataArray) -> NDArray[np.float64]:
    """Sample a georeferenced DataArray at the network nodes"""
    if raster.ndim == 3 and raster.shape[0] == 1:
        raster = raster.squeeze(raster.dims[0], drop=True)
    if raster.ndim != 2:
        raise IncompatibleInputError(f"Expected a single band raster, got dimensions {raster.dims}")

    transform = raster.rio.transform()
    shape = (raster.rio.height, raster.rio.width)
    _validate_alignment(network, raster.rio.crs, transform, shape, "raster")

    rows, cols = _node_cells(network, transform, shape, "raster")
    samples = np.asarray(raster.values)[rows, cols]
    return _mask_nodata(samples, raster.rio.nodata)


def _sample_dataset(network: StreamNetwork, src: DatasetReader, band: int = 1) -> NDArray[np.float64]:
    """Sample an open rasterio dataset at the network nodes"""
    shape = (src.height, src.width)
    _validate_alignment(network, src.crs, src.transform, shape, src.name)

    rows, cols = _node_cells(network, src.transform, shape, src.name)
    data = src.read(band)
    return _mask_nodata(data[rows, cols], src.nodata)


def bind_attribute(network: StreamNetwork, values: Any) -> NDArray[np.float64]:
    """Resolve a raster or node attribute array into node values aligned with the network.

    Parameters
    ----------
    network : StreamNetwork
        Stream network
    values : Any
        One of
        - an xarray.DataArray with rioxarray georeferencing
        - an open rasterio dataset
        - a str or Path to a raster file
        - a one-dimensional array-like, pandas Series or polars Series with one value per node

    Returns
    -------
    NDArray[np.float64]
        A new array with one value per node

    Raises
    ------
    IncompatibleInputError
        If the raster is not aligned with the network or the array does not match the node count
    """
    if isinstance(values, xr.DataArray):
        return _sample_dataarray(network, values)

    if isinstance(values, DatasetReader):
        return _sample_dataset(network, values)

    if isinstance(values, (str, Path)):
        try:
            with rasterio.open(values, mode="r") as src:
                logger.info(f"Sampling {values} at {network.n_nodes} nodes")
                return _sample_dataset(network, src)
        except RasterioIOError as e:
            raise IncompatibleInputError(f"Could not open raster {values}") from e

    if isinstance(values, (pd.Series, pl.Series)):
        values = values.to_numpy()

    try:
        array = np.array(values, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise IncompatibleInputError(f"Cannot interpret {type(values).__name__} as node attributes") from e

    if array.ndim != 1 or array.shape[0] != network.n_nodes:
        raise IncompatibleInputError(
            f"Node attribute array of shape {array.shape} does not match network with {network.n_nodes} nodes"
        )
    return array
