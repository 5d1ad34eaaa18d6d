"""
GeoTIFF input/output for RasterGrid.

Raster I/O sits outside the engine; these helpers only move grids between
disk and memory, keeping the nodata sentinel, transform and CRS intact.
"""

import logging
from pathlib import Path
from typing import Union

import numpy as np
import rasterio

from .grid import RasterGrid

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _check_exists(path: PathLike) -> Path:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster file not found: {path}")
    return path


def read_grid(path: PathLike, band: int = 1) -> RasterGrid:
    """
    Read one band of a raster into a 2-D RasterGrid.

    Parameters
    ----------
    path : str or Path
        Raster file readable by rasterio
    band : int
        1-based band index

    Returns
    -------
    RasterGrid
        Grid with the file's nodata, transform and CRS
    """
    path = _check_exists(path)
    with rasterio.open(path) as src:
        data = src.read(band)
        grid = RasterGrid(data, nodata=src.nodata, transform=src.transform, crs=src.crs)
    logger.debug("Read %s: shape=%s dtype=%s nodata=%s", path, data.shape, data.dtype, grid.nodata)
    return grid


def read_proportions(path: PathLike) -> RasterGrid:
    """Read an 8-band proportion raster into a ``(rows, cols, 8)`` RasterGrid."""
    path = _check_exists(path)
    with rasterio.open(path) as src:
        if src.count != 8:
            raise ValueError(f"Proportion raster must have 8 bands, {path} has {src.count}")
        data = np.moveaxis(src.read(), 0, -1)
        return RasterGrid(data, nodata=src.nodata, transform=src.transform, crs=src.crs)


def write_grid(path: PathLike, grid: RasterGrid) -> Path:
    """
    Write a RasterGrid to an LZW-compressed GeoTIFF.

    3-D proportion grids are written as 8 bands, one per direction code.

    Parameters
    ----------
    path : str or Path
        Output file path (parent directories are created)
    grid : RasterGrid
        Grid to write

    Returns
    -------
    Path
        The written path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = grid.data
    bands = data[np.newaxis] if data.ndim == 2 else np.moveaxis(data, -1, 0)
    count, height, width = bands.shape

    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=count,
        dtype=bands.dtype,
        crs=grid.crs,
        transform=grid.transform,
        nodata=grid.nodata,
        compress="lzw",
    ) as dst:
        dst.write(bands)

    logger.info("Wrote %s (%d band%s, %dx%d)", path, count, "" if count == 1 else "s", height, width)
    return path
