"""
Flow accumulation over direction and proportion grids.

Public entry points:
- accumulate_single_direction: D8/D4 direction codes -> cell counts
- accumulate_proportional: per-neighbour fractions -> weighted float sums
- accumulate_from_dem: run a registered flow-field provider, then accumulate

Both accumulation paths share one pipeline:
  validate -> dependency counts -> topological drain -> finalize
"""

import logging
import time
from typing import Optional, Union

import numpy as np

from src import config
from .context import AccumulationContext
from .dependencies import (
    count_direction_dependencies,
    count_proportion_dependencies,
    source_mask,
)
from .flowmet import get_flow_method
from .grid import RasterGrid, as_grid
from .scheduler import _drain_directions_jit, _drain_proportions_jit, drain, finalize
from .validation import (
    check_capacity,
    check_edge_mode,
    check_out_nodata,
    check_same_shape,
    default_out_nodata,
    resolve_accum_dtype,
    validate_directions,
    validate_proportions,
    validate_weights,
)

logger = logging.getLogger(__name__)

GridLike = Union[RasterGrid, np.ndarray]


def _prepare_weights(weights: Optional[GridLike], valid: np.ndarray) -> Optional[RasterGrid]:
    if weights is None:
        return None
    weights = as_grid(weights)
    validate_weights(weights, valid)
    return weights


def _allocate(template: RasterGrid, dtype, out_nodata, counting: bool, n_valid: int):
    if out_nodata is None:
        out_nodata = default_out_nodata(dtype)
    check_out_nodata(dtype, out_nodata)
    check_capacity(dtype, n_valid, out_nodata, counting)
    accum = np.zeros(template.shape, dtype=dtype)
    return accum, out_nodata


def accumulate_single_direction(
    directions: GridLike,
    *,
    nodata=None,
    weights: Optional[GridLike] = None,
    reference: Optional[GridLike] = None,
    dtype=None,
    out_nodata=None,
    edge_mode: str = config.DEFAULT_EDGE_MODE,
    context: Optional[AccumulationContext] = None,
) -> RasterGrid:
    """
    Compute flow accumulation from a single-direction (D8/D4) grid.

    Every valid cell contributes one unit to itself and to every cell
    downstream of it, so a headwater cell ends with 1 and an outlet with the
    size of its catchment.

    Parameters
    ----------
    directions : RasterGrid or np.ndarray
        Direction codes 0..8 (0 = NO_FLOW, see ``grid`` for the layout)
    nodata : scalar, optional
        Sentinel for bare arrays (ignored if the grid declares its own)
    weights : RasterGrid or np.ndarray, optional
        Per-cell self-contribution (e.g. precipitation). Switches the register
        to floating point.
    reference : RasterGrid or np.ndarray, optional
        Companion grid (e.g. the DEM) whose dimensions must match
    dtype : numpy dtype, optional
        Register dtype. Defaults to uint32 for counts, float64 when weighted.
    out_nodata : scalar, optional
        Output sentinel. Defaults to dtype max for unsigned, -1 otherwise.
    edge_mode : {"route", "drain"}
        Border cell policy, see ``dependencies.source_mask``
    context : AccumulationContext, optional
        Progress, cancellation and logging hooks

    Returns
    -------
    RasterGrid
        Accumulation with the input's transform/CRS and ``out_nodata`` on
        every no-data cell

    Raises
    ------
    PreconditionViolation
        Mismatched dimensions, invalid codes, bad weights, unsupported
        dtype or output sentinel, unknown edge_mode
    OverflowRisk
        If ``dtype`` cannot hold the valid cell count
    CycleDetected
        If the direction field contains a cycle
    RunCancelled
        If cancelled through the context
    """
    context = context or AccumulationContext()
    start = time.perf_counter()
    context.logger.info("D8 Raster -> Flow Accumulation")

    grid = as_grid(directions, nodata)
    weights = as_grid(weights) if weights is not None else None
    reference = as_grid(reference) if reference is not None else None
    check_same_shape({"directions": grid, "weights": weights, "reference": reference})
    check_edge_mode(edge_mode)
    validate_directions(grid)

    valid = grid.valid_mask()
    weights = _prepare_weights(weights, valid)
    dtype = resolve_accum_dtype(dtype, weighted=weights is not None, proportional=False)
    n_valid = int(valid.sum())
    accum, out_nodata = _allocate(grid, dtype, out_nodata, weights is None, n_valid)

    # No-data cells are zeroed so sentinels like 255 never reach the kernels
    dirs = np.where(valid, grid.data, 0).astype(np.uint8)
    sources = source_mask(valid, edge_mode)

    context.logger.debug("Creating dependencies array...")
    deps = count_direction_dependencies(dirs, valid, sources)

    context.logger.debug("Calculating flow accumulation...")
    drain(
        _drain_directions_jit,
        dirs.ravel(),
        sources,
        valid,
        deps,
        accum,
        None if weights is None else weights.data,
        context,
    )
    finalize(accum, valid, out_nodata)

    context.logger.info(
        "Flow accumulation: %d cells in %.3f s", n_valid, time.perf_counter() - start
    )
    return RasterGrid(accum, nodata=out_nodata, transform=grid.transform, crs=grid.crs)


def accumulate_proportional(
    proportions: GridLike,
    *,
    nodata=None,
    weights: Optional[GridLike] = None,
    reference: Optional[GridLike] = None,
    dtype=None,
    out_nodata=None,
    edge_mode: str = config.DEFAULT_EDGE_MODE,
    context: Optional[AccumulationContext] = None,
) -> RasterGrid:
    """
    Compute flow accumulation from a proportion grid.

    Parameters
    ----------
    proportions : RasterGrid or np.ndarray
        ``(rows, cols, 8)`` fractions; channel ``k`` routes toward direction
        code ``k + 1``. A cell with all-zero fractions is terminal.
    nodata, weights, reference, out_nodata, edge_mode, context
        As for ``accumulate_single_direction``
    dtype : numpy dtype, optional
        Floating-point register dtype (default float64)

    Returns
    -------
    RasterGrid
        Floating-point accumulation
    """
    context = context or AccumulationContext()
    start = time.perf_counter()
    context.logger.info("Proportions Raster -> Flow Accumulation")

    grid = as_grid(proportions, nodata)
    weights = as_grid(weights) if weights is not None else None
    reference = as_grid(reference) if reference is not None else None
    check_same_shape({"proportions": grid, "weights": weights, "reference": reference})
    check_edge_mode(edge_mode)
    validate_proportions(grid)

    valid = grid.valid_mask()
    weights = _prepare_weights(weights, valid)
    dtype = resolve_accum_dtype(dtype, weighted=weights is not None, proportional=True)
    n_valid = int(valid.sum())
    accum, out_nodata = _allocate(grid, dtype, out_nodata, False, n_valid)

    props = np.where(valid[:, :, None], grid.data, 0.0).astype(np.float64)
    sources = source_mask(valid, edge_mode)

    context.logger.debug("Creating dependencies array...")
    deps = count_proportion_dependencies(props, valid, sources)

    context.logger.debug("Calculating flow accumulation...")
    height, width = grid.shape
    drain(
        _drain_proportions_jit,
        props.reshape(height * width, 8),
        sources,
        valid,
        deps,
        accum,
        None if weights is None else weights.data,
        context,
    )
    finalize(accum, valid, out_nodata)

    context.logger.info(
        "Flow accumulation: %d cells in %.3f s", n_valid, time.perf_counter() - start
    )
    return RasterGrid(accum, nodata=out_nodata, transform=grid.transform, crs=grid.crs)


def accumulate_from_dem(
    dem: GridLike,
    method: str = "d8",
    *,
    nodata=None,
    weights: Optional[GridLike] = None,
    dtype=None,
    out_nodata=None,
    edge_mode: str = config.DEFAULT_EDGE_MODE,
    context: Optional[AccumulationContext] = None,
    **method_params,
) -> RasterGrid:
    """
    Derive a flow field from a DEM with a registered method, then accumulate.

    The DEM should already be conditioned (depressions and flats resolved);
    otherwise pits become terminal cells and accumulation stops there.

    Parameters
    ----------
    dem : RasterGrid or np.ndarray
        Elevations
    method : str
        Key of ``flowmet.FLOW_METHODS`` (d8, d4, freeman, holmgren, quinn, tarboton)
    **method_params
        Passed to the provider (e.g. ``exponent`` for freeman/holmgren)

    Returns
    -------
    RasterGrid
        Accumulation grid
    """
    flow_method = get_flow_method(method)
    dem = as_grid(dem, nodata)
    field = flow_method.compute(dem, **method_params)

    if flow_method.kind == "direction":
        return accumulate_single_direction(
            field,
            weights=weights,
            reference=dem,
            dtype=dtype,
            out_nodata=out_nodata,
            edge_mode=edge_mode,
            context=context,
        )
    return accumulate_proportional(
        field,
        weights=weights,
        reference=dem,
        dtype=dtype,
        out_nodata=out_nodata,
        edge_mode=edge_mode,
        context=context,
    )
